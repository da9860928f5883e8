from __future__ import annotations

from credit_gate.config import Settings
from credit_gate.models.transaction import OperationKind, Transaction, TransactionType


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("DEFAULT_PLAN", "Basic")
    monkeypatch.setenv("GENERATION_BASE_COST", "12")
    monkeypatch.setenv("AUTH_ALGORITHMS", '["RS256", "ES256"]')

    settings = Settings(_env_file=None)

    assert settings.DEFAULT_PLAN == "Basic"
    assert settings.GENERATION_BASE_COST == 12
    assert settings.AUTH_ALGORITHMS == ["RS256", "ES256"]


def test_settings_fields_are_all_consumed():
    assert set(Settings.model_fields) == {
        "LOG_LEVEL",
        "HOST",
        "PORT",
        "MONGO_URI",
        "MONGO_DB",
        "AUTH_JWT_SECRET",
        "AUTH_JWKS_URL",
        "AUTH_ISSUER",
        "AUTH_AUDIENCE",
        "AUTH_ALGORITHMS",
        "OPENAI_API_KEY",
        "OPENAI_BASE_URL",
        "OPENAI_MAX_RETRIES",
        "GOOGLE_API_KEY",
        "DEFAULT_PLAN",
        "AUTO_PROVISION_ACCOUNTS",
        "GENERATION_BASE_COST",
        "PROOFREAD_COST",
        "CATALOG_CACHE_TTL_SECONDS",
        "LEDGER_LOG_PATH",
        "ADMIN_API_KEY",
    }


def test_transaction_document_shape():
    tx = Transaction(
        account_id="user-1",
        transaction_type=TransactionType.CHARGE,
        amount=10,
        balance_after=90,
        operation_kind=OperationKind.GENERATION,
    )

    assert set(tx.serialize_for_db()) == {
        "account_id",
        "transaction_type",
        "amount",
        "balance_after",
        "operation_kind",
        "timestamp",
    }
