from __future__ import annotations

import asyncio
import json

import pytest

from credit_gate.errors import (
    InsufficientCreditsError,
    InvalidCredentialError,
    ProviderTransientError,
    UnauthenticatedError,
)
from credit_gate.models.account import Account
from credit_gate.models.catalog import Template
from credit_gate.models.ledger import LedgerEventType
from credit_gate.services.operations import GenerationOperation, ProofreadOperation

from conftest import FakeProvider, make_gateway, make_token


def _generate(**kwargs) -> GenerationOperation:
    return GenerationOperation(topic="Tides", language="English", **kwargs)


async def _seed(gateway, credits: int, plan: str, account_id: str = "user-1") -> None:
    await gateway.db.create_account_if_absent(Account(id=account_id, plan=plan, credits=credits))


@pytest.mark.asyncio
async def test_free_user_without_enough_credits(gateway, openai_provider):
    await _seed(gateway, credits=5, plan="Free")

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await gateway.executor.execute(make_token(), _generate())

    assert exc_info.value.status_code == 403
    assert exc_info.value.required == 10
    assert (await gateway.db.get_account("user-1")).credits == 5
    assert openai_provider.calls == []
    assert gateway.db.charge_calls == 0


@pytest.mark.asyncio
async def test_basic_user_charged_once(gateway, openai_provider):
    await _seed(gateway, credits=100, plan="Basic")

    result = await gateway.executor.execute(
        make_token(), _generate(model_preference="gpt-4"), correlation_id="req-1"
    )

    assert result.payload == {"text": "openai text"}
    assert result.credits_charged == 10
    assert result.balance == 90
    assert result.model_used == "GPT-3.5 Turbo"
    assert openai_provider.calls[0][1] == "gpt-3.5-turbo"
    assert (await gateway.db.get_account("user-1")).credits == 90
    assert gateway.db.charge_calls == 1


@pytest.mark.asyncio
async def test_ultimate_user_routed_to_preference(gateway, google_provider):
    await _seed(gateway, credits=-1, plan="Ultimate")

    result = await gateway.executor.execute(
        make_token(), _generate(model_preference="gemini-pro")
    )

    assert result.payload["text"] == "gemini text"
    assert result.model_used == "Gemini Pro"
    assert result.credits_charged == 10
    assert result.balance == -1
    assert google_provider.calls[0][1] == "gemini-1.0-pro"
    assert (await gateway.db.get_account("user-1")).credits == -1


@pytest.mark.asyncio
async def test_template_cost_and_prompt(gateway, openai_provider):
    await _seed(gateway, credits=100, plan="Basic")

    result = await gateway.executor.execute(
        make_token(),
        _generate(
            template_name="Blog post",
            template_description="Three short paragraphs",
            template_cost=25,
        ),
    )

    assert result.credits_charged == 25
    assert result.balance == 75
    prompt = openai_provider.calls[0][0]
    assert prompt.startswith("Topic: Tides\n")
    assert "Template: Blog post\n" in prompt
    assert "Instructions: Three short paragraphs\n" in prompt
    assert prompt.endswith("Language: English\n\nGenerate content:")


@pytest.mark.asyncio
async def test_first_request_provisions_account(gateway):
    result = await gateway.executor.execute(make_token("newcomer"), _generate())

    assert result.balance == 4990
    account = await gateway.db.get_account("newcomer")
    assert account.plan == "Free"
    assert account.credits == 4990


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token, error",
    [(None, UnauthenticatedError), ("garbage", InvalidCredentialError)],
)
async def test_no_store_or_provider_access_without_identity(gateway, openai_provider, token, error):
    with pytest.raises(error):
        await gateway.executor.execute(token, _generate())

    assert openai_provider.calls == []
    assert gateway.db.charge_calls == 0
    assert gateway.db.ledger_entries == []


@pytest.mark.asyncio
async def test_provider_failure_leaves_balance(tmp_path):
    failing = FakeProvider("openai", error=ProviderTransientError("openai", 429, "rate_limit"))
    gateway = make_gateway(
        tmp_path, providers=[failing, FakeProvider("google"), FakeProvider("anthropic")]
    )
    await _seed(gateway, credits=100, plan="Basic")

    with pytest.raises(ProviderTransientError) as exc_info:
        await gateway.executor.execute(make_token(), _generate())

    assert exc_info.value.status_code == 429
    assert (await gateway.db.get_account("user-1")).credits == 100
    assert gateway.db.charge_calls == 0
    errors = [e for e in gateway.db.ledger_entries if e.event_type == LedgerEventType.ERROR]
    assert len(errors) == 1
    assert errors[0].details == {"provider": "openai", "status": 429, "code": "rate_limit", "error": "provider_transient"}


@pytest.mark.asyncio
async def test_proofread_uses_flat_cost(gateway, openai_provider):
    await _seed(gateway, credits=100, plan="Basic")
    openai_provider.reply = json.dumps(
        {"improvedText": "The tide is high.", "suggestions": "Fixed spelling."}
    )

    result = await gateway.executor.execute(
        make_token(), ProofreadOperation(text_to_proofread="The tyde is hihg.")
    )

    assert result.payload == {
        "improved_text": "The tide is high.",
        "suggestions": "Fixed spelling.",
    }
    assert result.credits_charged == 5
    assert result.balance == 95
    assert "The tyde is hihg." in openai_provider.calls[0][0]


@pytest.mark.asyncio
async def test_proofread_tolerates_unstructured_reply(gateway, openai_provider):
    await _seed(gateway, credits=100, plan="Basic")
    openai_provider.reply = "The tide is high."

    result = await gateway.executor.execute(
        make_token(), ProofreadOperation(text_to_proofread="The tyde is hihg.")
    )

    assert result.payload == {"improved_text": "The tide is high.", "suggestions": ""}


class DrainingProvider(FakeProvider):
    """Spends the caller's balance while the operation is in flight."""

    def __init__(self, db) -> None:
        super().__init__("openai", reply="delivered text")
        self._db = db

    async def generate(self, prompt: str, model_id: str) -> str:
        await self._db.charge_atomically("user-1", 10)
        return await super().generate(prompt, model_id)


@pytest.mark.asyncio
async def test_lost_charge_race_is_recorded_for_reconciliation(tmp_path):
    gateway = make_gateway(tmp_path)
    gateway.providers.register(DrainingProvider(gateway.db))
    await _seed(gateway, credits=10, plan="Basic")

    result = await gateway.executor.execute(make_token(), _generate(), correlation_id="req-9")

    assert result.payload == {"text": "delivered text"}
    assert result.credits_charged == 0
    assert result.balance is None
    assert (await gateway.db.get_account("user-1")).credits == 0

    entries = [
        e for e in gateway.db.ledger_entries if e.event_type == LedgerEventType.RECONCILIATION
    ]
    assert len(entries) == 1
    assert entries[0].correlation_id == "req-9"
    assert entries[0].details["amount"] == 10
    assert entries[0].details["reason"] == "insufficient_credits"
    assert entries[0].details["result_excerpt"] == "delivered text"


@pytest.mark.asyncio
async def test_concurrent_requests_never_overspend(gateway):
    await _seed(gateway, credits=25, plan="Basic")
    token = make_token()

    results = await asyncio.gather(
        *(gateway.executor.execute(token, _generate()) for _ in range(3)),
        return_exceptions=True,
    )

    charged = [r for r in results if not isinstance(r, Exception) and r.credits_charged == 10]
    assert len(charged) == 2
    for r in results:
        if isinstance(r, Exception):
            assert isinstance(r, InsufficientCreditsError)
        elif r not in charged:
            assert r.credits_charged == 0
    assert (await gateway.db.get_account("user-1")).credits == 5


@pytest.mark.asyncio
async def test_committed_charge_survives_failed_audit_write(gateway):
    await _seed(gateway, credits=100, plan="Basic")

    async def broken_add_transaction(tx):
        raise RuntimeError("transaction store down")

    gateway.db.add_transaction = broken_add_transaction

    result = await gateway.executor.execute(make_token(), _generate(), correlation_id="req-7")

    assert result.payload == {"text": "openai text"}
    assert result.credits_charged == 10
    assert result.balance == 90
    assert (await gateway.db.get_account("user-1")).credits == 90

    entries = [
        e for e in gateway.db.ledger_entries if e.event_type == LedgerEventType.RECONCILIATION
    ]
    assert len(entries) == 1
    assert entries[0].correlation_id == "req-7"
    assert entries[0].details["amount"] == 10
    assert entries[0].details["reason"] == "RuntimeError"


@pytest.mark.asyncio
async def test_committed_charge_survives_failed_ledger(gateway):
    await _seed(gateway, credits=100, plan="Basic")

    async def broken_add_ledger_entry(entry):
        raise RuntimeError("ledger store down")

    gateway.db.add_ledger_entry = broken_add_ledger_entry

    result = await gateway.executor.execute(make_token(), _generate())

    assert result.credits_charged == 10
    assert result.balance == 90


@pytest.mark.asyncio
async def test_listed_template_charged_at_catalog_cost(gateway):
    await _seed(gateway, credits=100, plan="Basic")
    await gateway.db.add_template(Template(name="Blog post", credit_cost=15))

    result = await gateway.executor.execute(
        make_token(), _generate(template_name="blog post", template_cost=1)
    )

    assert result.credits_charged == 15
    assert result.balance == 85


@pytest.mark.asyncio
async def test_unlisted_template_cannot_undercut_base_cost(gateway):
    await _seed(gateway, credits=100, plan="Basic")

    result = await gateway.executor.execute(
        make_token(), _generate(template_name="Made up", template_cost=1)
    )

    assert result.credits_charged == 10
    assert result.balance == 90
