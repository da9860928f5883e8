from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import jwt
import pytest

from credit_gate.bootstrap import Gateway, build_gateway
from credit_gate.config import Settings
from credit_gate.db.memory import InMemoryDBManager
from credit_gate.providers.base import LLMProvider, ProviderRegistry

SECRET = "test-secret-key-that-is-long-enough-for-hs256"


def make_token(
    subject: Optional[str] = "user-1",
    secret: str = SECRET,
    expires_in: timedelta = timedelta(hours=1),
    **claims,
) -> str:
    payload = {"exp": datetime.now(timezone.utc) + expires_in, **claims}
    if subject is not None:
        payload["sub"] = subject
    return jwt.encode(payload, secret, algorithm="HS256")


class FakeProvider(LLMProvider):
    def __init__(
        self,
        provider_id: str,
        reply: str = "generated text",
        error: Optional[Exception] = None,
    ) -> None:
        self.provider_id = provider_id
        self.reply = reply
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    async def generate(self, prompt: str, model_id: str) -> str:
        self.calls.append((prompt, model_id))
        if self.error is not None:
            raise self.error
        return self.reply


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "AUTH_JWT_SECRET": SECRET,
        "AUTH_JWKS_URL": None,
        "OPENAI_API_KEY": "sk-test",
        "GOOGLE_API_KEY": None,
        "MONGO_URI": None,
        "DEFAULT_PLAN": "Free",
        "AUTO_PROVISION_ACCOUNTS": True,
        "ADMIN_API_KEY": None,
        "LEDGER_LOG_PATH": str(tmp_path / "ledger.log"),
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_gateway(tmp_path, providers=None, **overrides) -> Gateway:
    if providers is None:
        providers = [FakeProvider("openai"), FakeProvider("google"), FakeProvider("anthropic")]
    return build_gateway(
        make_settings(tmp_path, **overrides),
        db=InMemoryDBManager(),
        providers=ProviderRegistry(providers),
    )


@pytest.fixture
def openai_provider() -> FakeProvider:
    return FakeProvider("openai", reply="openai text")


@pytest.fixture
def google_provider() -> FakeProvider:
    return FakeProvider("google", reply="gemini text")


@pytest.fixture
def gateway(tmp_path, openai_provider, google_provider) -> Gateway:
    return make_gateway(
        tmp_path,
        providers=[openai_provider, google_provider, FakeProvider("anthropic")],
    )
