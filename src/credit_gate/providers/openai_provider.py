"""OpenAI chat-completion provider using the official SDK."""

from __future__ import annotations

import logging
from typing import Any, Optional

import openai

from .base import LLMProvider
from ..errors import (
    ProviderError,
    ProviderRejectedError,
    ProviderTransientError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


class OpenAIChatProvider(LLMProvider):
    provider_id = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: int = 2,
        client: Optional[Any] = None,
    ) -> None:
        if client is None:
            kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": max_retries}
            # Optional base_url for proxies/emulators
            if base_url:
                kwargs["base_url"] = base_url
            client = openai.AsyncOpenAI(**kwargs)
        self._client = client

    async def generate(self, prompt: str, model_id: str) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=model_id,
                messages=[{"role": "user", "content": prompt}],
            )
        except openai.OpenAIError as exc:
            raise self._normalize(exc, model_id) from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            logger.error("OpenAI returned empty content for model %s", model_id)
            raise ProviderRejectedError(self.provider_id, provider_code="empty_response")
        return content.strip()

    async def aclose(self) -> None:
        await self._client.close()

    def _normalize(self, exc: openai.OpenAIError, model_id: str) -> ProviderError:
        status = getattr(exc, "status_code", None)
        code = getattr(exc, "code", None) or type(exc).__name__
        logger.error(
            "OpenAI API error: model=%s status=%s code=%s: %s",
            model_id,
            status,
            code,
            exc,
        )

        # APITimeoutError subclasses APIConnectionError; check it first.
        if isinstance(exc, openai.APITimeoutError):
            return ProviderTransientError(self.provider_id, provider_code="timeout")
        if isinstance(exc, openai.APIConnectionError):
            return ProviderUnavailableError(self.provider_id, provider_code="connection_error")
        if isinstance(exc, openai.APIStatusError):
            if exc.status_code == 429 or exc.status_code >= 500:
                return ProviderTransientError(self.provider_id, exc.status_code, str(code))
            return ProviderRejectedError(self.provider_id, exc.status_code, str(code))
        return ProviderUnavailableError(self.provider_id, status, str(code))
