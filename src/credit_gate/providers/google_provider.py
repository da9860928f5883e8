"""Gemini provider using the official Google GenAI SDK."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors

from .base import LLMProvider
from ..errors import (
    ProviderError,
    ProviderRejectedError,
    ProviderTransientError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


class GoogleGenAIProvider(LLMProvider):
    provider_id = "google"

    def __init__(self, api_key: Optional[str] = None, client: Optional[Any] = None) -> None:
        self._client = client if client is not None else genai.Client(api_key=api_key)

    async def generate(self, prompt: str, model_id: str) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=model_id,
                contents=prompt,
            )
        except errors.APIError as exc:
            raise self._normalize(exc, model_id) from exc
        except httpx.TransportError as exc:
            logger.error("Gemini transport error: model=%s: %s", model_id, exc)
            raise ProviderUnavailableError(
                self.provider_id, provider_code=type(exc).__name__
            ) from exc

        text = response.text
        if not text or not text.strip():
            logger.error("Gemini returned empty content for model %s", model_id)
            raise ProviderRejectedError(self.provider_id, provider_code="empty_response")
        return text.strip()

    def _normalize(self, exc: errors.APIError, model_id: str) -> ProviderError:
        status = exc.code
        code = exc.status or type(exc).__name__
        logger.error(
            "Gemini API error: model=%s status=%s code=%s: %s",
            model_id,
            status,
            code,
            exc.message,
        )
        if isinstance(exc, errors.ServerError) or status == 429:
            return ProviderTransientError(self.provider_id, status, code)
        if isinstance(exc, errors.ClientError):
            return ProviderRejectedError(self.provider_id, status, code)
        return ProviderUnavailableError(self.provider_id, status, code)
