from __future__ import annotations

import logging

from .base import LLMProvider

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "[placeholder]"


class StubProvider(LLMProvider):
    """
    Stand-in for a provider whose backend is not wired yet.

    Returns a clearly marked placeholder instead of failing so a model can
    be offered before its integration ships.
    """

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id

    async def generate(self, prompt: str, model_id: str) -> str:
        logger.warning(
            "Model %s selected but %s integration is a placeholder.",
            model_id,
            self.provider_id,
        )
        first_line = prompt.strip().splitlines()[0] if prompt.strip() else ""
        return f"{PLACEHOLDER_MARKER} Simulated {model_id} response. {first_line}".strip()
