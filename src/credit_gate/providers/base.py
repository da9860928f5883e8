from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator

from ..errors import UnsupportedModelError


class LLMProvider(ABC):
    """
    Text generation over one LLM backend.

    Implementations raise only ``ProviderTransientError``,
    ``ProviderRejectedError`` or ``ProviderUnavailableError`` from
    ``generate``; SDK exceptions never escape.
    """

    provider_id: str

    @abstractmethod
    async def generate(self, prompt: str, model_id: str) -> str:
        ...

    async def aclose(self) -> None:
        return None


class ProviderRegistry:
    """Explicitly constructed provider handles keyed by ``provider_id``."""

    def __init__(self, providers: Iterable[LLMProvider] = ()) -> None:
        self._providers: Dict[str, LLMProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: LLMProvider) -> None:
        self._providers[provider.provider_id] = provider

    def get(self, provider_id: str) -> LLMProvider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise UnsupportedModelError(provider_id)
        return provider

    def provider_ids(self) -> Iterator[str]:
        return iter(self._providers)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()
