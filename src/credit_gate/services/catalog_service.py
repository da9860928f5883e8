from __future__ import annotations

from typing import Iterable, List, Optional

from ..cache.base import AsyncCacheBackend
from ..db.base import BaseDBManager
from ..models.catalog import Language, Template


class CatalogService:
    """
    Read-only template and language listings with a read-through cache.
    """

    TEMPLATES_KEY = "catalog:templates"
    LANGUAGES_KEY = "catalog:languages"

    def __init__(
        self,
        db: BaseDBManager,
        cache: AsyncCacheBackend,
        ttl_seconds: int = 300,
    ) -> None:
        self._db = db
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    async def list_templates(self, force_refresh: bool = False) -> List[Template]:
        if force_refresh:
            await self._cache.delete(self.TEMPLATES_KEY)
        return await self._cache.get_or_load(
            self.TEMPLATES_KEY, self._load_templates, ttl_seconds=self._ttl_seconds
        )

    async def list_languages(self, force_refresh: bool = False) -> List[Language]:
        if force_refresh:
            await self._cache.delete(self.LANGUAGES_KEY)
        return await self._cache.get_or_load(
            self.LANGUAGES_KEY, self._load_languages, ttl_seconds=self._ttl_seconds
        )

    async def search_templates(
        self, search: str = "", category: Optional[str] = None
    ) -> List[Template]:
        return filter_templates(await self.list_templates(), search, category)

    async def find_template(self, name: Optional[str]) -> Optional[Template]:
        """Listed template with this name (case-insensitive), if any."""
        if not name or not name.strip():
            return None
        key = name.strip().lower()
        for template in await self.list_templates():
            if template.name.lower() == key:
                return template
        return None

    async def _load_templates(self) -> List[Template]:
        return list(await self._db.list_templates())

    async def _load_languages(self) -> List[Language]:
        return list(await self._db.list_languages())


def filter_templates(
    templates: Iterable[Template], search: str = "", category: Optional[str] = None
) -> List[Template]:
    needle = (search or "").lower()
    return [
        t
        for t in templates
        if needle in t.name.lower() and (not category or t.category == category)
    ]
