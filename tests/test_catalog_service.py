from __future__ import annotations

import pytest

from credit_gate.cache.memory import InMemoryAsyncCache
from credit_gate.db.memory import InMemoryDBManager
from credit_gate.models.catalog import Language, Template
from credit_gate.services.catalog_service import CatalogService


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def _catalog(ttl_seconds=300):
    db = InMemoryDBManager()
    await db.add_template(Template(name="Blog post", category="marketing", credit_cost=20))
    await db.add_template(Template(name="Product description", category="marketing"))
    await db.add_template(Template(name="Cover letter", category="career", credit_cost=15))
    await db.add_language(Language(name="English", code="en"))
    clock = FakeClock()
    cache = InMemoryAsyncCache(clock=clock)
    return db, cache, clock, CatalogService(db=db, cache=cache, ttl_seconds=ttl_seconds)


@pytest.mark.asyncio
async def test_templates_sorted_by_name():
    _, _, _, catalog = await _catalog()
    names = [t.name for t in await catalog.list_templates()]
    assert names == ["Blog post", "Cover letter", "Product description"]


@pytest.mark.asyncio
async def test_search_and_category_filter():
    _, _, _, catalog = await _catalog()

    assert [t.name for t in await catalog.search_templates("post")] == ["Blog post"]
    assert [t.name for t in await catalog.search_templates("", "career")] == ["Cover letter"]
    assert [t.name for t in await catalog.search_templates("O", "marketing")] == [
        "Blog post",
        "Product description",
    ]
    assert await catalog.search_templates("poem") == []


@pytest.mark.asyncio
async def test_listing_is_served_from_cache_until_ttl():
    db, _, clock, catalog = await _catalog(ttl_seconds=60)
    assert len(await catalog.list_languages()) == 1

    await db.add_language(Language(name="Spanish", code="es"))
    assert len(await catalog.list_languages()) == 1

    clock.now += 61
    assert [lang.code for lang in await catalog.list_languages()] == ["en", "es"]


@pytest.mark.asyncio
async def test_force_refresh_and_clear_bypass_cache():
    db, cache, _, catalog = await _catalog()
    assert len(await catalog.list_templates()) == 3

    await db.add_template(Template(name="Newsletter"))
    assert len(await catalog.list_templates()) == 3
    assert len(await catalog.list_templates(force_refresh=True)) == 4

    await db.add_template(Template(name="Press release"))
    await cache.clear()
    assert len(await catalog.list_templates()) == 5
