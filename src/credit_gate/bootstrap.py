"""
Service wiring.

Builds every long-lived handle once (store, ledger, verifier, providers,
router, services) and hands them to the HTTP layer as a single ``Gateway``.
Missing or invalid configuration surfaces here as ``ConfigurationError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .auth.verifier import IdentityVerifier, JWTIdentityVerifier
from .cache.base import AsyncCacheBackend
from .cache.memory import InMemoryAsyncCache
from .config import Settings
from .db.base import BaseDBManager
from .db.memory import InMemoryDBManager
from .db.mongo import MongoDBManager
from .errors import ConfigurationError
from .logging.ledger_logger import LedgerLogger
from .policy.model_router import ModelRouter
from .policy.plans import Pricing
from .providers.base import ProviderRegistry
from .providers.google_provider import GoogleGenAIProvider
from .providers.openai_provider import OpenAIChatProvider
from .providers.stub import StubProvider
from .services.account_service import AccountService
from .services.catalog_service import CatalogService
from .services.executor import MeteredOperationExecutor

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    db: BaseDBManager
    ledger: LedgerLogger
    verifier: IdentityVerifier
    providers: ProviderRegistry
    model_router: ModelRouter
    accounts: AccountService
    catalog: CatalogService
    executor: MeteredOperationExecutor
    admin_api_key: Optional[str] = None

    async def aclose(self) -> None:
        await self.providers.aclose()
        await self.db.close()


def create_db_manager(settings: Settings) -> BaseDBManager:
    if settings.MONGO_URI:
        return MongoDBManager.from_client_uri(settings.MONGO_URI, settings.MONGO_DB)
    logger.warning("MONGO_URI not set; using the in-memory account store")
    return InMemoryDBManager()


def create_verifier(settings: Settings) -> IdentityVerifier:
    return JWTIdentityVerifier(
        secret=settings.AUTH_JWT_SECRET,
        jwks_url=settings.AUTH_JWKS_URL,
        issuer=settings.AUTH_ISSUER,
        audience=settings.AUTH_AUDIENCE,
        algorithms=settings.AUTH_ALGORITHMS,
    )


def create_provider_registry(settings: Settings) -> ProviderRegistry:
    if not settings.OPENAI_API_KEY:
        raise ConfigurationError("OPENAI_API_KEY is not set")

    registry = ProviderRegistry(
        [
            OpenAIChatProvider(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                max_retries=settings.OPENAI_MAX_RETRIES,
            )
        ]
    )
    if settings.GOOGLE_API_KEY:
        registry.register(GoogleGenAIProvider(api_key=settings.GOOGLE_API_KEY))
    else:
        logger.warning("GOOGLE_API_KEY not set; Gemini models return placeholder text")
        registry.register(StubProvider("google"))
    registry.register(StubProvider("anthropic"))
    return registry


def build_gateway(
    settings: Settings,
    *,
    db: Optional[BaseDBManager] = None,
    cache: Optional[AsyncCacheBackend] = None,
    verifier: Optional[IdentityVerifier] = None,
    providers: Optional[ProviderRegistry] = None,
) -> Gateway:
    """
    Construct the gateway from settings. Explicit handles override the
    ones the settings would produce.
    """
    if verifier is None:
        verifier = create_verifier(settings)
    if providers is None:
        providers = create_provider_registry(settings)
    model_router = ModelRouter(providers.provider_ids())

    try:
        pricing = Pricing(
            generation_base_cost=settings.GENERATION_BASE_COST,
            proofread_cost=settings.PROOFREAD_COST,
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    if db is None:
        db = create_db_manager(settings)
    ledger = LedgerLogger(db=db, file_path=Path(settings.LEDGER_LOG_PATH))

    try:
        accounts = AccountService(
            db=db,
            ledger=ledger,
            default_plan=settings.DEFAULT_PLAN,
            auto_provision=settings.AUTO_PROVISION_ACCOUNTS,
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    catalog = CatalogService(
        db=db,
        cache=cache if cache is not None else InMemoryAsyncCache(),
        ttl_seconds=settings.CATALOG_CACHE_TTL_SECONDS,
    )
    executor = MeteredOperationExecutor(
        verifier=verifier,
        accounts=accounts,
        providers=providers,
        router=model_router,
        ledger=ledger,
        pricing=pricing,
        catalog=catalog,
    )
    return Gateway(
        db=db,
        ledger=ledger,
        verifier=verifier,
        providers=providers,
        model_router=model_router,
        accounts=accounts,
        catalog=catalog,
        executor=executor,
        admin_api_key=settings.ADMIN_API_KEY,
    )
