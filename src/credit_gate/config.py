from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Runtime
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Account store; in-memory when MONGO_URI is unset
    MONGO_URI: Optional[str] = None
    MONGO_DB: str = "credit_gate"

    # Identity provider. Either a shared HS256 secret or an issuer JWKS
    # endpoint, e.g. Firebase:
    # https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com
    AUTH_JWT_SECRET: Optional[str] = None
    AUTH_JWKS_URL: Optional[str] = None
    AUTH_ISSUER: Optional[str] = None
    AUTH_AUDIENCE: Optional[str] = None
    AUTH_ALGORITHMS: List[str] = ["RS256"]

    # LLM providers
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MAX_RETRIES: int = 2
    GOOGLE_API_KEY: Optional[str] = None

    # Accounts and pricing
    DEFAULT_PLAN: str = "Free"
    AUTO_PROVISION_ACCOUNTS: bool = True
    GENERATION_BASE_COST: int = 10
    PROOFREAD_COST: int = 5

    # Catalog cache
    CATALOG_CACHE_TTL_SECONDS: int = 300

    # Ledger mirror file
    LEDGER_LOG_PATH: str = "logs/credit_ledger.log"

    # Admin endpoints are disabled unless a key is configured
    ADMIN_API_KEY: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    return Settings()
