"""
Bearer token verification.

Handles:
- Shared-secret (HS256) verification for development and tests
- JWKS-based (RS256) verification against an identity provider's key set,
  e.g. Firebase Auth ID tokens
- Issuer/audience validation when configured

Callers only ever see ``UnauthenticatedError`` / ``InvalidCredentialError``
with a generic message; the PyJWT diagnostic is logged here.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import jwt
from pydantic import BaseModel

from ..errors import ConfigurationError, InvalidCredentialError, UnauthenticatedError

logger = logging.getLogger(__name__)


class VerifiedIdentity(BaseModel):
    subject_id: str
    email: Optional[str] = None
    name: Optional[str] = None


class IdentityVerifier(ABC):
    """Validates a bearer credential and yields a stable subject id."""

    async def verify(self, token: Optional[str]) -> VerifiedIdentity:
        if token is None or not token.strip():
            raise UnauthenticatedError()

        try:
            claims = await self._decode(token.strip())
        except jwt.PyJWTError as exc:
            logger.info("Token verification failed: %s: %s", type(exc).__name__, exc)
            raise InvalidCredentialError() from exc

        subject = claims.get("sub")
        if not subject or not isinstance(subject, str):
            logger.info("Token verification failed: missing subject claim")
            raise InvalidCredentialError()

        return VerifiedIdentity(
            subject_id=subject,
            email=claims.get("email"),
            name=claims.get("name"),
        )

    @abstractmethod
    async def _decode(self, token: str) -> Dict[str, Any]:
        """Return verified claims or raise ``jwt.PyJWTError``."""
        ...


class JWTIdentityVerifier(IdentityVerifier):
    """
    PyJWT-backed verifier.

    Exactly one of ``secret`` (HS256) or ``jwks_url`` (asymmetric keys
    resolved by ``kid``) must be given.
    """

    def __init__(
        self,
        *,
        secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        algorithms: Sequence[str] = ("RS256",),
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ) -> None:
        if not secret and not jwks_url and jwks_client is None:
            raise ConfigurationError("AUTH_JWT_SECRET or AUTH_JWKS_URL must be configured")

        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._algorithms: List[str] = ["HS256"] if secret else list(algorithms)
        self._jwks_client = jwks_client
        if self._jwks_client is None and not secret:
            self._jwks_client = jwt.PyJWKClient(jwks_url, cache_keys=True)  # type: ignore[arg-type]

    async def _decode(self, token: str) -> Dict[str, Any]:
        if self._secret:
            key: Any = self._secret
        else:
            # PyJWKClient fetches over the network with a blocking client.
            signing_key = await asyncio.to_thread(
                self._jwks_client.get_signing_key_from_jwt, token  # type: ignore[union-attr]
            )
            key = signing_key.key

        return jwt.decode(
            token,
            key,
            algorithms=self._algorithms,
            issuer=self._issuer,
            audience=self._audience,
            options={
                "require": ["exp", "sub"],
                "verify_aud": self._audience is not None,
                "verify_iss": self._issuer is not None,
            },
        )
