"""
Gate exceptions.

Every failure the metered gate can produce is a ``GateError`` carrying a
stable ``code``, the HTTP status it maps to, a user-safe ``message`` and a
``details`` dict with structured, non-sensitive context. Provider payloads and
verification internals never go into ``message`` or ``details``; they are
logged by the component that observed them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GateError(Exception):
    """Base exception for all gate errors."""

    code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str = "Internal Server Error",
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class UnauthenticatedError(GateError):
    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Unauthorized: No token provided") -> None:
        super().__init__(message)


class InvalidCredentialError(GateError):
    code = "invalid_credential"
    status_code = 401

    def __init__(self, message: str = "Unauthorized: Invalid token") -> None:
        super().__init__(message)


class ProfileMissingError(GateError):
    code = "profile_missing"
    status_code = 404

    def __init__(self, message: str = "User profile not found.") -> None:
        super().__init__(message)


class AccountNotFoundError(GateError):
    """Raised by the account store when the addressed account does not exist."""

    code = "account_not_found"
    status_code = 404

    def __init__(self, account_id: str) -> None:
        super().__init__("Account not found.")
        self.account_id = account_id


class InsufficientCreditsError(GateError):
    """
    Raised when the balance cannot cover a charge.

    Attributes:
        required: Credits required for the operation
        available: Credits on the account when the check ran
    """

    code = "insufficient_credits"
    status_code = 403

    def __init__(
        self,
        message: str = "Not enough credits.",
        required: int = 0,
        available: int = 0,
    ) -> None:
        super().__init__(
            message,
            details={"required": required, "available": available},
        )
        self.required = required
        self.available = available


class UnsupportedModelError(GateError):
    """A model key that cannot be routed to a registered provider."""

    code = "unsupported_model"
    status_code = 500

    def __init__(self, model_key: str) -> None:
        super().__init__("Configured AI model is not supported.")
        self.model_key = model_key


class ConfigurationError(GateError):
    code = "configuration_error"
    status_code = 500

    def __init__(self, reason: str) -> None:
        super().__init__(
            "Internal Server Configuration Error: AI service not available."
        )
        self.reason = reason


class ProviderError(GateError):
    """
    Normalized downstream LLM failure.

    ``provider_status`` keeps the provider's own HTTP status (or SDK error
    code) for operator diagnosis. Statuses in ``PROXYABLE_STATUSES`` are
    forwarded to the caller, everything else becomes a 500.
    """

    code = "provider_error"
    PROXYABLE_STATUSES = frozenset({429, 503})

    def __init__(
        self,
        provider_id: str,
        provider_status: Optional[int] = None,
        provider_code: Optional[str] = None,
        message: str = "Failed to generate content from AI model.",
    ) -> None:
        status_code = (
            provider_status if provider_status in self.PROXYABLE_STATUSES else 500
        )
        details: Dict[str, Any] = {"provider": provider_id}
        if provider_status is not None:
            details["status"] = provider_status
        if provider_code:
            details["code"] = provider_code
        super().__init__(message, status_code=status_code, details=details)
        self.provider_id = provider_id
        self.provider_status = provider_status
        self.provider_code = provider_code


class ProviderTransientError(ProviderError):
    code = "provider_transient"


class ProviderRejectedError(ProviderError):
    code = "provider_rejected"


class ProviderUnavailableError(ProviderError):
    code = "provider_unavailable"
