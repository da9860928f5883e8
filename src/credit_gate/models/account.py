from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional

from pydantic import Field

from .base import DBSerializableModel

# Sentinel balance for plans without a credit limit.
UNLIMITED_CREDITS = -1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanTier(str, Enum):
    FREE = "Free"
    BASIC = "Basic"
    PREMIUM = "Premium"
    ULTIMATE = "Ultimate"


class Account(DBSerializableModel):
    """
    Per-subject plan and credit balance.

    ``plan`` is kept as a plain string so that legacy or unknown tiers
    stored by other writers still load; the plan policy decides how to
    treat them.
    """

    collection_name: ClassVar[str] = "accounts"

    id: str
    plan: str = PlanTier.FREE.value
    credits: int = Field(ge=UNLIMITED_CREDITS)
    email: Optional[str] = None
    username: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_unlimited(self) -> bool:
        return self.credits == UNLIMITED_CREDITS

    def can_afford(self, amount: int) -> bool:
        return self.is_unlimited or self.credits >= amount
