from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, Field

from .account import utcnow
from .base import DBSerializableModel


class OperationKind(str, Enum):
    GENERATION = "generation"
    PROOFREADING = "proofreading"


class TransactionType(str, Enum):
    CHARGE = "charge"
    GRANT = "grant"
    PLAN_CHANGE = "plan_change"


class ChargeRequest(BaseModel):
    """Ephemeral description of one charge; never persisted."""

    account_id: str
    amount: int = Field(gt=0)
    operation_kind: OperationKind


class Transaction(DBSerializableModel):
    """
    Audit record written after every balance mutation.
    """

    collection_name: ClassVar[str] = "credit_transactions"

    id: Optional[str] = Field(default=None)
    account_id: str
    transaction_type: TransactionType
    amount: int = 0
    balance_after: int
    operation_kind: Optional[OperationKind] = None
    description: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
