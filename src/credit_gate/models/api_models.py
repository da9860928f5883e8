from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TemplateSpec(_WireModel):
    name: str
    credit_cost: Optional[int] = Field(default=None, alias="creditCost")
    description: Optional[str] = None


class GenerateRequest(_WireModel):
    topic: str = Field(min_length=1)
    template: Optional[TemplateSpec] = None
    language: str = Field(min_length=1)
    ai_model_preference: Optional[str] = Field(default=None, alias="aiModelPreference")


class GenerateResponse(_WireModel):
    text: str
    credits_used: int = Field(alias="creditsUsed")
    model_used: str = Field(alias="modelUsed")


class ProofreadRequest(_WireModel):
    text_to_proofread: str = Field(min_length=1, alias="textToProofread")


class ProofreadResponse(_WireModel):
    improved_text: str = Field(alias="improvedText")
    suggestions: str
    credits_used: int = Field(alias="creditsUsed")


class AccountResponse(_WireModel):
    id: str
    plan: str
    credits: int
    updated_at: datetime = Field(alias="updatedAt")


class TransactionResponse(_WireModel):
    id: Optional[str] = None
    transaction_type: str = Field(alias="transactionType")
    amount: int
    balance_after: int = Field(alias="balanceAfter")
    operation_kind: Optional[str] = Field(default=None, alias="operationKind")
    timestamp: datetime


class TemplateResponse(_WireModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    credit_cost: Optional[int] = Field(default=None, alias="creditCost")


class LanguageResponse(_WireModel):
    id: Optional[str] = None
    name: str
    code: Optional[str] = None


class ChangePlanRequest(_WireModel):
    plan: str = Field(min_length=1)


class GrantCreditsRequest(_WireModel):
    amount: int = Field(gt=0)
    description: Optional[str] = None
