from __future__ import annotations

import secrets
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..auth.verifier import VerifiedIdentity
from ..bootstrap import Gateway
from ..errors import ConfigurationError, InvalidCredentialError, UnauthenticatedError
from ..models.account import Account
from ..models.api_models import (
    AccountResponse,
    ChangePlanRequest,
    GenerateRequest,
    GenerateResponse,
    GrantCreditsRequest,
    LanguageResponse,
    ProofreadRequest,
    ProofreadResponse,
    TemplateResponse,
    TransactionResponse,
)
from ..services.operations import GenerationOperation, ProofreadOperation

router = APIRouter()

_bearer = HTTPBearer(auto_error=False)


def get_gateway(request: Request) -> Gateway:
    gateway: Optional[Gateway] = getattr(request.app.state, "gateway", None)
    if gateway is None:
        reason = getattr(request.app.state, "startup_error", None) or "gateway not initialised"
        raise ConfigurationError(reason)
    return gateway


def bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> str:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError()
    return credentials.credentials


def correlation_id(x_request_id: Optional[str] = Header(default=None)) -> str:
    return x_request_id or uuid4().hex


async def current_identity(
    token: str = Depends(bearer_token),
    gateway: Gateway = Depends(get_gateway),
) -> VerifiedIdentity:
    return await gateway.verifier.verify(token)


def require_admin(
    gateway: Gateway = Depends(get_gateway),
    x_admin_key: Optional[str] = Header(default=None),
) -> None:
    if not gateway.admin_api_key:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if not x_admin_key or not secrets.compare_digest(x_admin_key, gateway.admin_api_key):
        raise InvalidCredentialError("Unauthorized: Invalid admin key")


def _account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        plan=account.plan,
        credits=account.credits,
        updated_at=account.updated_at,
    )


# Paid operations


@router.post("/generate", response_model=GenerateResponse, tags=["operations"])
async def generate_content(
    payload: GenerateRequest,
    gateway: Gateway = Depends(get_gateway),
    token: str = Depends(bearer_token),
    request_id: str = Depends(correlation_id),
) -> GenerateResponse:
    template = payload.template
    operation = GenerationOperation(
        topic=payload.topic,
        language=payload.language,
        template_name=template.name if template else None,
        template_description=template.description if template else None,
        template_cost=template.credit_cost if template else None,
        model_preference=payload.ai_model_preference,
    )
    result = await gateway.executor.execute(token, operation, request_id)
    return GenerateResponse(
        text=result.payload["text"],
        credits_used=result.credits_charged,
        model_used=result.model_used,
    )


@router.post("/proofread", response_model=ProofreadResponse, tags=["operations"])
async def proofread_content(
    payload: ProofreadRequest,
    gateway: Gateway = Depends(get_gateway),
    token: str = Depends(bearer_token),
    request_id: str = Depends(correlation_id),
) -> ProofreadResponse:
    operation = ProofreadOperation(text_to_proofread=payload.text_to_proofread)
    result = await gateway.executor.execute(token, operation, request_id)
    return ProofreadResponse(
        improved_text=result.payload["improved_text"],
        suggestions=result.payload["suggestions"],
        credits_used=result.credits_charged,
    )


# Account


@router.get("/account", response_model=AccountResponse, tags=["account"])
async def get_account(
    gateway: Gateway = Depends(get_gateway),
    identity: VerifiedIdentity = Depends(current_identity),
    request_id: str = Depends(correlation_id),
) -> AccountResponse:
    account = await gateway.accounts.get_or_create_account(identity, request_id)
    return _account_response(account)


@router.get(
    "/account/transactions",
    response_model=List[TransactionResponse],
    tags=["account"],
)
async def get_transactions(
    gateway: Gateway = Depends(get_gateway),
    identity: VerifiedIdentity = Depends(current_identity),
) -> List[TransactionResponse]:
    history = await gateway.accounts.get_credit_history(identity.subject_id)
    return [
        TransactionResponse(
            id=tx.id,
            transaction_type=tx.transaction_type.value,
            amount=tx.amount,
            balance_after=tx.balance_after,
            operation_kind=tx.operation_kind.value if tx.operation_kind else None,
            timestamp=tx.timestamp,
        )
        for tx in history
    ]


# Catalog


@router.get(
    "/catalog/templates",
    response_model=List[TemplateResponse],
    tags=["catalog"],
)
async def list_templates(
    search: str = Query(default=""),
    category: Optional[str] = Query(default=None),
    gateway: Gateway = Depends(get_gateway),
    identity: VerifiedIdentity = Depends(current_identity),
) -> List[TemplateResponse]:
    templates = await gateway.catalog.search_templates(search, category)
    return [TemplateResponse(**t.model_dump()) for t in templates]


@router.get(
    "/catalog/languages",
    response_model=List[LanguageResponse],
    tags=["catalog"],
)
async def list_languages(
    gateway: Gateway = Depends(get_gateway),
    identity: VerifiedIdentity = Depends(current_identity),
) -> List[LanguageResponse]:
    languages = await gateway.catalog.list_languages()
    return [LanguageResponse(**lang.model_dump()) for lang in languages]


# Admin


@router.post(
    "/admin/accounts/{account_id}/plan",
    response_model=AccountResponse,
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)
async def change_plan(
    account_id: str,
    payload: ChangePlanRequest,
    gateway: Gateway = Depends(get_gateway),
    request_id: str = Depends(correlation_id),
) -> AccountResponse:
    try:
        account = await gateway.accounts.change_plan(account_id, payload.plan, request_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    return _account_response(account)


@router.post(
    "/admin/accounts/{account_id}/credits",
    response_model=AccountResponse,
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)
async def grant_credits(
    account_id: str,
    payload: GrantCreditsRequest,
    gateway: Gateway = Depends(get_gateway),
    request_id: str = Depends(correlation_id),
) -> AccountResponse:
    await gateway.accounts.grant_credits(
        account_id=account_id,
        amount=payload.amount,
        description=payload.description,
        correlation_id=request_id,
    )
    account = await gateway.accounts.get_account(account_id)
    return _account_response(account)  # type: ignore[arg-type]
