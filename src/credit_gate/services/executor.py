"""
Metered operation executor.

Flow for every paid operation:
  1. Verify the bearer token (no store or provider access before this).
  2. Load the caller's account, provisioning it on first access.
  3. Price the operation; listed templates cost what the catalog says.
  4. Reject with InsufficientCredits before any provider call the account
     cannot pay for.
  5. Route to a model and invoke its provider. A provider failure ends the
     request with the account untouched.
  6. Only after the provider succeeded, commit the charge atomically.
  7. Return the payload with what was charged and which model ran.

The affordability check in step 4 and the commit in step 6 are separate, so
two concurrent requests can both pass step 4 and only one of them commit.
The other request's work has already been delivered; it is returned anyway
and recorded as a reconciliation entry. No compensation is attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..auth.verifier import IdentityVerifier
from ..errors import (
    AccountNotFoundError,
    GateError,
    InsufficientCreditsError,
    ProviderError,
)
from ..logging.ledger_logger import LedgerLogger
from ..models.transaction import ChargeRequest
from ..policy.model_router import ModelRouter
from ..policy.plans import DEFAULT_PRICING, Pricing, compute_cost, resolve_plan
from ..providers.base import ProviderRegistry
from .account_service import AccountService
from .catalog_service import CatalogService
from .operations import MeteredOperation

logger = logging.getLogger(__name__)

RESULT_EXCERPT_CHARS = 2000


class ExecutionState(str, Enum):
    START = "start"
    AUTHENTICATED = "authenticated"
    ACCOUNT_LOADED = "account_loaded"
    COST_COMPUTED = "cost_computed"
    AFFORDABILITY_CHECKED = "affordability_checked"
    PROVIDER_INVOKED = "provider_invoked"
    CHARGE_COMMITTED = "charge_committed"
    RESPONDED = "responded"


@dataclass
class OperationResult:
    payload: Dict[str, Any]
    credits_charged: int
    model_used: str
    balance: Optional[int]


class MeteredOperationExecutor:
    def __init__(
        self,
        verifier: IdentityVerifier,
        accounts: AccountService,
        providers: ProviderRegistry,
        router: ModelRouter,
        ledger: LedgerLogger,
        pricing: Pricing = DEFAULT_PRICING,
        catalog: Optional[CatalogService] = None,
    ) -> None:
        self._verifier = verifier
        self._accounts = accounts
        self._providers = providers
        self._router = router
        self._ledger = ledger
        self._pricing = pricing
        self._catalog = catalog

    async def execute(
        self,
        token: Optional[str],
        operation: MeteredOperation,
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        state = ExecutionState.START
        subject_id: Optional[str] = None
        try:
            identity = await self._verifier.verify(token)
            subject_id = identity.subject_id
            state = ExecutionState.AUTHENTICATED

            account = await self._accounts.get_or_create_account(identity, correlation_id)
            state = ExecutionState.ACCOUNT_LOADED

            cost = await self._price(operation)
            state = ExecutionState.COST_COMPUTED

            if not account.can_afford(cost):
                raise InsufficientCreditsError(required=cost, available=account.credits)
            state = ExecutionState.AFFORDABILITY_CHECKED

            plan = resolve_plan(account.plan)
            selection = self._router.select_model(plan, operation.model_preference, operation.kind)
            provider = self._providers.get(selection.provider_id)
            logger.info(
                "Invoking %s for %s: plan=%s preference=%s model=%s",
                selection.provider_id,
                subject_id,
                plan.name,
                operation.model_preference,
                selection.model_id,
            )
            text = await provider.generate(operation.build_prompt(), selection.model_id)
            state = ExecutionState.PROVIDER_INVOKED
        except GateError as exc:
            logger.info(
                "Metered %s failed at %s: %s (subject=%s)",
                operation.kind.value,
                state.value,
                exc.code,
                subject_id,
            )
            if isinstance(exc, ProviderError):
                await self._ledger.log_error(
                    message="Provider call failed; nothing charged",
                    details={**exc.details, "error": exc.code},
                    user_id=subject_id,
                    correlation_id=correlation_id,
                )
            raise

        payload = operation.parse_result(text)
        charge = ChargeRequest(account_id=account.id, amount=cost, operation_kind=operation.kind)
        try:
            balance: Optional[int] = await self._accounts.charge(charge, correlation_id)
            credits_charged = cost
            state = ExecutionState.CHARGE_COMMITTED
        except (InsufficientCreditsError, AccountNotFoundError) as exc:
            await self._record_unbilled(charge, exc, selection.model_id, text, correlation_id)
            balance = None
            credits_charged = 0

        logger.info(
            "%s successful for user: %s. Credits used: %s",
            operation.kind.value,
            account.id,
            credits_charged,
        )
        state = ExecutionState.RESPONDED
        logger.debug("Metered %s reached %s", operation.kind.value, state.value)
        return OperationResult(
            payload=payload,
            credits_charged=credits_charged,
            model_used=selection.display_name,
            balance=balance,
        )

    async def _price(self, operation: MeteredOperation) -> int:
        """
        A template listed in the catalog is charged at its listed cost. The
        cost sent with an unlisted template can raise the price above the
        base cost but never lower it.
        """
        template_cost = operation.template_cost
        if operation.template_name and self._catalog is not None:
            listed = await self._catalog.find_template(operation.template_name)
            if listed is not None:
                template_cost = listed.credit_cost
            elif template_cost is not None and template_cost < self._pricing.generation_base_cost:
                template_cost = None
        return compute_cost(operation.kind, template_cost, self._pricing)

    async def _record_unbilled(
        self,
        charge: ChargeRequest,
        exc: GateError,
        model_id: str,
        text: str,
        correlation_id: Optional[str],
    ) -> None:
        details = {
            "amount": charge.amount,
            "operation_kind": charge.operation_kind.value,
            "model": model_id,
            "reason": exc.code,
            "available": getattr(exc, "available", None),
            "result_excerpt": text[:RESULT_EXCERPT_CHARS],
        }
        logger.error(
            "Reconciliation needed: %s delivered to %s but charge of %s failed (%s)",
            charge.operation_kind.value,
            charge.account_id,
            charge.amount,
            exc.code,
        )
        await self._ledger.log_reconciliation(
            user_id=charge.account_id,
            message="Operation delivered without charge",
            details=details,
            correlation_id=correlation_id,
        )

