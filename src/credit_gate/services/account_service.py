from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..auth.verifier import VerifiedIdentity
from ..db.base import BaseDBManager
from ..errors import AccountNotFoundError, ProfileMissingError
from ..logging.ledger_logger import LedgerLogger
from ..models.account import Account
from ..models.transaction import ChargeRequest, Transaction, TransactionType
from ..policy.plans import find_plan

logger = logging.getLogger(__name__)


class AccountService:
    """
    Account lifecycle and balance bookkeeping.

    Balance changes go through the store's atomic primitives; this service
    adds the audit trail (transaction record + ledger entry) after each
    committed change.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: LedgerLogger,
        default_plan: str = "Free",
        auto_provision: bool = True,
    ) -> None:
        default_policy = find_plan(default_plan)
        if default_policy is None:
            raise ValueError(f"unknown default plan: {default_plan}")
        self._db = db
        self._ledger = ledger
        self._default_policy = default_policy
        self._auto_provision = auto_provision

    async def get_account(self, account_id: str) -> Optional[Account]:
        return await self._db.get_account(account_id)

    async def get_or_create_account(
        self, identity: VerifiedIdentity, correlation_id: str | None = None
    ) -> Account:
        """
        Load the caller's account, provisioning it on first access.

        Concurrent first calls race on ``create_account_if_absent``; the
        losers read the winner's record, so the balance is never reset.
        """
        account = await self._db.get_account(identity.subject_id)
        if account is not None:
            return account
        if not self._auto_provision:
            raise ProfileMissingError()

        candidate = Account(
            id=identity.subject_id,
            plan=self._default_policy.name,
            credits=self._default_policy.starting_credits,
            email=identity.email,
            username=identity.name or _username_from_email(identity.email),
        )
        try:
            account, created = await self._db.create_account_if_absent(candidate)
        except AccountNotFoundError as exc:
            logger.error("Lazy account creation failed for %s", identity.subject_id)
            raise ProfileMissingError() from exc

        if created:
            logger.info("Created account %s on plan %s", account.id, account.plan)
            await self._ledger.log_transaction(
                user_id=account.id,
                message="Account provisioned",
                details={"plan": account.plan, "credits": account.credits},
                correlation_id=correlation_id,
            )
        return account

    async def charge(
        self, request: ChargeRequest, correlation_id: str | None = None
    ) -> int:
        """
        Commit one charge atomically and record it. Returns the new balance.

        ``InsufficientCreditsError`` and ``AccountNotFoundError`` from the
        store propagate unchanged; nothing is recorded for them here. Once
        the charge has committed the new balance is always returned: a
        failed audit write is logged and left for reconciliation.
        """
        new_balance = await self._db.charge_atomically(request.account_id, request.amount)

        try:
            async with self._db.transaction():
                await self._db.add_transaction(
                    Transaction(
                        account_id=request.account_id,
                        transaction_type=TransactionType.CHARGE,
                        amount=request.amount,
                        balance_after=new_balance,
                        operation_kind=request.operation_kind,
                        description=f"{request.operation_kind.value} charge",
                    )
                )
                await self._ledger.log_transaction(
                    user_id=request.account_id,
                    message="Credits charged",
                    details={
                        "amount": request.amount,
                        "new_balance": new_balance,
                        "operation_kind": request.operation_kind.value,
                    },
                    correlation_id=correlation_id,
                )
        except Exception as exc:
            await self._record_unaudited_charge(request, new_balance, exc, correlation_id)
        return new_balance

    async def _record_unaudited_charge(
        self,
        request: ChargeRequest,
        new_balance: int,
        exc: Exception,
        correlation_id: str | None,
    ) -> None:
        logger.error(
            "Charge of %s committed for %s (correlation=%s) but audit write failed: %r",
            request.amount,
            request.account_id,
            correlation_id,
            exc,
        )
        try:
            await self._ledger.log_reconciliation(
                user_id=request.account_id,
                message="Charge committed without transaction record",
                details={
                    "amount": request.amount,
                    "new_balance": new_balance,
                    "operation_kind": request.operation_kind.value,
                    "reason": type(exc).__name__,
                },
                correlation_id=correlation_id,
            )
        except Exception:
            logger.exception(
                "Reconciliation entry for %s could not be stored (amount=%s, correlation=%s)",
                request.account_id,
                request.amount,
                correlation_id,
            )

    async def grant_credits(
        self,
        account_id: str,
        amount: int,
        description: str | None = None,
        correlation_id: str | None = None,
    ) -> int:
        if amount <= 0:
            raise ValueError("amount must be positive")

        new_balance = await self._db.grant_credits(account_id, amount)
        async with self._db.transaction():
            await self._db.add_transaction(
                Transaction(
                    account_id=account_id,
                    transaction_type=TransactionType.GRANT,
                    amount=amount,
                    balance_after=new_balance,
                    description=description,
                )
            )
            await self._ledger.log_transaction(
                user_id=account_id,
                message="Credits granted",
                details={
                    "amount": amount,
                    "new_balance": new_balance,
                    "description": description or "",
                },
                correlation_id=correlation_id,
            )
        return new_balance

    async def change_plan(
        self, account_id: str, plan_id: str, correlation_id: str | None = None
    ) -> Account:
        """
        Move the account to ``plan_id`` and reset its balance to the plan's
        starting allotment.
        """
        policy = find_plan(plan_id)
        if policy is None:
            raise ValueError(f"Invalid plan ID: {plan_id}")

        account = await self._db.set_plan(account_id, policy.name, policy.starting_credits)
        async with self._db.transaction():
            await self._db.add_transaction(
                Transaction(
                    account_id=account_id,
                    transaction_type=TransactionType.PLAN_CHANGE,
                    balance_after=account.credits,
                    description=f"Plan changed to {policy.name}",
                )
            )
            await self._ledger.log_transaction(
                user_id=account_id,
                message="Plan changed",
                details={"plan": policy.name, "credits": account.credits},
                correlation_id=correlation_id,
            )
        return account

    async def get_credit_history(self, account_id: str) -> Iterable[Transaction]:
        return await self._db.get_transactions(account_id)


def _username_from_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.split("@")[0]

