from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

from .base import BaseDBManager
from ..errors import AccountNotFoundError, InsufficientCreditsError
from ..models.account import UNLIMITED_CREDITS, Account, utcnow
from ..models.catalog import Language, Template
from ..models.ledger import LedgerEntry
from ..models.transaction import Transaction


def _advance(previous: datetime) -> datetime:
    now = utcnow()
    return now if now > previous else previous


class InMemoryDBManager(BaseDBManager):
    """
    In-memory implementation used for tests and local development.

    Each account has its own ``asyncio.Lock`` held across the whole
    read-modify-write, so concurrent charges on one account serialize while
    different accounts proceed independently. Stored models are copied on
    the way in and out; callers never hold a live reference.
    """

    def __init__(self) -> None:
        self._accounts: Dict[str, Account] = {}
        # One lock per stored account; accounts are never deleted.
        self._locks: Dict[str, asyncio.Lock] = {}
        self._transactions: List[Transaction] = []
        self._ledger: List[LedgerEntry] = []
        self._templates: List[Template] = []
        self._languages: List[Language] = []
        self._id_counter: int = 0
        self.charge_calls: int = 0

    def _next_id(self) -> str:
        self._id_counter += 1
        return str(self._id_counter)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        # In-memory backend cannot provide real rollback; this is a no-op.
        yield

    # Account operations
    async def get_account(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            raise AccountNotFoundError(account_id)
        return lock

    async def create_account_if_absent(self, account: Account) -> Tuple[Account, bool]:
        # Check and insert run without a suspension point in between.
        existing = self._accounts.get(account.id)
        if existing is not None:
            return existing.model_copy(deep=True), False
        self._accounts[account.id] = account.model_copy(deep=True)
        self._locks[account.id] = asyncio.Lock()
        return account.model_copy(deep=True), True

    async def charge_atomically(self, account_id: str, amount: int) -> int:
        if amount <= 0:
            raise ValueError("amount must be positive")
        self.charge_calls += 1

        async with self._lock_for(account_id):
            account = self._accounts[account_id]
            balance = account.credits
            # Yield between read and write the way a networked store would.
            await asyncio.sleep(0)
            if balance != UNLIMITED_CREDITS and balance < amount:
                raise InsufficientCreditsError(required=amount, available=balance)

            new_balance = balance if balance == UNLIMITED_CREDITS else balance - amount
            self._accounts[account_id] = account.model_copy(
                update={
                    "credits": new_balance,
                    "updated_at": _advance(account.updated_at),
                }
            )
            return new_balance

    async def grant_credits(self, account_id: str, amount: int) -> int:
        if amount <= 0:
            raise ValueError("amount must be positive")

        async with self._lock_for(account_id):
            account = self._accounts[account_id]
            await asyncio.sleep(0)
            new_balance = (
                UNLIMITED_CREDITS if account.is_unlimited else account.credits + amount
            )
            self._accounts[account_id] = account.model_copy(
                update={
                    "credits": new_balance,
                    "updated_at": _advance(account.updated_at),
                }
            )
            return new_balance

    async def set_plan(self, account_id: str, plan: str, credits: int) -> Account:
        async with self._lock_for(account_id):
            account = self._accounts[account_id]
            updated = account.model_copy(
                update={
                    "plan": plan,
                    "credits": credits,
                    "updated_at": _advance(account.updated_at),
                }
            )
            self._accounts[account_id] = updated
            return updated.model_copy(deep=True)

    # Transaction operations
    async def add_transaction(self, tx: Transaction) -> Transaction:
        if tx.id is None:
            tx.id = self._next_id()
        self._transactions.append(tx)
        return tx

    async def get_transactions(self, account_id: str) -> Iterable[Transaction]:
        return sorted(
            (t for t in self._transactions if t.account_id == account_id),
            key=lambda t: t.timestamp,
        )

    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.id is None:
            entry.id = self._next_id()
        self._ledger.append(entry)
        return entry

    @property
    def ledger_entries(self) -> List[LedgerEntry]:
        return list(self._ledger)

    # Catalog
    async def list_templates(self) -> Iterable[Template]:
        return sorted(self._templates, key=lambda t: t.name)

    async def list_languages(self) -> Iterable[Language]:
        return sorted(self._languages, key=lambda lang: lang.name)

    async def add_template(self, template: Template) -> Template:
        if template.id is None:
            template.id = self._next_id()
        self._templates.append(template)
        return template

    async def add_language(self, language: Language) -> Language:
        if language.id is None:
            language.id = self._next_id()
        self._languages.append(language)
        return language
