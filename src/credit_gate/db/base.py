from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional, Tuple

from ..models.account import Account
from ..models.catalog import Language, Template
from ..models.ledger import LedgerEntry
from ..models.transaction import Transaction


class BaseDBManager(ABC):
    """
    DB-agnostic async manager interface.

    ``charge_atomically``, ``grant_credits`` and ``create_account_if_absent``
    are the atomic primitives: each one is a single isolated
    read-modify-write against one account document and must not be wrapped
    in ``transaction()`` by callers. ``transaction()`` groups the remaining
    bookkeeping writes where the backend supports it.
    """

    @abstractmethod
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Provide an atomic transaction context if the backend supports it.
        Should rollback on exception and commit on success.
        """
        yield

    # Account operations
    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]: ...

    @abstractmethod
    async def create_account_if_absent(self, account: Account) -> Tuple[Account, bool]:
        """
        Insert ``account`` unless a record with the same id exists.

        First writer wins: returns ``(stored_account, created)`` where
        ``stored_account`` is the existing record when ``created`` is False.
        """
        ...

    @abstractmethod
    async def charge_atomically(self, account_id: str, amount: int) -> int:
        """
        Deduct ``amount`` and return the new balance.

        Re-reads the balance inside the isolated operation. Raises
        ``InsufficientCreditsError`` when ``balance != -1 and balance < amount``
        and ``AccountNotFoundError`` when the account does not exist. An
        unlimited balance stays at -1; ``updated_at`` is bumped either way.
        """
        ...

    @abstractmethod
    async def grant_credits(self, account_id: str, amount: int) -> int:
        """Add ``amount`` credits and return the new balance (no-op when unlimited)."""
        ...

    @abstractmethod
    async def set_plan(self, account_id: str, plan: str, credits: int) -> Account: ...

    # Transaction / ledger operations
    @abstractmethod
    async def add_transaction(self, tx: Transaction) -> Transaction: ...

    @abstractmethod
    async def get_transactions(self, account_id: str) -> Iterable[Transaction]: ...

    @abstractmethod
    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry: ...

    # Catalog (read-mostly)
    @abstractmethod
    async def list_templates(self) -> Iterable[Template]: ...

    @abstractmethod
    async def list_languages(self) -> Iterable[Language]: ...

    @abstractmethod
    async def add_template(self, template: Template) -> Template: ...

    @abstractmethod
    async def add_language(self, language: Language) -> Language: ...

    async def close(self) -> None:
        return None
