from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Tuple
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .base import BaseDBManager
from ..errors import AccountNotFoundError, InsufficientCreditsError
from ..models.account import UNLIMITED_CREDITS, Account, utcnow
from ..models.base import DBSerializableModel
from ..models.catalog import Language, Template
from ..models.ledger import LedgerEntry
from ..models.transaction import Transaction


class MongoDBManager(BaseDBManager):
    """
    MongoDB implementation of BaseDBManager using motor (async driver).

    Accounts are keyed by subject id in ``_id``. Every balance mutation is a
    single ``find_one_and_update`` whose filter carries the affordability
    condition, so the check and the decrement happen inside one
    document-level atomic operation and concurrent charges cannot interleave.

    The `transaction()` context manager is a no-op: the atomic primitives
    only ever touch one document, and the audit writes that follow them are
    independent inserts.
    """

    def __init__(self, database: AsyncIOMotorDatabase, client: Optional[AsyncIOMotorClient] = None) -> None:
        self._db = database
        self._client = client

    @classmethod
    def from_client_uri(cls, uri: str, db_name: str) -> "MongoDBManager":
        client = AsyncIOMotorClient(uri, tz_aware=True)
        return cls(client[db_name], client=client)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        yield

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()

    # Helper utilities
    @staticmethod
    def _prepare_insert(model: DBSerializableModel) -> Dict[str, Any]:
        data = model.serialize_for_db()
        model_id = getattr(model, "id", None)
        if not model_id:
            model_id = uuid4().hex
            setattr(model, "id", model_id)
        data.pop("id", None)
        data["_id"] = model_id
        return data

    # Account operations
    async def get_account(self, account_id: str) -> Optional[Account]:
        col = self._db[Account.collection_name]
        doc = await col.find_one({"_id": account_id})
        return Account.from_db(doc)

    async def create_account_if_absent(self, account: Account) -> Tuple[Account, bool]:
        col = self._db[Account.collection_name]
        try:
            await col.insert_one(self._prepare_insert(account))
        except DuplicateKeyError:
            existing = await self.get_account(account.id)
            if existing is None:
                raise AccountNotFoundError(account.id)
            return existing, False
        return account, True

    async def charge_atomically(self, account_id: str, amount: int) -> int:
        if amount <= 0:
            raise ValueError("amount must be positive")

        col = self._db[Account.collection_name]
        doc = await col.find_one_and_update(
            {
                "_id": account_id,
                "$or": [
                    {"credits": UNLIMITED_CREDITS},
                    {"credits": {"$gte": amount}},
                ],
            },
            [
                {
                    "$set": {
                        "credits": {
                            "$cond": [
                                {"$eq": ["$credits", UNLIMITED_CREDITS]},
                                UNLIMITED_CREDITS,
                                {"$subtract": ["$credits", amount]},
                            ]
                        },
                        "updated_at": {"$max": ["$updated_at", utcnow()]},
                    }
                }
            ],
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            return int(doc["credits"])

        # The conditional update matched nothing: tell the two causes apart.
        current = await col.find_one({"_id": account_id}, {"credits": 1})
        if current is None:
            raise AccountNotFoundError(account_id)
        raise InsufficientCreditsError(required=amount, available=int(current["credits"]))

    async def grant_credits(self, account_id: str, amount: int) -> int:
        if amount <= 0:
            raise ValueError("amount must be positive")

        col = self._db[Account.collection_name]
        doc = await col.find_one_and_update(
            {"_id": account_id},
            [
                {
                    "$set": {
                        "credits": {
                            "$cond": [
                                {"$eq": ["$credits", UNLIMITED_CREDITS]},
                                UNLIMITED_CREDITS,
                                {"$add": ["$credits", amount]},
                            ]
                        },
                        "updated_at": {"$max": ["$updated_at", utcnow()]},
                    }
                }
            ],
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise AccountNotFoundError(account_id)
        return int(doc["credits"])

    async def set_plan(self, account_id: str, plan: str, credits: int) -> Account:
        col = self._db[Account.collection_name]
        doc = await col.find_one_and_update(
            {"_id": account_id},
            [
                {
                    "$set": {
                        "plan": plan,
                        "credits": credits,
                        "updated_at": {"$max": ["$updated_at", utcnow()]},
                    }
                }
            ],
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise AccountNotFoundError(account_id)
        return Account.from_db(doc)  # type: ignore[return-value]

    # Transaction / ledger operations
    async def add_transaction(self, tx: Transaction) -> Transaction:
        col = self._db[Transaction.collection_name]
        await col.insert_one(self._prepare_insert(tx))
        return tx

    async def get_transactions(self, account_id: str) -> Iterable[Transaction]:
        col = self._db[Transaction.collection_name]
        cursor = col.find({"account_id": account_id}).sort("timestamp", 1)
        docs = await cursor.to_list(length=None)
        return [Transaction.from_db(d) for d in docs if d is not None]  # type: ignore[misc]

    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        col = self._db[LedgerEntry.collection_name]
        await col.insert_one(self._prepare_insert(entry))
        return entry

    # Catalog
    async def list_templates(self) -> Iterable[Template]:
        col = self._db[Template.collection_name]
        docs = await col.find({}).sort("name", 1).to_list(length=None)
        return [Template.from_db(d) for d in docs if d is not None]  # type: ignore[misc]

    async def list_languages(self) -> Iterable[Language]:
        col = self._db[Language.collection_name]
        docs = await col.find({}).sort("name", 1).to_list(length=None)
        return [Language.from_db(d) for d in docs if d is not None]  # type: ignore[misc]

    async def add_template(self, template: Template) -> Template:
        col = self._db[Template.collection_name]
        await col.insert_one(self._prepare_insert(template))
        return template

    async def add_language(self, language: Language) -> Language:
        col = self._db[Language.collection_name]
        await col.insert_one(self._prepare_insert(language))
        return language
