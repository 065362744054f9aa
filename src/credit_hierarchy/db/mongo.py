from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Type, TypeVar
from uuid import uuid4

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .base import BaseDBManager, stored_fields
from ..errors import DuplicateAccountError, StoreError
from ..models.account import (
    ACCOUNT_MODELS,
    Account,
    AccountRole,
    LedgerEntry,
    SubAdminAccount,
    UserAccount,
    model_for,
)
from ..models.audit import AuditEvent
from ..models.base import DBSerializableModel


TModel = TypeVar("TModel", bound=DBSerializableModel)

Session = Optional[AsyncIOMotorClientSession]


def _duplicate_error(exc: DuplicateKeyError) -> DuplicateAccountError:
    key = (exc.details or {}).get("keyPattern", {})
    if "name" in key:
        return DuplicateAccountError("name")
    return DuplicateAccountError("username")


@asynccontextmanager
async def _guard(operation: str) -> AsyncIterator[None]:
    """Translate driver errors raised by one store call into store errors."""
    try:
        yield
    except DuplicateKeyError as exc:
        raise _duplicate_error(exc) from exc
    except PyMongoError as exc:
        raise StoreError(f"{operation} failed", original_error=exc) from exc


class MongoDBManager(BaseDBManager):
    """
    MongoDB implementation of BaseDBManager using motor (async driver).

    IDs are stored as string-based `_id` fields and mirrored in the `id`
    attribute of each Pydantic model, which keeps the rest of the system
    agnostic of MongoDB specifics.

    `transaction()` opens a client session with a multi-document transaction,
    so the deployment must be a replica set (or sharded cluster). Unique
    indexes only span one collection; cross-kind uniqueness of usernames and
    names is enforced by the services before writing.
    """

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._db = database

    @classmethod
    def from_client_uri(cls, uri: str, db_name: str) -> "MongoDBManager":
        client = AsyncIOMotorClient(uri)
        return cls(client[db_name])

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncIOMotorClientSession]:
        try:
            async with await self._db.client.start_session() as session:
                async with session.start_transaction():
                    yield session
        except DuplicateKeyError as exc:
            raise _duplicate_error(exc) from exc
        except PyMongoError as exc:
            raise StoreError("transaction aborted", original_error=exc) from exc

    async def ensure_indexes(self) -> None:
        """Create the unique indexes declared by each stored model."""
        for model in ACCOUNT_MODELS.values():
            indexes = [
                IndexModel([(field, ASCENDING)], unique=True, name=f"{field}_unique")
                for field in model.unique_fields
            ]
            indexes.append(IndexModel([("createdBy", ASCENDING)], name="createdBy"))
            async with _guard("index creation"):
                await self._db[model.collection_name].create_indexes(indexes)

    # Helper utilities
    @staticmethod
    def _prepare_insert(model: TModel) -> Dict[str, Any]:
        data = model.serialize_for_db()
        model_id = getattr(model, "id", None)
        if not model_id:
            model_id = uuid4().hex
            setattr(model, "id", model_id)
            data["id"] = model_id
        data["_id"] = model_id
        return data

    @staticmethod
    def _decode(model_cls: Type[TModel], doc: Optional[Mapping[str, Any]]) -> Optional[TModel]:
        if doc is None:
            return None
        data = dict(doc)
        if "_id" in data and "id" not in data:
            data["id"] = str(data["_id"])
        return model_cls.model_validate(data)

    # Account operations
    async def add_account(self, account: Account, session: Session = None) -> Account:
        col = self._db[account.collection_name]
        data = self._prepare_insert(account)
        async with _guard("account insert"):
            await col.insert_one(data, session=session)
        return account

    async def get_account(
        self, role: AccountRole, account_id: str, session: Session = None
    ) -> Optional[Account]:
        model = model_for(role)
        async with _guard("account lookup"):
            doc = await self._db[model.collection_name].find_one(
                {"_id": account_id}, session=session
            )
        return self._decode(model, doc)

    async def get_owned_account(
        self, role: AccountRole, uuid: str, created_by: str, session: Session = None
    ) -> Optional[Account]:
        model = model_for(role)
        async with _guard("account lookup"):
            doc = await self._db[model.collection_name].find_one(
                {"uuid": uuid, "createdBy": created_by}, session=session
            )
        return self._decode(model, doc)

    async def _find_in_all(self, query: Dict[str, Any]) -> Optional[Account]:
        roles = list(AccountRole)
        async with _guard("account search"):
            docs = await asyncio.gather(
                *(self._db[model_for(role).collection_name].find_one(query) for role in roles)
            )
        for role, doc in zip(roles, docs):
            if doc is not None:
                return self._decode(model_for(role), doc)
        return None

    async def find_account_by_username(self, username: str) -> Optional[Account]:
        return await self._find_in_all({"username": username})

    async def is_username_taken(self, username: str) -> bool:
        return await self._find_in_all({"username": username}) is not None

    async def is_name_taken(self, name: str) -> bool:
        return await self._find_in_all({"name": name}) is not None

    async def set_account_fields(
        self,
        role: AccountRole,
        account_id: str,
        fields: Mapping[str, Any],
        session: Session = None,
    ) -> None:
        col = self._db[model_for(role).collection_name]
        async with _guard("account update"):
            await col.update_one(
                {"_id": account_id},
                {"$set": stored_fields(dict(fields))},
                session=session,
            )

    # Credit movement primitives
    async def debit_balance(
        self,
        subadmin_id: str,
        amount: float,
        entry: LedgerEntry,
        session: Session = None,
    ) -> Optional[SubAdminAccount]:
        col = self._db[SubAdminAccount.collection_name]
        # The balance guard is part of the filter, so check and decrement are one write
        async with _guard("balance debit"):
            doc = await col.find_one_and_update(
                {"_id": subadmin_id, "balance": {"$gte": amount}},
                {
                    "$inc": {"balance": -amount},
                    "$push": {"account_history": entry.model_dump(by_alias=True, mode="json")},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
        return self._decode(SubAdminAccount, doc)

    async def fund_user(
        self,
        user_id: str,
        amount: float,
        credited_at: str,
        session: Session = None,
    ) -> Optional[UserAccount]:
        col = self._db[UserAccount.collection_name]
        # Pipeline update: both expressions read the pre-update balance
        new_balance = {"$add": [{"$ifNull": ["$balance", 0]}, amount]}
        async with _guard("user funding"):
            doc = await col.find_one_and_update(
                {"_id": user_id},
                [
                    {
                        "$set": {
                            "credit": amount,
                            "balance": new_balance,
                            "initial_balance": new_balance,
                            "lastCreditTime": credited_at,
                            "games": {"$literal": []},
                        }
                    }
                ],
                return_document=ReturnDocument.AFTER,
                session=session,
            )
        return self._decode(UserAccount, doc)

    async def top_up_balance(
        self,
        subadmin_id: str,
        amount: float,
        credited_at: str,
        session: Session = None,
    ) -> Optional[SubAdminAccount]:
        col = self._db[SubAdminAccount.collection_name]
        async with _guard("balance top-up"):
            doc = await col.find_one_and_update(
                {"_id": subadmin_id},
                {
                    "$set": {
                        "credit": amount,
                        "lastCreditTime": credited_at,
                        "account_history": [],
                    },
                    "$inc": {"balance": amount},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
        return self._decode(SubAdminAccount, doc)

    # Audit
    async def add_audit_event(self, event: AuditEvent) -> AuditEvent:
        col = self._db[AuditEvent.collection_name]
        data = self._prepare_insert(event)
        async with _guard("audit insert"):
            await col.insert_one(data)
        return event
