from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from .base import BaseDBManager, stored_fields
from ..errors import DuplicateAccountError
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

DocKey = Tuple[str, str]
Document = Dict[str, Any]


class InMemorySession:
    """Writes staged by one unit of work and the document locks it holds."""

    def __init__(self) -> None:
        self.staged: Dict[DocKey, Document] = {}
        self.held: Dict[DocKey, asyncio.Lock] = {}


class InMemoryDBManager(BaseDBManager):
    """
    In-memory implementation used for tests and local development.

    Documents are stored in their serialized form, like the MongoDB backend.
    A unit of work stages its writes and applies them all at commit; a
    document written inside a unit of work stays locked until that unit ends,
    so concurrent writers to the same document serialize while writers to
    different documents proceed independently.

    `latency` is awaited on every call to model the network round-trip of a
    real backend.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {
            model.collection_name: {} for model in ACCOUNT_MODELS.values()
        }
        self._audit: List[AuditEvent] = []
        self._locks: Dict[DocKey, asyncio.Lock] = {}
        self._latency = latency

    @property
    def audit_events(self) -> List[AuditEvent]:
        return list(self._audit)

    async def _round_trip(self) -> None:
        await asyncio.sleep(self._latency)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemorySession]:
        session = InMemorySession()
        try:
            yield session
            await self._round_trip()
            self._commit(session)
        finally:
            for lock in session.held.values():
                lock.release()
            session.held.clear()

    def _commit(self, session: InMemorySession) -> None:
        # Re-check uniqueness against everything committed meanwhile
        for (collection, _), doc in session.staged.items():
            if collection in self._account_collections():
                self._assert_unique(doc, session)
        for (collection, doc_id), doc in session.staged.items():
            self._collections[collection][doc_id] = doc
        session.staged.clear()

    # Helper utilities
    @asynccontextmanager
    async def _writing(
        self, key: DocKey, session: Optional[InMemorySession]
    ) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        if session is None:
            async with lock:
                yield
            return
        if key not in session.held:
            await lock.acquire()
            session.held[key] = lock
        yield

    def _load(self, key: DocKey, session: Optional[InMemorySession]) -> Optional[Document]:
        if session is not None and key in session.staged:
            return copy.deepcopy(session.staged[key])
        doc = self._collections[key[0]].get(key[1])
        return copy.deepcopy(doc) if doc is not None else None

    def _store(self, key: DocKey, doc: Document, session: Optional[InMemorySession]) -> None:
        if session is not None:
            session.staged[key] = doc
        else:
            self._collections[key[0]][key[1]] = doc

    def _documents(
        self, collection: str, session: Optional[InMemorySession]
    ) -> List[Document]:
        docs = dict(self._collections[collection])
        if session is not None:
            for (name, doc_id), doc in session.staged.items():
                if name == collection:
                    docs[doc_id] = doc
        return list(docs.values())

    @staticmethod
    def _account_collections() -> List[str]:
        return [model.collection_name for model in ACCOUNT_MODELS.values()]

    def _find(
        self,
        role: AccountRole,
        predicate: Callable[[Document], bool],
        session: Optional[InMemorySession] = None,
    ) -> Optional[Account]:
        model = model_for(role)
        for doc in self._documents(model.collection_name, session):
            if predicate(doc):
                return model.model_validate(copy.deepcopy(doc))
        return None

    def _assert_unique(self, doc: Document, session: Optional[InMemorySession]) -> None:
        for collection in self._account_collections():
            for other in self._documents(collection, session):
                if other.get("id") == doc.get("id"):
                    continue
                if other.get("username") == doc.get("username"):
                    raise DuplicateAccountError("username")
                if other.get("name") == doc.get("name"):
                    raise DuplicateAccountError("name")

    # Account operations
    async def add_account(
        self, account: Account, session: Optional[InMemorySession] = None
    ) -> Account:
        await self._round_trip()
        if account.id is None:
            account.id = uuid4().hex
        doc = account.serialize_for_db()
        key = (account.collection_name, account.id)
        async with self._writing(key, session):
            self._assert_unique(doc, session)
            self._store(key, doc, session)
        return account

    async def get_account(
        self,
        role: AccountRole,
        account_id: str,
        session: Optional[InMemorySession] = None,
    ) -> Optional[Account]:
        await self._round_trip()
        model = model_for(role)
        doc = self._load((model.collection_name, account_id), session)
        return model.model_validate(doc) if doc is not None else None

    async def get_owned_account(
        self,
        role: AccountRole,
        uuid: str,
        created_by: str,
        session: Optional[InMemorySession] = None,
    ) -> Optional[Account]:
        await self._round_trip()
        return self._find(
            role,
            lambda doc: doc.get("uuid") == uuid and doc.get("createdBy") == created_by,
            session,
        )

    async def find_account_by_username(self, username: str) -> Optional[Account]:
        await self._round_trip()
        for role in AccountRole:
            account = self._find(role, lambda doc: doc.get("username") == username)
            if account is not None:
                return account
        return None

    async def is_username_taken(self, username: str) -> bool:
        return await self.find_account_by_username(username) is not None

    async def is_name_taken(self, name: str) -> bool:
        await self._round_trip()
        return any(
            self._find(role, lambda doc: doc.get("name") == name) is not None
            for role in AccountRole
        )

    async def set_account_fields(
        self,
        role: AccountRole,
        account_id: str,
        fields: Mapping[str, Any],
        session: Optional[InMemorySession] = None,
    ) -> None:
        await self._round_trip()
        key = (model_for(role).collection_name, account_id)
        async with self._writing(key, session):
            doc = self._load(key, session)
            if doc is None:
                return
            doc.update(stored_fields(dict(fields)))
            self._assert_unique(doc, session)
            self._store(key, doc, session)

    # Credit movement primitives
    async def debit_balance(
        self,
        subadmin_id: str,
        amount: float,
        entry: LedgerEntry,
        session: Optional[InMemorySession] = None,
    ) -> Optional[SubAdminAccount]:
        await self._round_trip()
        key = (SubAdminAccount.collection_name, subadmin_id)
        async with self._writing(key, session):
            # Balance is read only after the lock is held
            doc = self._load(key, session)
            if doc is None or doc.get("balance", 0) < amount:
                return None
            doc["balance"] = doc.get("balance", 0) - amount
            doc.setdefault("account_history", []).append(
                entry.model_dump(by_alias=True, mode="json")
            )
            self._store(key, doc, session)
        return SubAdminAccount.model_validate(doc)

    async def fund_user(
        self,
        user_id: str,
        amount: float,
        credited_at: str,
        session: Optional[InMemorySession] = None,
    ) -> Optional[UserAccount]:
        await self._round_trip()
        key = (UserAccount.collection_name, user_id)
        async with self._writing(key, session):
            doc = self._load(key, session)
            if doc is None:
                return None
            doc["credit"] = amount
            doc["balance"] = doc.get("balance", 0) + amount
            doc["initial_balance"] = doc["balance"]
            doc["lastCreditTime"] = credited_at
            doc["games"] = []
            self._store(key, doc, session)
        return UserAccount.model_validate(doc)

    async def top_up_balance(
        self,
        subadmin_id: str,
        amount: float,
        credited_at: str,
        session: Optional[InMemorySession] = None,
    ) -> Optional[SubAdminAccount]:
        await self._round_trip()
        key = (SubAdminAccount.collection_name, subadmin_id)
        async with self._writing(key, session):
            doc = self._load(key, session)
            if doc is None:
                return None
            doc["credit"] = amount
            doc["balance"] = doc.get("balance", 0) + amount
            doc["lastCreditTime"] = credited_at
            doc["account_history"] = []
            self._store(key, doc, session)
        return SubAdminAccount.model_validate(doc)

    # Audit
    async def add_audit_event(self, event: AuditEvent) -> AuditEvent:
        if event.id is None:
            event.id = uuid4().hex
        self._audit.append(event)
        return event
