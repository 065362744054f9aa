from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Dict, Mapping, Optional

from ..models.account import (
    Account,
    AccountRole,
    LedgerEntry,
    SubAdminAccount,
    UserAccount,
)
from ..models.audit import AuditEvent


class BaseDBManager(ABC):
    """
    DB-agnostic async account store.

    Every mutating method accepts an optional `session` obtained from
    `transaction()`. Writes made with a session become visible together when
    the transaction block exits normally and are discarded when it raises.
    Without a session a write commits on its own.

    Backends raise `StoreError` for infrastructure failures and
    `DuplicateAccountError` when a unique key would be violated.
    """

    @abstractmethod
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Any]:
        """
        Open a multi-document unit of work and yield its session handle.
        Commits on normal exit, rolls back on exception.
        """
        yield

    # Account lookups
    @abstractmethod
    async def add_account(self, account: Account, session: Any = None) -> Account: ...

    @abstractmethod
    async def get_account(
        self, role: AccountRole, account_id: str, session: Any = None
    ) -> Optional[Account]: ...

    @abstractmethod
    async def get_owned_account(
        self, role: AccountRole, uuid: str, created_by: str, session: Any = None
    ) -> Optional[Account]:
        """Look an account up by its public uuid, restricted to its creator."""
        ...

    @abstractmethod
    async def find_account_by_username(self, username: str) -> Optional[Account]:
        """Search all three account kinds for an exact username."""
        ...

    @abstractmethod
    async def is_username_taken(self, username: str) -> bool: ...

    @abstractmethod
    async def is_name_taken(self, name: str) -> bool: ...

    @abstractmethod
    async def set_account_fields(
        self,
        role: AccountRole,
        account_id: str,
        fields: Mapping[str, Any],
        session: Any = None,
    ) -> None:
        """Overwrite the given stored (aliased) fields of one account."""
        ...

    # Credit movement primitives
    @abstractmethod
    async def debit_balance(
        self,
        subadmin_id: str,
        amount: float,
        entry: LedgerEntry,
        session: Any = None,
    ) -> Optional[SubAdminAccount]:
        """
        Atomically decrement a SubAdmin's balance by `amount` and append
        `entry` to its history, only if the current balance covers it.
        Returns the updated SubAdmin, or None when the balance is insufficient
        or the SubAdmin does not exist.
        """
        ...

    @abstractmethod
    async def fund_user(
        self,
        user_id: str,
        amount: float,
        credited_at: str,
        session: Any = None,
    ) -> Optional[UserAccount]:
        """
        Atomically re-fund a User: credit = amount, balance += amount,
        initial_balance = new balance, lastCreditTime = credited_at, games = [].
        Returns the updated User or None if it does not exist.
        """
        ...

    @abstractmethod
    async def top_up_balance(
        self,
        subadmin_id: str,
        amount: float,
        credited_at: str,
        session: Any = None,
    ) -> Optional[SubAdminAccount]:
        """
        Atomically top up a SubAdmin: credit = amount, balance += amount,
        lastCreditTime = credited_at, account_history = [].
        """
        ...

    # Audit
    @abstractmethod
    async def add_audit_event(self, event: AuditEvent) -> AuditEvent: ...


def stored_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Translate model attribute names and values to stored document form:
    aliased keys, enum members as their plain values.
    """
    aliases = {
        name: field.alias
        for model in (SubAdminAccount, UserAccount)
        for name, field in model.model_fields.items()
        if field.alias
    }
    return {
        aliases.get(key, key): value.value if isinstance(value, Enum) else value
        for key, value in values.items()
    }
