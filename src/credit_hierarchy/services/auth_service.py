from __future__ import annotations

import asyncio
import logging
from typing import NoReturn, Optional

from pydantic import BaseModel

from ..db.base import BaseDBManager
from ..errors import AuthFailure, StoreError
from ..models.account import Account, AccountRole
from ..security.passwords import PasswordHasher
from ..security.tokens import CredentialProvider

logger = logging.getLogger(__name__)


class AuthContext(BaseModel):
    """An authorized caller bound to its live, active account."""

    account: Account

    @property
    def id(self) -> str:
        return self.account.id or ""

    @property
    def role(self) -> AccountRole:
        return self.account.role


class AuthorizationGate:
    """
    Resolves a caller's credential into an `AuthContext`.

    Every rejection raises the same `AuthFailure`; the concrete reason is
    only written to the log.
    """

    def __init__(
        self,
        db: BaseDBManager,
        credentials: CredentialProvider,
        hasher: PasswordHasher,
    ) -> None:
        self._db = db
        self._credentials = credentials
        self._hasher = hasher

    async def authorize(
        self, token: Optional[str], expected_role: AccountRole
    ) -> AuthContext:
        if not token:
            self._reject("no credential presented")

        identity = self._credentials.verify(token)
        if identity is None:
            self._reject("credential could not be verified")

        try:
            account = await self._db.get_account(identity.role, identity.id)
        except StoreError:
            logger.exception("Account lookup failed during authorization")
            raise AuthFailure()

        if account is None:
            self._reject(f"{identity.role.value} {identity.id} does not exist")
        if not account.is_active:
            self._reject(f"{identity.role.value} {identity.id} is suspended")
        if identity.role != expected_role:
            self._reject(
                f"role {identity.role.value} presented where {expected_role.value} is required"
            )

        return AuthContext(account=account)

    async def login(self, username: str, password: str) -> str:
        """
        Exchange username and password for a credential carrying `{id, role}`.
        """
        try:
            account = await self._db.find_account_by_username(username)
        except StoreError:
            logger.exception("Account lookup failed during login")
            raise AuthFailure()

        if account is None:
            self._reject("login for unknown username")
        matches = await asyncio.to_thread(self._hasher.verify, password, account.password)
        if not matches:
            self._reject(f"wrong password for {account.role.value} {account.id}")
        if not account.is_active:
            self._reject(f"login attempt by suspended {account.role.value} {account.id}")

        return self._credentials.issue({"id": account.id, "role": account.role.value})

    @staticmethod
    def _reject(reason: str) -> NoReturn:
        logger.warning("Authorization rejected: %s", reason)
        raise AuthFailure()
