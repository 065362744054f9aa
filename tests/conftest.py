from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from credit_hierarchy.clock import ZoneClock
from credit_hierarchy.db.base import BaseDBManager
from credit_hierarchy.db.memory import InMemoryDBManager
from credit_hierarchy.logging.audit_logger import AuditLogger
from credit_hierarchy.models.account import AccountRole
from credit_hierarchy.models.api_models import CreateSubAdminRequest, CreateUserRequest
from credit_hierarchy.security.passwords import BcryptPasswordHasher
from credit_hierarchy.security.tokens import JWTCredentialProvider
from credit_hierarchy.services.account_service import AccountCreationService
from credit_hierarchy.services.auth_service import AuthContext, AuthorizationGate
from credit_hierarchy.services.mutation_service import FieldMutationService
from credit_hierarchy.services.profile_service import ProfileService
from credit_hierarchy.services.transfer_service import CreditTransferService

TEST_SECRET = "test-signing-secret"

ADMIN_PASSWORD = "Secret123A"
SUBADMIN_PASSWORD = "Owner123Pass"
USER_PASSWORD = "Player123X"


class Stack:
    """Services wired over one store, plus helpers seeding the hierarchy."""

    def __init__(
        self,
        tmp_path: Path,
        db: Optional[BaseDBManager] = None,
        allow_partial_updates: bool = True,
    ) -> None:
        self.db = db if db is not None else InMemoryDBManager()
        self.audit_path = tmp_path / "audit.log"
        self.audit = AuditLogger(db=self.db, file_path=self.audit_path)
        self.clock = ZoneClock("UTC")
        self.hasher = BcryptPasswordHasher(rounds=4)
        self.credentials = JWTCredentialProvider(TEST_SECRET)
        self.transfers = CreditTransferService(db=self.db, audit=self.audit, clock=self.clock)
        self.gate = AuthorizationGate(db=self.db, credentials=self.credentials, hasher=self.hasher)
        self.accounts = AccountCreationService(
            db=self.db,
            transfers=self.transfers,
            hasher=self.hasher,
            audit=self.audit,
            clock=self.clock,
        )
        self.mutations = FieldMutationService(
            db=self.db,
            transfers=self.transfers,
            hasher=self.hasher,
            audit=self.audit,
            allow_partial_updates=allow_partial_updates,
        )
        self.profiles = ProfileService(db=self.db, hasher=self.hasher, audit=self.audit)

    async def context(self, role: AccountRole, account_id: str) -> AuthContext:
        account = await self.db.get_account(role, account_id)
        assert account is not None
        return AuthContext(account=account)

    async def seed_admin(self, name: str = "RootAdminName", username: str = "rootadmin1") -> AuthContext:
        result = await self.accounts.bootstrap_admin(name, username, ADMIN_PASSWORD)
        assert result.committed, result.errors
        return await self.context(AccountRole.ADMIN, result.account["id"])

    async def seed_subadmin(
        self,
        admin: AuthContext,
        credit: float,
        name: str = "ShopOwner01",
        username: str = "shopowner01",
    ) -> AuthContext:
        result = await self.accounts.create_subadmin(
            admin,
            CreateSubAdminRequest(
                name=name, username=username, password=SUBADMIN_PASSWORD, credit=credit
            ),
        )
        assert result.committed, result.errors
        return await self.context(AccountRole.SUBADMIN, result.account["id"])

    async def seed_user(
        self,
        subadmin: AuthContext,
        credit: float,
        name: str = "PlayerOne01",
        username: str = "playerone01",
    ) -> AuthContext:
        result = await self.accounts.create_user(
            subadmin,
            CreateUserRequest(
                name=name,
                username=username,
                password=USER_PASSWORD,
                credit=credit,
                user_commission=10,
                owner_commission=5,
            ),
        )
        assert result.committed, result.errors
        return await self.context(AccountRole.USER, result.account["id"])


@pytest.fixture
def stack(tmp_path) -> Stack:
    return Stack(tmp_path)
