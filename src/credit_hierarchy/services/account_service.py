from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..clock import Clock
from ..db.base import BaseDBManager
from ..errors import AuthFailure, DuplicateAccountError, StoreError, TransactionFailure
from ..logging.audit_logger import AuditLogger
from ..models.account import (
    Account,
    AccountRole,
    AdminAccount,
    SubAdminAccount,
    UserAccount,
)
from ..models.api_models import (
    CreateAdminRequest,
    CreateSubAdminRequest,
    CreateUserRequest,
)
from ..security.passwords import PasswordHasher
from ..validation import (
    ValidationResult,
    validate_commission,
    validate_credit,
    validate_name,
    validate_password,
    validate_username,
)
from .auth_service import AuthContext
from .transfer_service import CreditTransferService, TransferStatus

logger = logging.getLogger(__name__)

SYSTEM_CREATOR = "system"

_CREATION_VALIDATORS: Dict[str, Callable[[Any], ValidationResult]] = {
    "name": validate_name,
    "username": validate_username,
    "password": validate_password,
    "credit": validate_credit,
    "user_commission": validate_commission,
    "owner_commission": validate_commission,
}


class CreationStage(str, Enum):
    RECEIVED = "received"
    FIELDS_VALIDATED = "fields_validated"
    UNIQUENESS_CHECKED = "uniqueness_checked"
    BALANCE_RESERVED = "balance_reserved"
    PERSISTED = "persisted"
    COMMITTED = "committed"
    ABORTED = "aborted"


class CreationResult(BaseModel):
    stage: CreationStage
    trail: List[CreationStage] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    account: Optional[Dict[str, Any]] = None

    @property
    def committed(self) -> bool:
        return self.stage == CreationStage.COMMITTED


class _CreationFlow:
    def __init__(self, role: AccountRole) -> None:
        self._role = role
        self.trail: List[CreationStage] = [CreationStage.RECEIVED]

    def advance(self, stage: CreationStage) -> None:
        logger.debug("%s creation: %s", self._role.value, stage.value)
        self.trail.append(stage)

    def abort(self, errors: List[str]) -> CreationResult:
        logger.info(
            "%s creation aborted after %s: %s",
            self._role.value,
            self.trail[-1].value,
            "; ".join(errors),
        )
        self.trail.append(CreationStage.ABORTED)
        return CreationResult(stage=CreationStage.ABORTED, trail=self.trail, errors=errors)

    def commit(self, account: Account) -> CreationResult:
        self.advance(CreationStage.COMMITTED)
        return CreationResult(
            stage=CreationStage.COMMITTED,
            trail=self.trail,
            account=account.public_view(),
        )


class AccountCreationService:
    """
    Creates accounts one tier below the caller.

    Admins create Admins and SubAdmins, SubAdmins create Users. Nothing is
    written until every field is valid and unique; a funded User is persisted
    by the credit transfer itself, so the User and the SubAdmin debit commit
    together or not at all.
    """

    def __init__(
        self,
        db: BaseDBManager,
        transfers: CreditTransferService,
        hasher: PasswordHasher,
        audit: AuditLogger,
        clock: Clock,
    ) -> None:
        self._db = db
        self._transfers = transfers
        self._hasher = hasher
        self._audit = audit
        self._clock = clock

    async def bootstrap_admin(self, name: str, username: str, password: str) -> CreationResult:
        """Create a root Admin that no other account owns."""
        return await self._create(
            AccountRole.ADMIN,
            SYSTEM_CREATOR,
            {"name": name, "username": username, "password": password},
        )

    async def create_admin(
        self, caller: AuthContext, payload: CreateAdminRequest
    ) -> CreationResult:
        self._require_role(caller, AccountRole.ADMIN)
        return await self._create(AccountRole.ADMIN, caller.id, payload.model_dump())

    async def create_subadmin(
        self, caller: AuthContext, payload: CreateSubAdminRequest
    ) -> CreationResult:
        self._require_role(caller, AccountRole.ADMIN)
        return await self._create(AccountRole.SUBADMIN, caller.id, payload.model_dump())

    async def create_user(
        self, caller: AuthContext, payload: CreateUserRequest
    ) -> CreationResult:
        self._require_role(caller, AccountRole.SUBADMIN)
        return await self._create(AccountRole.USER, caller.id, payload.model_dump())

    async def _create(
        self, role: AccountRole, creator_id: str, raw: Dict[str, Any]
    ) -> CreationResult:
        flow = _CreationFlow(role)

        if any(value is None or value == "" for value in raw.values()):
            return flow.abort(["Missing required fields"])

        values: Dict[str, Any] = {}
        errors: List[str] = []
        for name, value in raw.items():
            result = _CREATION_VALIDATORS[name](value)
            if result.valid:
                values[name] = result.value
            else:
                errors.append(result.error or f"{name} is invalid")
        if errors:
            return flow.abort(errors)
        flow.advance(CreationStage.FIELDS_VALIDATED)

        name_taken, username_taken = await asyncio.gather(
            self._db.is_name_taken(values["name"]),
            self._db.is_username_taken(values["username"]),
        )
        if name_taken:
            errors.append("This name is already in use")
        if username_taken:
            errors.append("This username is already taken")
        if errors:
            return flow.abort(errors)
        flow.advance(CreationStage.UNIQUENESS_CHECKED)

        password_hash = await asyncio.to_thread(self._hasher.hash, values["password"])
        account = self._build(role, creator_id, values, password_hash)

        if isinstance(account, UserAccount):
            outcome = await self._transfers.transfer(
                creator_id,
                values["credit"],
                account,
                on_reserved=lambda: flow.advance(CreationStage.BALANCE_RESERVED),
            )
            if outcome.status == TransferStatus.REJECTED:
                return flow.abort([outcome.error or "Transfer rejected"])
            if outcome.status == TransferStatus.FAILED:
                flow.abort(["Internal server error"])
                raise TransactionFailure()
            account = outcome.receipt.recipient
        else:
            try:
                await self._db.add_account(account)
            except DuplicateAccountError as exc:
                return flow.abort([exc.message])
            except StoreError as exc:
                logger.exception("Persisting new %s failed", role.value)
                flow.abort(["Internal server error"])
                raise TransactionFailure(exc) from exc
        flow.advance(CreationStage.PERSISTED)

        await self._audit.log_account_event(
            actor_id=creator_id,
            subject_id=account.id,
            message=f"{role.value} created",
            details={"username": account.username, "uuid": account.uuid},
        )
        return flow.commit(account)

    def _build(
        self,
        role: AccountRole,
        creator_id: str,
        values: Dict[str, Any],
        password_hash: str,
    ) -> Account:
        now = self._clock.now()
        common = dict(
            name=values["name"],
            username=values["username"],
            password=password_hash,
            created_by=creator_id,
            created_at=now,
        )
        if role == AccountRole.ADMIN:
            return AdminAccount(**common)
        if role == AccountRole.SUBADMIN:
            return SubAdminAccount(
                **common,
                credit=values["credit"],
                balance=values["credit"],
                last_credit_time=now,
            )
        # credit, balance and initial_balance are seeded by the transfer
        return UserAccount(
            **common,
            shopname=values["name"],
            user_commission=values["user_commission"],
            owner_commission=values["owner_commission"],
        )

    @staticmethod
    def _require_role(caller: AuthContext, role: AccountRole) -> None:
        if caller.role != role:
            logger.warning(
                "%s %s attempted an operation reserved for %s",
                caller.role.value,
                caller.id,
                role.value,
            )
            raise AuthFailure()
