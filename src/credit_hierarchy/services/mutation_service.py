from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from ..db.base import BaseDBManager
from ..errors import (
    AccountNotFound,
    BusinessRuleFailure,
    DuplicateAccountError,
    StoreError,
    TransactionFailure,
)
from ..logging.audit_logger import AuditLogger
from ..models.account import Account, AccountRole, SubAdminAccount, UserAccount
from ..security.passwords import PasswordHasher
from ..validation import (
    ValidationResult,
    validate_credit,
    validate_name,
    validate_password,
    validate_state,
    validate_username,
)
from .auth_service import AuthContext
from .transfer_service import CreditTransferService, TransferReceipt

logger = logging.getLogger(__name__)


@dataclass
class _MutationPlan:
    """Field changes validated ahead of the unit of work."""

    changes: Dict[str, Any] = field(default_factory=dict)
    credit: Optional[float] = None
    applied: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def has_writes(self) -> bool:
        return bool(self.changes) or self.credit is not None


Stager = Callable[["FieldMutationService", _MutationPlan, Account, Any], Awaitable[Optional[str]]]


@dataclass(frozen=True)
class FieldRule:
    validator: Callable[[Any], ValidationResult]
    stage: Stager


async def _stage_name(
    engine: "FieldMutationService", plan: _MutationPlan, target: Account, value: str
) -> Optional[str]:
    if await engine.db.is_name_taken(value):
        return "This name is already in use"
    plan.changes["name"] = value
    return None


async def _stage_username(
    engine: "FieldMutationService", plan: _MutationPlan, target: Account, value: str
) -> Optional[str]:
    if await engine.db.is_username_taken(value):
        return "This username is already taken"
    plan.changes["username"] = value
    return None


async def _stage_password(
    engine: "FieldMutationService", plan: _MutationPlan, target: Account, value: str
) -> Optional[str]:
    unchanged = await asyncio.to_thread(engine.hasher.verify, value, target.password)
    if unchanged:
        return "New password must be different from current password"
    plan.changes["password"] = await asyncio.to_thread(engine.hasher.hash, value)
    return None


async def _stage_state(
    engine: "FieldMutationService", plan: _MutationPlan, target: Account, value: Any
) -> Optional[str]:
    plan.changes["state"] = value
    return None


async def _stage_credit(
    engine: "FieldMutationService", plan: _MutationPlan, target: Account, value: float
) -> Optional[str]:
    plan.credit = value
    return None


_FIELD_RULES: Dict[str, FieldRule] = {
    "name": FieldRule(validate_name, _stage_name),
    "username": FieldRule(validate_username, _stage_username),
    "password": FieldRule(validate_password, _stage_password),
    "state": FieldRule(validate_state, _stage_state),
    "credit": FieldRule(validate_credit, _stage_credit),
}

_IDENTITY_FIELDS = ("name", "username", "password", "state")

_ALLOWED_FIELDS: Dict[Tuple[AccountRole, AccountRole], Tuple[str, ...]] = {
    (AccountRole.ADMIN, AccountRole.ADMIN): _IDENTITY_FIELDS,
    (AccountRole.ADMIN, AccountRole.SUBADMIN): _IDENTITY_FIELDS + ("credit",),
    (AccountRole.SUBADMIN, AccountRole.USER): _IDENTITY_FIELDS + ("credit",),
}

# (caller role, target kind, field) -> rule
MUTATION_TABLE: Dict[Tuple[AccountRole, AccountRole, str], FieldRule] = {
    (caller, target, name): _FIELD_RULES[name]
    for (caller, target), names in _ALLOWED_FIELDS.items()
    for name in names
}

_NOT_FOUND = {
    AccountRole.ADMIN: "Admin account not found",
    AccountRole.SUBADMIN: "SubAdmin not found",
    AccountRole.USER: "User not found",
}


class MutationResult(BaseModel):
    committed: bool
    applied: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    account: Optional[Dict[str, Any]] = None


class FieldMutationService:
    """
    Applies caller-proposed field changes to one account.

    Each field is checked on its own against the mutation table and its
    validator, and every failing field yields one `"<field>: <message>"`
    error. Lookups and hashing run before the unit of work opens; the unit
    itself only contains store writes.

    A request that touches `credit` is all-or-nothing. Other requests persist
    their valid fields despite errors unless `allow_partial_updates` is off.
    """

    def __init__(
        self,
        db: BaseDBManager,
        transfers: CreditTransferService,
        hasher: PasswordHasher,
        audit: AuditLogger,
        allow_partial_updates: bool = True,
    ) -> None:
        self.db = db
        self.hasher = hasher
        self._transfers = transfers
        self._audit = audit
        self._allow_partial = allow_partial_updates

    async def update_account(
        self,
        caller: AuthContext,
        target_role: AccountRole,
        target_uuid: str,
        changes: Mapping[str, Any],
    ) -> MutationResult:
        target = await self.db.get_owned_account(target_role, target_uuid, caller.id)
        if target is None:
            raise AccountNotFound(_NOT_FOUND[target_role])

        plan = await self._plan(caller.role, target, changes)

        blocking = "credit" in changes or not self._allow_partial or not plan.has_writes
        if plan.errors and blocking:
            return MutationResult(committed=False, errors=plan.errors)
        if not plan.has_writes:
            return MutationResult(committed=True, account=target.public_view())

        receipt: Optional[TransferReceipt] = None
        topped_up: Optional[SubAdminAccount] = None
        try:
            async with self.db.transaction() as session:
                if plan.credit is not None and isinstance(target, UserAccount):
                    recipient = target.model_copy(
                        update={"username": plan.changes.get("username", target.username)}
                    )
                    receipt = await self._transfers.stage_transfer(
                        session, caller.id, plan.credit, recipient
                    )
                elif plan.credit is not None:
                    topped_up = await self._transfers.stage_top_up(
                        session, target.id or "", plan.credit
                    )
                if plan.changes:
                    await self.db.set_account_fields(
                        target.role, target.id or "", plan.changes, session=session
                    )
        except DuplicateAccountError as exc:
            return MutationResult(
                committed=False, errors=plan.errors + [f"{exc.field}: {exc.message}"]
            )
        except BusinessRuleFailure as exc:
            # Only the credit path raises other business failures inside the unit
            return MutationResult(
                committed=False, errors=plan.errors + [f"credit: {exc.message}"]
            )
        except StoreError as exc:
            logger.exception("Update of %s %s rolled back", target.role.value, target.uuid)
            await self._audit.log_error(
                message="Account update rolled back",
                details={"fields": sorted(changes), "error": str(exc)},
                actor_id=caller.id,
                subject_id=target.id,
            )
            raise TransactionFailure(exc) from exc

        if receipt is not None:
            await self._transfers.record_transfer(receipt)
        if topped_up is not None:
            await self._transfers.record_top_up(caller.id, topped_up)
        await self._audit.log_account_event(
            actor_id=caller.id,
            subject_id=target.id,
            message=f"{target.role.value} updated",
            details={"fields": plan.applied, "rejected": len(plan.errors)},
        )

        updated = await self.db.get_account(target.role, target.id or "")
        return MutationResult(
            committed=True,
            applied=plan.applied,
            errors=plan.errors,
            account=updated.public_view() if updated is not None else None,
        )

    async def _plan(
        self, caller_role: AccountRole, target: Account, changes: Mapping[str, Any]
    ) -> _MutationPlan:
        plan = _MutationPlan()
        for name, raw in changes.items():
            rule = MUTATION_TABLE.get((caller_role, target.role, name))
            if rule is None:
                plan.errors.append(f'{name}: Field "{name}" is not allowed')
                continue

            result = rule.validator(raw)
            if not result.valid:
                plan.errors.append(f"{name}: {result.error}")
                continue

            error = await rule.stage(self, plan, target, result.value)
            if error is not None:
                plan.errors.append(f"{name}: {error}")
            else:
                plan.applied.append(name)
        return plan
