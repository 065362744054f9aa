from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel

from ..db.base import BaseDBManager
from ..errors import AccountNotFound, DuplicateAccountError, StoreError, TransactionFailure
from ..logging.audit_logger import AuditLogger
from ..models.account import AccountRole, UserAccount
from ..security.passwords import PasswordHasher
from ..validation import (
    validate_commission,
    validate_name,
    validate_password,
    validate_username,
)
from .auth_service import AuthContext

logger = logging.getLogger(__name__)


class ProfileView(BaseModel):
    name: str
    username: str
    shopname: str
    user_commission: float


class ProfileResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    value: Optional[Any] = None


class ProfileService:
    """Self-service changes a User makes to its own account."""

    def __init__(self, db: BaseDBManager, hasher: PasswordHasher, audit: AuditLogger) -> None:
        self._db = db
        self._hasher = hasher
        self._audit = audit

    async def get_profile(self, caller: AuthContext) -> ProfileView:
        user = await self._current_user(caller)
        return ProfileView(
            name=user.name,
            username=user.username,
            shopname=user.shopname or user.name,
            user_commission=user.user_commission or 0,
        )

    async def change_username(self, caller: AuthContext, raw: Any) -> ProfileResult:
        user = await self._current_user(caller)
        result = validate_username(raw)
        if not result.valid:
            return ProfileResult(success=False, error=result.error)
        if result.value == user.username:
            return ProfileResult(
                success=True,
                message="This is already your current username",
                value=user.username,
            )
        if await self._db.is_username_taken(result.value):
            return ProfileResult(success=False, error="This username is already taken")

        error = await self._save(user, "username", result.value)
        if error is not None:
            return ProfileResult(success=False, error=error)
        return ProfileResult(
            success=True, message="Username updated successfully", value=result.value
        )

    async def change_name(self, caller: AuthContext, raw: Any) -> ProfileResult:
        user = await self._current_user(caller)
        result = validate_name(raw)
        if not result.valid:
            return ProfileResult(success=False, error=result.error)
        if result.value == user.name:
            return ProfileResult(
                success=True,
                message="This is already your current name",
                value=user.name,
            )
        if await self._db.is_name_taken(result.value):
            return ProfileResult(success=False, error="This name is already in use")

        error = await self._save(user, "name", result.value)
        if error is not None:
            return ProfileResult(success=False, error=error)
        return ProfileResult(success=True, message="Name updated successfully", value=result.value)

    async def change_password(
        self,
        caller: AuthContext,
        current: Optional[str],
        new: Optional[str],
        confirm: Optional[str],
    ) -> ProfileResult:
        if not current or not new or not confirm:
            return ProfileResult(success=False, error="All password fields are required")
        if new != confirm:
            return ProfileResult(success=False, error="New passwords do not match")

        result = validate_password(new)
        if not result.valid:
            return ProfileResult(success=False, error=result.error)

        user = await self._current_user(caller)
        if not await asyncio.to_thread(self._hasher.verify, current, user.password):
            return ProfileResult(success=False, error="Current password is incorrect")
        if await asyncio.to_thread(self._hasher.verify, new, user.password):
            return ProfileResult(
                success=False,
                error="New password must be different from current password",
            )

        password_hash = await asyncio.to_thread(self._hasher.hash, new)
        await self._save(user, "password", password_hash)
        return ProfileResult(success=True, message="Password updated successfully")

    async def change_commission(self, caller: AuthContext, raw: Any) -> ProfileResult:
        user = await self._current_user(caller)
        result = validate_commission(raw)
        if not result.valid:
            return ProfileResult(success=False, error=result.error)

        await self._save(user, "user_commission", result.value)
        return ProfileResult(
            success=True, message="Commission updated successfully", value=result.value
        )

    async def _current_user(self, caller: AuthContext) -> UserAccount:
        user = await self._db.get_account(AccountRole.USER, caller.id)
        if not isinstance(user, UserAccount):
            raise AccountNotFound("User not found")
        return user

    async def _save(self, user: UserAccount, field: str, value: Any) -> Optional[str]:
        try:
            async with self._db.transaction() as session:
                await self._db.set_account_fields(
                    AccountRole.USER, user.id or "", {field: value}, session=session
                )
        except DuplicateAccountError as exc:
            # Lost a race with a concurrent writer of the same value
            return exc.message
        except StoreError as exc:
            logger.exception("Profile update of %s rolled back", user.id)
            await self._audit.log_error(
                message="Profile update rolled back",
                details={"field": field, "error": str(exc)},
                actor_id=user.id,
                subject_id=user.id,
            )
            raise TransactionFailure(exc) from exc

        await self._audit.log_account_event(
            actor_id=user.id or "",
            subject_id=user.id,
            message="profile updated",
            details={"field": field},
        )
        return None
