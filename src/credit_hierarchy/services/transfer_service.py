from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel

from ..clock import Clock
from ..db.base import BaseDBManager
from ..errors import (
    AccountNotFound,
    BusinessRuleFailure,
    InsufficientBalance,
    StoreError,
)
from ..logging.audit_logger import AuditLogger
from ..models.account import LedgerEntry, SubAdminAccount, UserAccount

logger = logging.getLogger(__name__)


class TransferStatus(str, Enum):
    COMMITTED = "committed"
    REJECTED = "rejected"
    FAILED = "failed"


class TransferReceipt(BaseModel):
    subadmin: SubAdminAccount
    recipient: UserAccount
    amount: float
    date: str


class TransferResult(BaseModel):
    """
    Outcome of a self-contained transfer.

    `REJECTED` is a business-rule refusal (e.g. insufficient balance) with a
    user-facing `error`; `FAILED` is a store-level abort whose detail stays in
    the logs. Neither leaves any trace in the store.
    """

    status: TransferStatus
    receipt: Optional[TransferReceipt] = None
    error: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.status == TransferStatus.COMMITTED


class CreditTransferService:
    """
    Moves credit from a SubAdmin to one of its Users.

    This is the only component that writes a SubAdmin's `balance` and
    `account_history`. `transfer()` runs one transfer as its own unit of work;
    `stage_transfer()` and `stage_top_up()` join a unit of work opened by the
    caller, so other field changes can commit together with the credit
    movement.
    """

    def __init__(self, db: BaseDBManager, audit: AuditLogger, clock: Clock) -> None:
        self._db = db
        self._audit = audit
        self._clock = clock

    async def transfer(
        self,
        subadmin_id: str,
        amount: float,
        recipient: UserAccount,
        on_reserved: Optional[Callable[[], None]] = None,
    ) -> TransferResult:
        """
        Fund `recipient` from the SubAdmin's balance.

        A recipient without an `id` is a new User: it is inserted with
        credit = balance = initial_balance = amount in the same unit of work
        as the debit. Otherwise the stored User is re-funded additively.
        The recipient must be owned by the SubAdmin.

        `on_reserved` is called once the debit has been staged, before the
        recipient is written.
        """
        is_new = recipient.id is None
        try:
            async with self._db.transaction() as session:
                receipt = await self.stage_transfer(
                    session, subadmin_id, amount, recipient, on_reserved=on_reserved
                )
        except BusinessRuleFailure as exc:
            if is_new:
                recipient.id = None
            await self._audit.log_error(
                message="Transfer rejected",
                details={"amount": amount, "reason": exc.message, **exc.context},
                actor_id=subadmin_id,
                subject_id=recipient.id,
            )
            return TransferResult(status=TransferStatus.REJECTED, error=exc.message)
        except StoreError as exc:
            if is_new:
                recipient.id = None
            logger.exception("Transfer from %s rolled back", subadmin_id)
            await self._audit.log_error(
                message="Transfer rolled back",
                details={"amount": amount, "error": str(exc)},
                actor_id=subadmin_id,
                subject_id=recipient.id,
            )
            return TransferResult(status=TransferStatus.FAILED, error="Internal server error")

        await self.record_transfer(receipt)
        return TransferResult(status=TransferStatus.COMMITTED, receipt=receipt)

    async def stage_transfer(
        self,
        session: Any,
        subadmin_id: str,
        amount: float,
        recipient: UserAccount,
        on_reserved: Optional[Callable[[], None]] = None,
    ) -> TransferReceipt:
        self._check_amount(amount)
        if recipient.created_by != subadmin_id:
            raise AccountNotFound("User not found", context={"owner": recipient.created_by})
        now = self._clock.now()

        entry = LedgerEntry(
            # Zero funding records 0.0, never -0.0
            amount=-amount or 0.0,
            recipient_username=recipient.username,
            date=now,
        )
        subadmin = await self._db.debit_balance(subadmin_id, amount, entry, session=session)
        if subadmin is None:
            raise InsufficientBalance(context={"requested": amount})
        if on_reserved is not None:
            on_reserved()

        if recipient.id is None:
            recipient.credit = amount
            recipient.balance = amount
            recipient.initial_balance = amount
            recipient.last_credit_time = now
            recipient.games = []
            funded = await self._db.add_account(recipient, session=session)
        else:
            funded = await self._db.fund_user(recipient.id, amount, now, session=session)
            if funded is None:
                raise AccountNotFound("User not found")

        return TransferReceipt(subadmin=subadmin, recipient=funded, amount=amount, date=now)

    async def stage_top_up(
        self, session: Any, subadmin_id: str, amount: float
    ) -> SubAdminAccount:
        """
        Top up a SubAdmin from its Admin. The balance grows by `amount` and
        the spend history starts over.
        """
        self._check_amount(amount)
        subadmin = await self._db.top_up_balance(
            subadmin_id, amount, self._clock.now(), session=session
        )
        if subadmin is None:
            raise AccountNotFound("SubAdmin not found")
        return subadmin

    async def record_transfer(self, receipt: TransferReceipt) -> None:
        await self._audit.log_transfer(
            actor_id=receipt.subadmin.id or "",
            subject_id=receipt.recipient.id,
            message="Credit transferred",
            details={
                "amount": receipt.amount,
                "recipient_username": receipt.recipient.username,
                "subadmin_balance": receipt.subadmin.balance,
                "recipient_balance": receipt.recipient.balance,
            },
        )

    async def record_top_up(self, actor_id: str, subadmin: SubAdminAccount) -> None:
        await self._audit.log_top_up(
            actor_id=actor_id,
            subject_id=subadmin.id or "",
            details={"credit": subadmin.credit, "balance": subadmin.balance},
        )

    @staticmethod
    def _check_amount(amount: float) -> None:
        if not math.isfinite(amount) or amount < 0:
            raise BusinessRuleFailure("Credit must be a positive number")
