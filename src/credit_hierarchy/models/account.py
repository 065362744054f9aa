from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .base import DBSerializableModel


class AccountRole(str, Enum):
    ADMIN = "admin"
    SUBADMIN = "subadmin"
    USER = "user"


class AccountState(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class LedgerEntry(BaseModel):
    """
    One debit recorded on a SubAdmin when it funds a User.
    """

    model_config = ConfigDict(populate_by_name=True)

    amount: float
    recipient_username: str = Field(alias="deposited_user_userName")
    date: str


class Account(DBSerializableModel):
    """
    Shared base record of the three account kinds.

    `password` always holds a salted hash; `public_view()` is the only
    representation handed outward.
    """

    unique_fields: ClassVar[Tuple[str, ...]] = ("uuid", "username", "name")

    id: Optional[str] = Field(default=None)
    uuid: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    username: str
    password: str = Field(description="Salted password hash.")
    role: AccountRole
    state: AccountState = AccountState.ACTIVE
    created_by: str = Field(
        alias="createdBy",
        description="Id of the account of the tier above that created this one.",
    )
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @property
    def is_active(self) -> bool:
        return self.state == AccountState.ACTIVE

    def public_view(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"password"}, mode="json")


class AdminAccount(Account):
    collection_name: ClassVar[str] = "admins"

    role: AccountRole = AccountRole.ADMIN


class FundedAccount(Account):
    credit: float = Field(default=0, description="Amount most recently deposited.")
    balance: float = Field(default=0, description="Current spendable balance.")
    last_credit_time: Optional[str] = Field(default=None, alias="lastCreditTime")


class SubAdminAccount(FundedAccount):
    collection_name: ClassVar[str] = "subadmins"

    role: AccountRole = AccountRole.SUBADMIN
    account_history: List[LedgerEntry] = Field(
        default_factory=list,
        description="Debits since the last top-up of this SubAdmin.",
    )


class UserAccount(FundedAccount):
    collection_name: ClassVar[str] = "users"

    role: AccountRole = AccountRole.USER
    shopname: Optional[str] = None
    initial_balance: float = Field(
        default=0, description="Balance baseline at the time of the last funding."
    )
    user_commission: float = 0
    owner_commission: float = 0
    games: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Usage counters of the current funding epoch.",
    )


ACCOUNT_MODELS: Dict[AccountRole, Type[Account]] = {
    AccountRole.ADMIN: AdminAccount,
    AccountRole.SUBADMIN: SubAdminAccount,
    AccountRole.USER: UserAccount,
}


def model_for(role: AccountRole) -> Type[Account]:
    return ACCOUNT_MODELS[AccountRole(role)]
