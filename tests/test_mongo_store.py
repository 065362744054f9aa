from __future__ import annotations

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from credit_hierarchy.db.mongo import MongoDBManager
from credit_hierarchy.errors import AuthFailure, DuplicateAccountError, StoreError
from credit_hierarchy.models.account import AccountRole, AdminAccount
from credit_hierarchy.security.passwords import BcryptPasswordHasher
from credit_hierarchy.security.tokens import JWTCredentialProvider
from credit_hierarchy.services.auth_service import AuthorizationGate

from conftest import TEST_SECRET


class UnreachableCollection:
    """Collection whose every call fails as if no server can be selected."""

    def __init__(self, error: Exception) -> None:
        self._error = error

    async def find_one(self, *args, **kwargs):
        raise self._error

    async def insert_one(self, *args, **kwargs):
        raise self._error

    async def update_one(self, *args, **kwargs):
        raise self._error

    async def find_one_and_update(self, *args, **kwargs):
        raise self._error


class UnreachableDatabase:
    def __init__(self, error: Exception) -> None:
        self._error = error

    def __getitem__(self, name: str) -> UnreachableCollection:
        return UnreachableCollection(self._error)


def _admin() -> AdminAccount:
    return AdminAccount(
        name="RootAdminName", username="rootadmin1", password="digest", created_by="system"
    )


@pytest.fixture
def outage_store() -> MongoDBManager:
    return MongoDBManager(UnreachableDatabase(ServerSelectionTimeoutError("no servers")))


@pytest.mark.asyncio
async def test_lookups_raise_store_error(outage_store):
    with pytest.raises(StoreError):
        await outage_store.get_account(AccountRole.ADMIN, "abc")
    with pytest.raises(StoreError):
        await outage_store.get_owned_account(AccountRole.USER, "uuid", "abc")
    with pytest.raises(StoreError):
        await outage_store.find_account_by_username("rootadmin1")


@pytest.mark.asyncio
async def test_writes_raise_store_error(outage_store):
    with pytest.raises(StoreError):
        await outage_store.add_account(_admin())
    with pytest.raises(StoreError):
        await outage_store.set_account_fields(AccountRole.ADMIN, "abc", {"name": "OtherName1"})
    with pytest.raises(StoreError):
        await outage_store.fund_user("abc", 10, "2024-01-01 10:00:00 AM")


@pytest.mark.asyncio
async def test_outage_during_authorization_is_uniform_rejection(outage_store):
    credentials = JWTCredentialProvider(TEST_SECRET)
    gate = AuthorizationGate(
        db=outage_store, credentials=credentials, hasher=BcryptPasswordHasher(rounds=4)
    )
    token = credentials.issue({"id": "abc", "role": "admin"})

    with pytest.raises(AuthFailure):
        await gate.authorize(token, AccountRole.ADMIN)
    with pytest.raises(AuthFailure):
        await gate.login("rootadmin1", "Secret123A")


@pytest.mark.asyncio
async def test_duplicate_key_names_the_colliding_field():
    error = DuplicateKeyError("E11000", 11000, {"keyPattern": {"name": 1}})
    store = MongoDBManager(UnreachableDatabase(error))

    with pytest.raises(DuplicateAccountError) as excinfo:
        await store.add_account(_admin())

    assert excinfo.value.field == "name"
    assert excinfo.value.message == "This name is already in use"
