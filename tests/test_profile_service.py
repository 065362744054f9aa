from __future__ import annotations

import pytest

from credit_hierarchy.db.memory import InMemoryDBManager
from credit_hierarchy.errors import StoreError, TransactionFailure
from credit_hierarchy.models.account import AccountRole

from conftest import USER_PASSWORD, Stack


async def _user(stack):
    admin = await stack.seed_admin()
    subadmin = await stack.seed_subadmin(admin, credit=500)
    return await stack.seed_user(subadmin, credit=100)


@pytest.mark.asyncio
async def test_profile_view(stack):
    user = await _user(stack)

    profile = await stack.profiles.get_profile(user)

    assert profile.name == "PlayerOne01"
    assert profile.username == "playerone01"
    assert profile.shopname == "PlayerOne01"
    assert profile.user_commission == 10


@pytest.mark.asyncio
async def test_change_username(stack):
    user = await _user(stack)

    result = await stack.profiles.change_username(user, "  playertwo02 ")

    assert result.success
    assert result.message == "Username updated successfully"
    assert (await stack.db.get_account(AccountRole.USER, user.id)).username == "playertwo02"


@pytest.mark.asyncio
async def test_same_username_is_a_no_op(stack):
    user = await _user(stack)

    result = await stack.profiles.change_username(user, "playerone01")

    assert result.success
    assert result.message == "This is already your current username"


@pytest.mark.asyncio
async def test_taken_name_is_refused(stack):
    user = await _user(stack)

    result = await stack.profiles.change_name(user, "ShopOwner01")

    assert not result.success
    assert result.error == "This name is already in use"


@pytest.mark.asyncio
async def test_change_password_checks(stack):
    user = await _user(stack)

    missing = await stack.profiles.change_password(user, USER_PASSWORD, "Fresh456Pass", None)
    assert missing.error == "All password fields are required"

    mismatch = await stack.profiles.change_password(
        user, USER_PASSWORD, "Fresh456Pass", "Fresh456Pasz"
    )
    assert mismatch.error == "New passwords do not match"

    wrong = await stack.profiles.change_password(user, "Wrong123Pass", "Fresh456Pass", "Fresh456Pass")
    assert wrong.error == "Current password is incorrect"

    same = await stack.profiles.change_password(user, USER_PASSWORD, USER_PASSWORD, USER_PASSWORD)
    assert same.error == "New password must be different from current password"

    changed = await stack.profiles.change_password(
        user, USER_PASSWORD, "Fresh456Pass", "Fresh456Pass"
    )
    assert changed.success
    assert await stack.gate.login("playerone01", "Fresh456Pass")


@pytest.mark.asyncio
async def test_change_commission(stack):
    user = await _user(stack)

    assert not (await stack.profiles.change_commission(user, 150)).success

    result = await stack.profiles.change_commission(user, "42")

    assert result.success
    assert result.value == 42
    assert (await stack.db.get_account(AccountRole.USER, user.id)).user_commission == 42


class FailingUpdateStore(InMemoryDBManager):
    async def set_account_fields(self, role, account_id, fields, session=None):
        raise StoreError("connection reset")


@pytest.mark.asyncio
async def test_store_failure_on_save_is_a_transaction_failure(tmp_path):
    stack = Stack(tmp_path, db=FailingUpdateStore())
    user = await _user(stack)

    with pytest.raises(TransactionFailure):
        await stack.profiles.change_commission(user, 20)

    stored = await stack.db.get_account(AccountRole.USER, user.id)
    assert stored.user_commission == 10
    assert stack.db.audit_events[-1].message == "Profile update rolled back"
