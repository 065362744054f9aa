from __future__ import annotations

import jwt
import pytest

from credit_hierarchy.errors import AuthFailure
from credit_hierarchy.models.account import AccountRole

from conftest import ADMIN_PASSWORD, SUBADMIN_PASSWORD, TEST_SECRET


@pytest.mark.asyncio
async def test_login_issues_credential_for_account(stack):
    admin = await stack.seed_admin()

    token = await stack.gate.login("rootadmin1", ADMIN_PASSWORD)

    claims = jwt.decode(token, TEST_SECRET, algorithms=["HS256"])
    assert claims == {"id": admin.id, "role": "admin"}
    context = await stack.gate.authorize(token, AccountRole.ADMIN)
    assert context.id == admin.id


@pytest.mark.asyncio
async def test_login_rejects_wrong_password(stack):
    await stack.seed_admin()

    with pytest.raises(AuthFailure):
        await stack.gate.login("rootadmin1", "Wrong123Pass")
    with pytest.raises(AuthFailure):
        await stack.gate.login("nobodyhere", ADMIN_PASSWORD)


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "not-a-token"])
async def test_malformed_credentials_are_rejected(stack, token):
    with pytest.raises(AuthFailure) as excinfo:
        await stack.gate.authorize(token, AccountRole.ADMIN)
    assert str(excinfo.value) == "Authentication required"


@pytest.mark.asyncio
async def test_role_mismatch_is_rejected(stack):
    admin = await stack.seed_admin()
    await stack.seed_subadmin(admin, credit=100)
    token = await stack.gate.login("shopowner01", SUBADMIN_PASSWORD)

    with pytest.raises(AuthFailure):
        await stack.gate.authorize(token, AccountRole.ADMIN)


@pytest.mark.asyncio
async def test_forged_role_claim_does_not_escalate(stack):
    admin = await stack.seed_admin()
    subadmin = await stack.seed_subadmin(admin, credit=100)
    forged = stack.credentials.issue({"id": subadmin.id, "role": "admin"})

    with pytest.raises(AuthFailure):
        await stack.gate.authorize(forged, AccountRole.ADMIN)


@pytest.mark.asyncio
async def test_suspended_account_loses_access(stack):
    admin = await stack.seed_admin()
    subadmin = await stack.seed_subadmin(admin, credit=100)
    token = await stack.gate.login("shopowner01", SUBADMIN_PASSWORD)

    await stack.mutations.update_account(
        admin, AccountRole.SUBADMIN, subadmin.account.uuid, {"state": "suspended"}
    )

    with pytest.raises(AuthFailure):
        await stack.gate.authorize(token, AccountRole.SUBADMIN)
    with pytest.raises(AuthFailure):
        await stack.gate.login("shopowner01", SUBADMIN_PASSWORD)


@pytest.mark.asyncio
async def test_deleted_account_token_is_rejected(stack):
    token = stack.credentials.issue({"id": "missing", "role": "user"})

    with pytest.raises(AuthFailure):
        await stack.gate.authorize(token, AccountRole.USER)
