from __future__ import annotations

import pytest

from credit_hierarchy.models.account import AccountState
from credit_hierarchy.validation import (
    validate,
    validate_commission,
    validate_credit,
    validate_name,
    validate_password,
    validate_state,
    validate_username,
)


def test_name_is_trimmed():
    result = validate_name("  ShopOwner01  ")
    assert result.valid
    assert result.value == "ShopOwner01"


@pytest.mark.parametrize(
    "raw, error",
    [
        (None, "Username is required"),
        ("short", "Username must be at least 8 characters"),
        ("a" * 2 + "b" * 2 + "c" * 17, "Username cannot exceed 20 characters"),
        ("shop owner", "Username can only contain letters and numbers"),
        ("shopownerrr1", "Username contains invalid character sequences"),
    ],
)
def test_username_rejections(raw, error):
    result = validate_username(raw)
    assert not result.valid
    assert result.error == error


def test_password_is_not_trimmed():
    assert not validate_password(" Secret123A").valid


@pytest.mark.parametrize(
    "raw, error",
    [
        ("Password", "Password is too common"),
        ("secret123a", "Must contain at least one uppercase letter"),
        ("SECRET123A", "Must contain at least one lowercase letter"),
        ("SecretPassA", "Must contain at least one number"),
    ],
)
def test_password_requirements(raw, error):
    result = validate_password(raw)
    assert not result.valid
    assert result.error == error


def test_password_accepted():
    assert validate_password("Secret123A").value == "Secret123A"


def test_commission_bounds():
    assert validate_commission("12.5").value == 12.5
    assert validate_commission(0).valid
    assert validate_commission(100).valid
    assert validate_commission(101).error == "Commission must be between 0 and 100"
    assert validate_commission("abc").error == "Commission must be a number"


def test_credit_rules():
    assert validate_credit("250").value == 250
    assert validate_credit(-1).error == "Credit must be a positive number"
    assert validate_credit(float("inf")).error == "Credit must be a number"
    assert validate_credit(True).error == "Credit must be a number"


def test_state_values():
    assert validate_state("suspended").value == AccountState.SUSPENDED
    assert not validate_state("deleted").valid


def test_unknown_field_is_not_allowed():
    result = validate("balance", 10)
    assert result.error == 'Field "balance" is not allowed'
