from __future__ import annotations

import re
import time

import jwt
import pytest

from credit_hierarchy.clock import ZoneClock
from credit_hierarchy.models.account import AccountRole
from credit_hierarchy.security.passwords import BcryptPasswordHasher
from credit_hierarchy.security.tokens import JWTCredentialProvider


def test_token_round_trip_without_expiry():
    provider = JWTCredentialProvider("secret")
    token = provider.issue({"id": "abc", "role": "subadmin"})

    identity = provider.verify(token)

    assert identity.id == "abc"
    assert identity.role == AccountRole.SUBADMIN
    assert "exp" not in jwt.decode(token, "secret", algorithms=["HS256"])


def test_token_signed_with_other_secret_is_rejected():
    token = JWTCredentialProvider("other").issue({"id": "abc", "role": "user"})
    assert JWTCredentialProvider("secret").verify(token) is None


def test_expired_token_is_rejected():
    provider = JWTCredentialProvider("secret", ttl_seconds=60)
    expired = jwt.encode(
        {"id": "abc", "role": "user", "exp": int(time.time()) - 10}, "secret", algorithm="HS256"
    )
    assert provider.verify(expired) is None
    assert provider.verify(provider.issue({"id": "abc", "role": "user"})) is not None


def test_token_with_unknown_role_is_rejected():
    provider = JWTCredentialProvider("secret")
    assert provider.verify(provider.issue({"id": "abc", "role": "root"})) is None


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        JWTCredentialProvider("")


def test_clock_format():
    stamp = ZoneClock("Asia/Kolkata").now()
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} (AM|PM)", stamp)


def test_bcrypt_hashes_are_salted():
    hasher = BcryptPasswordHasher(rounds=4)
    first, second = hasher.hash("Secret123A"), hasher.hash("Secret123A")

    assert first != second
    assert hasher.verify("Secret123A", first)
    assert not hasher.verify("Secret123B", first)
    assert not hasher.verify("Secret123A", "not-a-bcrypt-digest")
