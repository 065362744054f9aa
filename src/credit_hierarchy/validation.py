"""
Field format validators.

Pure functions: no store access. Uniqueness of names and usernames is
checked by the services against the account store.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from .models.account import AccountState

MIN_LENGTH = 8
MAX_LENGTH = 20
COMMON_PASSWORDS = frozenset({"password", "12345678", "qwertyui", "admin123"})

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9]")
# Three or more identical characters in a row
_REPEATED_CHARS = re.compile(r"(.)\1{2,}")

_PASSWORD_REQUIREMENTS = (
    (re.compile(r"[A-Z]"), "Must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Must contain at least one number"),
)


class ValidationResult(BaseModel):
    valid: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Any) -> "ValidationResult":
        return cls(valid=True, value=value)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)


def _validate_identifier(label: str, raw: Any) -> ValidationResult:
    if not raw or not isinstance(raw, str):
        return ValidationResult.fail(f"{label} is required")

    trimmed = raw.strip()
    if len(trimmed) < MIN_LENGTH:
        return ValidationResult.fail(f"{label} must be at least {MIN_LENGTH} characters")
    if len(trimmed) > MAX_LENGTH:
        return ValidationResult.fail(f"{label} cannot exceed {MAX_LENGTH} characters")
    if _INVALID_CHARS.search(trimmed):
        return ValidationResult.fail(f"{label} can only contain letters and numbers")
    if _REPEATED_CHARS.search(trimmed):
        return ValidationResult.fail(f"{label} contains invalid character sequences")
    return ValidationResult.ok(trimmed)


def validate_name(raw: Any) -> ValidationResult:
    return _validate_identifier("Name", raw)


def validate_username(raw: Any) -> ValidationResult:
    return _validate_identifier("Username", raw)


def validate_password(raw: Any) -> ValidationResult:
    """Passwords are not trimmed; whitespace is rejected by the charset rule."""
    if not raw or not isinstance(raw, str):
        return ValidationResult.fail("Password is required")
    if len(raw) < MIN_LENGTH:
        return ValidationResult.fail(f"Password must be at least {MIN_LENGTH} characters")
    if len(raw) > MAX_LENGTH:
        return ValidationResult.fail(f"Password cannot exceed {MAX_LENGTH} characters")
    if _INVALID_CHARS.search(raw):
        return ValidationResult.fail("Password can only contain letters and numbers")
    if raw.lower() in COMMON_PASSWORDS:
        return ValidationResult.fail("Password is too common")
    for pattern, error in _PASSWORD_REQUIREMENTS:
        if not pattern.search(raw):
            return ValidationResult.fail(error)
    return ValidationResult.ok(raw)


def _parse_number(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        number = float(str(raw).strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def validate_commission(raw: Any) -> ValidationResult:
    number = _parse_number(raw)
    if number is None:
        return ValidationResult.fail("Commission must be a number")
    if number < 0 or number > 100:
        return ValidationResult.fail("Commission must be between 0 and 100")
    return ValidationResult.ok(number)


def validate_credit(raw: Any) -> ValidationResult:
    number = _parse_number(raw)
    if number is None:
        return ValidationResult.fail("Credit must be a number")
    if number < 0:
        return ValidationResult.fail("Credit must be a positive number")
    return ValidationResult.ok(number)


def validate_state(raw: Any) -> ValidationResult:
    allowed = [state.value for state in AccountState]
    if raw not in allowed:
        return ValidationResult.fail(f"State must be one of: {', '.join(allowed)}")
    return ValidationResult.ok(AccountState(raw))


VALIDATORS: Dict[str, Callable[[Any], ValidationResult]] = {
    "name": validate_name,
    "username": validate_username,
    "password": validate_password,
    "commission": validate_commission,
    "credit": validate_credit,
    "state": validate_state,
}


def validate(field: str, raw: Any) -> ValidationResult:
    validator = VALIDATORS.get(field)
    if validator is None:
        return ValidationResult.fail(f'Field "{field}" is not allowed')
    return validator(raw)
