from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional, Protocol

import jwt
from pydantic import BaseModel, ValidationError

from ..models.account import AccountRole

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """Decoded claim: which account the credential speaks for."""

    id: str
    role: AccountRole


class CredentialProvider(Protocol):
    def issue(self, payload: Mapping[str, Any]) -> str: ...

    def verify(self, token: str) -> Optional[Identity]: ...


class JWTCredentialProvider:
    """
    HS256 JWT issuer/verifier.

    Tokens carry `{id, role}`. Without a configured TTL they do not expire,
    matching the session model of the deployed system.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl_seconds: Optional[int] = None,
    ) -> None:
        if not secret:
            raise ValueError("a signing secret is required")
        self._secret = secret
        self._algorithm = algorithm
        self._ttl_seconds = ttl_seconds

    def issue(self, payload: Mapping[str, Any]) -> str:
        claims: Dict[str, Any] = dict(payload)
        if self._ttl_seconds is not None:
            now = int(time.time())
            claims["iat"] = now
            claims["exp"] = now + self._ttl_seconds
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> Optional[Identity]:
        """
        Decode and validate a token. Returns None for anything that is not a
        well-formed, correctly signed, unexpired token carrying an id and a
        known role.
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.PyJWTError as exc:
            logger.debug("Token rejected: %s", exc)
            return None

        try:
            return Identity.model_validate(claims)
        except ValidationError:
            logger.debug("Token claims missing id or role")
            return None
