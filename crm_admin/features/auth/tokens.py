"""
JWT bearer tokens and the active-token registry.

A token is valid only while it verifies against JWT_SECRET, has not
expired, and is still registered. Logout removes it from the registry.
"""
import threading
from datetime import timedelta
from typing import Any

import jwt
from ulid import ULID

from crm_admin.core import config, timeutils
from crm_admin.core.errors import Unauthenticated
from crm_admin.utils import get_logger


log = get_logger(__name__)


class TokenRegistry:
    """Set of tokens issued by this process and not yet revoked."""

    def __init__(self):
        self._tokens: set[str] = set()
        self._lock = threading.Lock()

    def add(self, token: str) -> None:
        with self._lock:
            self._tokens.add(token)

    def revoke(self, token: str) -> bool:
        with self._lock:
            if token in self._tokens:
                self._tokens.remove(token)
                return True
            return False

    def is_active(self, token: str) -> bool:
        with self._lock:
            return token in self._tokens

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()


_registry = TokenRegistry()


def get_token_registry() -> TokenRegistry:
    return _registry


def issue_token(user_id: str, email: str, role_code: str | None) -> str:
    now = timeutils.utcnow()
    payload = {
        "sub": user_id,
        "email": email,
        "role": role_code,
        "iat": now,
        "exp": now + timedelta(minutes=config.JWT_EXPIRES_MINUTES),
        # Unique per token so two logins in the same second differ
        "jti": str(ULID()),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    """
    Verify signature and expiry.

    Raises:
        Unauthenticated: if the token is malformed, forged or expired
    """
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise Unauthenticated("Access token has expired") from e
    except jwt.InvalidTokenError as e:
        log.info(f"Rejected invalid token: {e}")
        raise Unauthenticated("Access token is invalid") from e
