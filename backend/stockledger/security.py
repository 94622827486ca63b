# backend/stockledger/security.py

"""
Security helpers for the stock ledger.

Responsibilities:
- JWT access token creation and decoding
- FastAPI dependencies that resolve the acting identity for ledger writes
- Admin gate for destructive endpoints (clear inventory / clear logs)

Passwords never reach this service. Tokens are issued by the identity
provider (or `stockledger.scripts.issue_dev_token` locally) and only
verified here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

ADMIN_ROLES: Set[str] = {
    role.strip().lower()
    for role in os.getenv("LEDGER_ADMIN_ROLES", "admin").split(",")
    if role.strip()
}

# Used by FastAPI's OpenAPI docs; tokens are minted elsewhere.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as far as the ledger cares."""

    identity: str
    role: Optional[str] = None
    is_admin: bool = False


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    The `data` dict should already include the identity, e.g.:
        {"sub": "alice@example.com", "email": "alice@example.com", "role": "admin"}
    """
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def _claims_is_admin(payload: dict) -> bool:
    if payload.get("is_admin") is True:
        return True
    role = payload.get("role")
    return isinstance(role, str) and role.strip().lower() in ADMIN_ROLES


def decode_actor(token: str) -> Optional[Actor]:
    """Return the Actor for a valid token, or None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

    identity = payload.get("email") or payload.get("sub")
    if not isinstance(identity, str) or not identity.strip():
        return None

    role = payload.get("role")
    return Actor(
        identity=identity.strip(),
        role=role if isinstance(role, str) else None,
        is_admin=_claims_is_admin(payload),
    )


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    actor = decode_actor(token)
    if actor is None:
        raise _credentials_exception()
    return actor


def get_actor_identity(actor: Actor = Depends(get_current_actor)) -> str:
    """The `actor_identity` recorded on every ledger transaction."""
    return actor.identity


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """
    Dependency that enforces an admin-level caller.

    Allowed when the token carries `is_admin: true` or a `role` listed in
    LEDGER_ADMIN_ROLES (comma separated, case-insensitive).
    """
    if actor.is_admin:
        return actor
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient privileges",
    )
