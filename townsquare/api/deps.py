"""
townsquare.api.deps — FastAPI dependency injection
====================================================

The identity provider issues HS256 bearer tokens.  ``sub`` is the opaque
principal; ``is_admin`` unlocks the admin routes.  The token is trusted
once its signature checks out.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from townsquare.config import AccessPolicy, TownsquareConfig, load_config
from townsquare.constants import MAX_PRINCIPAL_LENGTH
from townsquare.database.engine import create_db_engine

_WEAK_SECRETS = frozenset({
    "townsquare-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> TownsquareConfig:
    return load_config()


def get_policy(cfg: Annotated[TownsquareConfig, Depends(get_config)]) -> AccessPolicy:
    return cfg.policy


def _decode(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub or len(sub) > MAX_PRINCIPAL_LENGTH:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid subject")
    return payload


def get_principal(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Return the authenticated principal id.  Raises 401 if absent or invalid."""
    return _decode(authorization)["sub"]


def get_optional_principal(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """Anonymous readers are allowed on read routes; a bad token is still 401."""
    if authorization is None:
        return None
    return _decode(authorization)["sub"]


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin payload. Raises 401/403 if invalid."""
    payload = _decode(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload
