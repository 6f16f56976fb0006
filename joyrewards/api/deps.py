"""
joyrewards.api.deps — FastAPI dependency injection
===================================================
"""

from __future__ import annotations

import hmac
import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from joyrewards.config import JoyRewardsConfig, load_config
from joyrewards.database.engine import create_db_engine
from joyrewards.engine.policy import RewardPolicy

_WEAK_SECRETS = frozenset({
    "joyrewards-dev-secret-change-me",
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
def get_config() -> JoyRewardsConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_policy() -> RewardPolicy:
    """Process-wide policy view; loaded lazily on first read."""
    return RewardPolicy(get_engine())


def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return its payload.  ``sub`` is the member id."""
    payload = _decode_bearer(authorization)
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401/403 if invalid."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


def verify_job_caller(
    x_cron_secret: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Allow the scheduler (shared secret) or an admin to trigger jobs.

    Returns a label for the caller, used in logs.
    """
    expected = os.getenv("CRON_SECRET", "")
    if x_cron_secret:
        if expected and hmac.compare_digest(x_cron_secret, expected):
            return "scheduler"
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid cron secret")
    admin = get_current_admin(authorization)
    return f"admin:{admin.get('sub')}"


def user_id_of(payload: dict) -> str:
    return str(payload["sub"])


EngineDep = Annotated[Engine, Depends(get_engine)]
ConfigDep = Annotated[JoyRewardsConfig, Depends(get_config)]
PolicyDep = Annotated[RewardPolicy, Depends(get_policy)]
UserDep = Annotated[dict, Depends(get_current_user)]
AdminDep = Annotated[dict, Depends(get_current_admin)]
