"""
userservice.api.deps — FastAPI dependency injection
====================================================

Reads are open to any caller on the service network.  Mutations need a
bearer JWT signed with ``JWT_SECRET`` whose payload carries
``"is_admin": true``.

The secret is checked once, when this module is imported, so a
misconfigured deployment fails at startup instead of on the first write.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from userservice.config import UserServiceConfig, load_config
from userservice.database.engine import create_db_engine

JWT_ALGORITHM = "HS256"
JWT_SECRET_MIN_LENGTH = 32

# Values copied from docs and .env.example that must never reach production
_PLACEHOLDER_SECRETS = frozenset({
    "userservice-dev-secret-change-me",
    "replace-with-output-of-secrets.token_urlsafe-64",
    "change-me",
    "secret",
})


def _secret_problem(secret: str) -> str | None:
    if not secret:
        return "is not set"
    if secret in _PLACEHOLDER_SECRETS:
        return "is still a placeholder value"
    if len(secret) < JWT_SECRET_MIN_LENGTH:
        return f"has {len(secret)} characters, need at least {JWT_SECRET_MIN_LENGTH}"
    return None


def load_jwt_secret() -> str:
    """Return ``JWT_SECRET`` from the environment.

    Raises
    ------
    RuntimeError
        If the secret is missing, a placeholder, or too short.
    """
    secret = os.getenv("JWT_SECRET", "")
    problem = _secret_problem(secret)
    if problem:
        raise RuntimeError(
            f"JWT_SECRET {problem}.  Generate one with: "
            "python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    return secret


JWT_SECRET: str = load_jwt_secret()


# ---------------------------------------------------------------------------
# Shared resources
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> UserServiceConfig:
    return load_config()


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing bearer token")
    return token


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Decode the caller's JWT.  401 if absent or invalid, 403 if not admin."""
    try:
        claims = jwt.decode(_bearer_token(authorization), JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token") from None
    if claims.get("is_admin") is not True:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin rights required")
    return claims
