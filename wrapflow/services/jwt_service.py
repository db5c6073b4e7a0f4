"""
Access tokens for the template API (PyJWT, HS256).

Claims:
    sub   user id (string)
    role  ADMINISTRATOR | MANAGER | STAFF, informational only
    type  always "access"
    iat / exp / jti

The permission gate re-reads the role from the users table on every
request, so a demoted or deactivated user loses access immediately even
while an old token is still within its lifetime.

Config:
    JWT_SECRET_KEY      falls back to SECRET_KEY
    JWT_ACCESS_EXPIRES  lifetime in seconds (default 900)
    JWT_LEEWAY          clock skew tolerance in seconds (default 0)
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"
TOKEN_TYPE = "access"
DEFAULT_ACCESS_EXPIRES = 900
REQUIRED_CLAIMS = ("sub", "exp", "iat", "type")


def _secret() -> str:
    cfg = current_app.config
    return cfg.get("JWT_SECRET_KEY") or cfg["SECRET_KEY"]


def generate_access_token(user_id: str, role: str | None = None, expires_in: int | None = None) -> str:
    """Sign a short-lived access token for ``user_id``.

    ``expires_in`` overrides JWT_ACCESS_EXPIRES; a negative value produces an
    already-expired token.
    """
    if expires_in is None:
        expires_in = current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(seconds=expires_in),
        "jti": uuid.uuid4().hex,
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type; return the claims.

    Raises:
        jwt.ExpiredSignatureError: token past ``exp``.
        jwt.InvalidTokenError: bad signature, missing claim or wrong type.
    """
    claims = jwt.decode(
        token,
        _secret(),
        algorithms=[ALGORITHM],
        leeway=current_app.config.get("JWT_LEEWAY", 0),
        options={"require": list(REQUIRED_CLAIMS)},
    )
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected an {TOKEN_TYPE} token")
    return claims
