"""
Bearer-token parsing for ``/api/v1`` requests.

Sets ``g.jwt_user_id``, ``g.jwt_role`` and ``g.jwt_claims``. A request is
never rejected here: without a usable token the attributes stay None and
the permission gate inside the service call answers 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from wrapflow.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
PUBLIC_PATHS = frozenset({"/api/v1/health"})


def _bearer_token():
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def init_jwt_middleware(app):
    """Register the token parser as a before_request hook."""

    @app.before_request
    def _load_jwt_identity():
        g.jwt_user_id = None
        g.jwt_role = None
        g.jwt_claims = None

        if not request.path.startswith(API_PREFIX) or request.path in PUBLIC_PATHS:
            return

        token = _bearer_token()
        if token is None:
            return

        try:
            claims = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token path=%s", request.path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected access token path=%s reason=%s", request.path, exc)
            return

        g.jwt_claims = claims
        g.jwt_user_id = claims["sub"]
        g.jwt_role = claims.get("role")
