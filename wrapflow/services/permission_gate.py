"""
Permission Gate: the single role check in front of every engine operation.

Usage:
    from wrapflow.services.permission_gate import Principal, authorize

    authorize(principal)                       # mutating roles (default)
    authorize(principal, READ_ROLES)           # any authenticated user

The principal is always passed explicitly; no service reads request globals.
"""

import logging
from typing import NamedTuple

from wrapflow.core.exceptions import InsufficientPermissionsError, UnauthorizedError
from wrapflow.models import db
from wrapflow.models.auth import USER_ROLES, User

logger = logging.getLogger(__name__)

MUTATING_ROLES = frozenset({"ADMINISTRATOR", "MANAGER"})
READ_ROLES = frozenset(USER_ROLES)


class Principal(NamedTuple):
    """Authenticated actor behind an engine call."""

    user_id: str
    role: str


def authorize(principal: Principal | None, required_roles=MUTATING_ROLES) -> Principal:
    """Return ``principal`` when its role is in ``required_roles``.

    Raises:
        UnauthorizedError: No principal, or a principal without a user id.
        InsufficientPermissionsError: Role not in ``required_roles``.
    """
    if principal is None or not principal.user_id:
        raise UnauthorizedError()
    if principal.role not in required_roles:
        logger.warning(
            "Permission denied user=%s role=%s required=%s",
            principal.user_id, principal.role, sorted(required_roles),
        )
        raise InsufficientPermissionsError(principal.role, required_roles)
    return principal


def load_principal(user_id: str | None) -> Principal | None:
    """Resolve a principal from the users table; None for unknown or inactive users."""
    if not user_id:
        return None
    user = db.session.get(User, str(user_id))
    if user is None or not user.is_active:
        return None
    return Principal(user_id=user.id, role=user.role)
