"""
Identity & Role Gate

Single authorization contract for every staff-triggered mutation:

    identity = await gate.authenticate(authorization_header)
    gate.require(identity, [UserRole.KITCHEN, UserRole.WAITER])

The superadmin bypass is evaluated before any role-list or permission
comparison. Deactivated accounts are rejected on every request, not only
at login, because authenticate() re-reads the user each time.
"""

import logging
from typing import Iterable, Optional

from qrdine.core.config import get_settings
from qrdine.core.errors import AuthenticationError, PermissionDeniedError
from qrdine.models import UserRole
from qrdine.services.auth.security import create_access_token, decode_access_token
from qrdine.services.auth.store import CredentialStore, Identity

logger = logging.getLogger(__name__)


def _role_value(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


class IdentityGate:
    """Authenticates bearer credentials and checks roles/permissions."""

    def __init__(self, store: CredentialStore):
        self.store = store

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def authenticate(self, credential: Optional[str]) -> Identity:
        """
        Resolve a bearer credential to an identity.

        Args:
            credential: Authorization header value ("Bearer <token>")
                or a bare token

        Raises:
            AuthenticationError: Missing, malformed, expired or invalid
                credential; unknown or deactivated user
        """
        if not credential or not credential.strip():
            raise AuthenticationError("Not authorized to access this route")

        parts = credential.strip().split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            token = parts[1]
        elif len(parts) == 1:
            token = parts[0]
        else:
            raise AuthenticationError("Malformed authorization header")

        payload = decode_access_token(token)
        identity = await self.store.get_identity(payload["sub"])

        if identity is None:
            raise AuthenticationError("User not found")
        if not identity.is_active:
            logger.warning(f"Rejected credential for deactivated user {identity.username}")
            raise AuthenticationError("User account is deactivated")
        return identity

    async def login(self, username: str, password: str) -> tuple[str, Identity]:
        """
        Verify a username/password pair and issue an access token.

        Raises:
            AuthenticationError: Bad credentials or deactivated account
        """
        identity = await self.store.verify(username, password)
        if identity is None:
            raise AuthenticationError("Invalid username or password")
        if not identity.is_active:
            raise AuthenticationError("User account is deactivated")

        token = create_access_token(identity.id, _role_value(identity.role))
        logger.info(f"User {identity.username} logged in ({_role_value(identity.role)})")
        return token, identity

    async def refresh(self, credential: Optional[str]) -> tuple[str, Identity]:
        """Issue a fresh token for a still-valid credential."""
        identity = await self.authenticate(credential)
        return create_access_token(identity.id, _role_value(identity.role)), identity

    @staticmethod
    def token_lifetime_seconds() -> int:
        return get_settings().access_token_expire_minutes * 60

    # =========================================================================
    # AUTHORIZATION
    # =========================================================================

    @staticmethod
    def authorize(identity: Identity, allowed_roles: Iterable) -> bool:
        if identity.is_super_admin:
            return True
        allowed = {_role_value(role) for role in allowed_roles}
        return _role_value(identity.role) in allowed

    def require(self, identity: Identity, allowed_roles: Iterable) -> Identity:
        """
        Raises:
            PermissionDeniedError: Role not allowed and not superadmin
        """
        allowed_roles = list(allowed_roles)
        if not self.authorize(identity, allowed_roles):
            raise PermissionDeniedError(
                f"User role {_role_value(identity.role)} is not authorized to access this route"
            )
        return identity

    @staticmethod
    def check_permission(identity: Identity, module: str, action: str) -> bool:
        """Module/action check; anything not granted explicitly is denied."""
        if identity.is_super_admin:
            return True
        return action in (identity.permissions.get(module) or [])

    def require_permission(self, identity: Identity, module: str, action: str) -> Identity:
        if not self.check_permission(identity, module, action):
            raise PermissionDeniedError(f"Not authorized to {action} in {module} module")
        return identity
