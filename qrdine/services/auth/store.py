"""
Credential Store

Resolves usernames/passwords and user ids to identities using the
users table. The gate never touches the ORM directly.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qrdine.models import User, UserRole
from qrdine.services.auth.security import verify_password_async


@dataclass(frozen=True)
class Identity:
    """
    Authenticated caller.

    Attributes:
        id: User id
        username: Login name
        role: Role used for role-list authorization
        is_active: Deactivated identities never authenticate
        is_super_admin: Bypasses every role and permission check
        permissions: module -> allowed actions, for non-superadmins
    """
    id: int
    username: str
    role: UserRole
    is_active: bool = True
    is_super_admin: bool = False
    permissions: dict = field(default_factory=dict)

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            is_active=bool(user.is_active),
            is_super_admin=bool(user.is_super_admin),
            permissions=dict(user.permissions or {}),
        )


class CredentialStore:
    """Database-backed credential lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def verify(self, username: str, password: str) -> Optional[Identity]:
        """Return the identity if the password matches, else None."""
        result = await self.session.execute(
            select(User).where(User.username == username)
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None
        if not await verify_password_async(password, user.password_hash):
            return None
        return Identity.from_user(user)

    async def get_identity(self, user_id: int) -> Optional[Identity]:
        user = await self.session.get(User, user_id)
        if user is None:
            return None
        return Identity.from_user(user)
