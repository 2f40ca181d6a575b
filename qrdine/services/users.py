"""
User Directory

Staff account management. Accounts are never removed: "deleting" a user
deactivates it so historical bills keep a valid processed_by reference,
and the gate refuses deactivated accounts on their next request.
"""

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from qrdine.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from qrdine.models import User, UserRole
from qrdine.schemas import UserCreate, UserUpdate
from qrdine.services.auth import Identity, hash_password_async

logger = logging.getLogger(__name__)

PROTECTED_ROLES = (UserRole.ADMIN, UserRole.SUPERADMIN)


class UserDirectory:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", detail={"user_id": user_id})
        return user

    async def list_users(self, role: Optional[UserRole] = None) -> list[User]:
        query = select(User).order_by(User.username)
        if role is not None:
            query = query.where(User.role == role)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_user(self, data: UserCreate, creator: Identity) -> User:
        """
        Raises:
            PermissionDeniedError: Non-superadmin granting superadmin or
                creating another admin
            ConflictError: Username or email already taken
        """
        if (data.is_super_admin or data.role == UserRole.SUPERADMIN) and not creator.is_super_admin:
            raise PermissionDeniedError("Only a superadmin can create superadmin accounts")
        if data.role == UserRole.ADMIN and not creator.is_super_admin:
            raise PermissionDeniedError("Only a superadmin can create admin accounts")

        existing = await self.session.execute(
            select(User.id).where(or_(User.username == data.username, User.email == data.email))
        )
        if existing.first() is not None:
            raise ConflictError(
                "Username or email already exists",
                detail={"username": data.username, "email": data.email},
            )

        user = User(
            username=data.username,
            email=data.email,
            password_hash=await hash_password_async(data.password),
            role=data.role,
            is_super_admin=data.is_super_admin or data.role == UserRole.SUPERADMIN,
            first_name=data.first_name,
            last_name=data.last_name,
            permissions=data.permissions,
            created_by_id=creator.id,
        )
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"User {user.username} ({user.role.value}) created by {creator.username}")
        return user

    async def update_user(self, user_id: int, patch: UserUpdate, editor: Identity) -> User:
        user = await self.get_user(user_id)
        self._check_can_modify(user, editor)

        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        if changes.get("is_active") is False and user.id == editor.id:
            raise ConflictError("You cannot deactivate your own account")
        if changes.get("role") in PROTECTED_ROLES and not editor.is_super_admin:
            raise PermissionDeniedError("Only a superadmin can grant admin roles")

        password = changes.pop("password", None)
        if password is not None:
            user.password_hash = await hash_password_async(password)
        for field, value in changes.items():
            setattr(user, field, value)

        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"User {user.username} updated by {editor.username}: {sorted(patch.model_fields_set)}")
        return user

    async def deactivate_user(self, user_id: int, editor: Identity) -> User:
        user = await self.get_user(user_id)
        if user.id == editor.id:
            raise ConflictError("You cannot deactivate your own account")
        self._check_can_modify(user, editor)

        user.is_active = False
        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"User {user.username} deactivated by {editor.username}")
        return user

    @staticmethod
    def _check_can_modify(user: User, editor: Identity) -> None:
        if editor.is_super_admin or user.id == editor.id:
            return
        if user.is_super_admin or user.role in PROTECTED_ROLES:
            raise PermissionDeniedError("Admins cannot modify other admin accounts")
