"""
Room Keys

Role-rooms and table-rooms live in separate namespaces, so a table whose
id happens to match a role name (or vice versa) can never collide.
"""

import enum
from dataclasses import dataclass
from typing import Union

from qrdine.models import UserRole


class RoomKind(str, enum.Enum):
    ROLE = "role"
    TABLE = "table"


@dataclass(frozen=True)
class RoomKey:
    kind: RoomKind
    name: str

    @classmethod
    def for_role(cls, role: Union[UserRole, str]) -> "RoomKey":
        """
        Raises:
            ValueError: If role is not one of the fixed staff roles
        """
        try:
            role = UserRole(role.value if isinstance(role, UserRole) else str(role).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role room: {role!r}")
        return cls(RoomKind.ROLE, role.value)

    @classmethod
    def for_table(cls, table_id: Union[int, str]) -> "RoomKey":
        """
        Raises:
            ValueError: If table_id is not a positive integer
        """
        if isinstance(table_id, bool):
            raise ValueError(f"Invalid table id: {table_id!r}")
        try:
            value = int(str(table_id).strip())
        except ValueError:
            raise ValueError(f"Invalid table id: {table_id!r}")
        if value <= 0:
            raise ValueError(f"Invalid table id: {table_id!r}")
        return cls(RoomKind.TABLE, str(value))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"
