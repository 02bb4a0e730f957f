"""
Permission model.

Permissions are seeded once and never mutated through the API. Their ids
are the permission strings themselves (``user.read``), and ``parent_id``
links buttons to menus and menus to top-level sections.
"""
import enum
from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column

from crm_admin.core.database.base import Base


class PermissionType(str, enum.Enum):
    MENU = "menu"
    BUTTON = "button"


# Granted to a role in place of an explicit list; means every permission
WILDCARD = "*"


class Permission(Base):
    """
    A single grantable capability.

    Examples:
    - id="system", type="menu", parent_id=None, level=1
    - id="user.read", type="button", parent_id="user", level=3
    """
    __tablename__ = "permissions"
    __search_fields__ = ("id", "name")
    __order_by__ = ("sort_order",)

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=PermissionType.BUTTON.value)
    # Not a foreign key: seed order lists buttons before their menu
    parent_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id!r}, type={self.type}, parent_id={self.parent_id!r})>"
