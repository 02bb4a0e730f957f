"""
Member models: users, roles and departments.

Users carry denormalized copies of their department name, role name,
manager name and resolved permissions. Roles and departments cache
user_count / member_count. The propagation engine keeps all of these in
step with their sources.
"""
from datetime import datetime
from sqlalchemy import String, Integer, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column
import enum
from ulid import ULID

from crm_admin.core.database.base import Base, TimestampMixin, UTCDateTime


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING = "pending"
    DISABLED = "disabled"


class EntityStatus(str, enum.Enum):
    """Status shared by roles and departments."""
    ACTIVE = "active"
    DISABLED = "disabled"


class Role(Base, TimestampMixin):
    """
    Role model grouping permissions.

    ``permissions`` is the raw grant list; a ``"*"`` entry grants everything.
    Lower ``level`` means more authority.
    """
    __tablename__ = "roles"
    __search_fields__ = ("name", "code")
    __order_by__ = ("created_at", "id")

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EntityStatus.ACTIVE.value)

    # Cached count of users holding this role
    user_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, code={self.code!r})>"


class Department(Base, TimestampMixin):
    """
    Department model forming a tree through ``parent_id``.

    A child's level is always greater than its parent's.
    """
    __tablename__ = "departments"
    __search_fields__ = ("name", "code")
    __order_by__ = ("created_at", "id")

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("departments.id"),
        nullable=True,
        index=True
    )

    # Display name of the manager and, optionally, the managing user
    manager: Mapped[str | None] = mapped_column(String(100), nullable=True)
    manager_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    level: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EntityStatus.ACTIVE.value)

    # Cached count of users in this department
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Department(id={self.id}, code={self.code!r}, parent_id={self.parent_id})>"


class User(Base, TimestampMixin):
    """
    User model for console members.

    Uses ULID instead of auto-incrementing integers for ids.
    """
    __tablename__ = "users"
    __search_fields__ = ("name", "email", "employee_id")
    __order_by__ = ("created_at", "id")

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    employee_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)

    department_id: Mapped[str] = mapped_column(String(26), ForeignKey("departments.id"), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String(50), nullable=False)

    role_id: Mapped[str] = mapped_column(String(26), ForeignKey("roles.id"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)

    # Resolved from the role at assignment time; ["*"] means all permissions
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UserStatus.PENDING.value)

    # Reporting line
    report_to_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    report_to: Mapped[str | None] = mapped_column(String(50), nullable=True)

    password_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)

    join_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"

