"""
Release models: product versions and their deployments.

A deployment refers to a version by its version string, not its id, so
deployment history survives a version being deleted.
"""
from datetime import date, datetime
from sqlalchemy import Date, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
import enum

from crm_admin.core.database.base import Base, TimestampMixin, UTCDateTime
from crm_admin.features.members.models import generate_ulid


VERSION_PATTERN = r"^v\d+\.\d+\.\d+$"


class VersionStatus(str, enum.Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    RELEASED = "released"
    ROLLED_BACK = "rolled_back"


class Priority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TestStatus(str, enum.Enum):
    UNTESTED = "untested"
    TESTING = "testing"
    PASSED = "passed"
    FAILED = "failed"


class Environment(str, enum.Enum):
    PRODUCTION = "production"
    STAGING = "staging"
    TESTING = "testing"


class DeploymentStatus(str, enum.Enum):
    DEPLOYING = "deploying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Version(Base, TimestampMixin):
    """A product release such as ``v2.1.0``."""
    __tablename__ = "versions"
    __search_fields__ = ("version", "name")
    __order_by__ = ("created_at", "id")

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    version: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    release_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=VersionStatus.DEVELOPMENT.value)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=Priority.MEDIUM.value)
    developer: Mapped[str] = mapped_column(String(50), nullable=False)
    test_status: Mapped[str] = mapped_column(String(20), nullable=False, default=TestStatus.UNTESTED.value)

    # Version string this release was rolled back to
    rollback_version: Mapped[str | None] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return f"<Version(id={self.id}, version={self.version!r}, status={self.status})>"


class Deployment(Base, TimestampMixin):
    """One rollout of a version to an environment."""
    __tablename__ = "deployments"
    __search_fields__ = ("version", "operator")
    __order_by__ = ("deploy_time", "id")

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    environment: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    version: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    deploy_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=DeploymentStatus.DEPLOYING.value)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    operator: Mapped[str] = mapped_column(String(50), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    logs: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<Deployment(id={self.id}, environment={self.environment!r}, version={self.version!r})>"
