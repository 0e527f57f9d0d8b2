"""SQLAlchemy models for the project service database."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from project_service.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, new_id, utcnow


class ProjectStatus(str, Enum):
    """Project lifecycle."""

    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class VerificationStatus(str, Enum):
    """Domain ownership verification state."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"


class VerificationMethod(str, Enum):
    """How the domain owner proves control of the domain."""

    DNS_TXT = "DNS_TXT"
    HTTP_FILE = "HTTP_FILE"
    META_TAG = "META_TAG"


class TenantUsage(TimestampMixin, Base):
    """Tenant-level resource counters."""

    __tablename__ = "tenant_usage"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Project(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A tenant project owning domains and repositories."""

    __tablename__ = "projects"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        SAEnum(ProjectStatus, native_enum=False, length=20),
        default=ProjectStatus.ACTIVE,
        nullable=False,
    )
    domain_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    repo_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    domains: Mapped[list["Domain"]] = relationship(
        "Domain", back_populates="project", cascade="all, delete-orphan"
    )
    repositories: Mapped[list["Repository"]] = relationship(
        "Repository", back_populates="project", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_projects_tenant_status", "tenant_id", "status"),)

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.ACTIVE


class Domain(Base):
    """A domain attached to a project, pending ownership verification."""

    __tablename__ = "domains"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain_url: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    verification_status: Mapped[VerificationStatus] = mapped_column(
        SAEnum(VerificationStatus, native_enum=False, length=20),
        default=VerificationStatus.PENDING,
        nullable=False,
    )
    verification_method: Mapped[VerificationMethod] = mapped_column(
        SAEnum(VerificationMethod, native_enum=False, length=20),
        default=VerificationMethod.DNS_TXT,
        nullable=False,
    )
    # Set once at creation
    verification_token: Mapped[str] = mapped_column(String(64), nullable=False, default=new_id)
    verified_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    project: Mapped["Project"] = relationship("Project", back_populates="domains")

    def mark_as_verified(self) -> None:
        self.verification_status = VerificationStatus.VERIFIED
        self.verified_at = utcnow()

    def mark_as_failed(self) -> None:
        self.verification_status = VerificationStatus.FAILED
        self.verified_at = None


class Repository(Base):
    """A source repository attached to a project."""

    __tablename__ = "repositories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_url: Mapped[str] = mapped_column(String(500), nullable=False)
    default_branch: Mapped[str] = mapped_column(String(255), default="main", nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    project: Mapped["Project"] = relationship("Project", back_populates="repositories")

    __table_args__ = (UniqueConstraint("project_id", "repo_url", name="uq_repositories_project_url"),)
