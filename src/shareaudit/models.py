"""
SQLAlchemy database models for ShareAudit.

Design principles:
- UUIDv7 for primary keys (time-sorted for better index locality)
- Per-item scan results keyed by (scan_id, file_id) so re-writing a batch
  overwrites instead of duplicating
- JSONB for list/summary payloads that are always read whole
- Timezone-aware timestamps on every backend
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator
from uuid_utils import uuid7

from shareaudit.db import Base


# =============================================================================
# CROSS-DATABASE TYPES
# =============================================================================

class JSONB(TypeDecorator):
    """
    Cross-database JSON type.

    Uses PostgreSQL JSONB when available, falls back to standard JSON for
    SQLite.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        return dialect.type_descriptor(JSON())


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime.

    SQLite drops tzinfo on the way back; values are re-tagged as UTC so
    comparisons against aware datetimes work on every backend.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def generate_uuid() -> PyUUID:
    """
    Generate a time-sorted UUID (v7) for use as primary key.

    Always returns a standard library uuid.UUID, not uuid_utils.UUID.
    """
    return PyUUID(str(uuid7()))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUM TYPES
# =============================================================================

PlanEnum = Enum(
    'free', 'basic', 'pro', 'enterprise',
    name='plan_type',
)

DelegationStatusEnum = Enum(
    'pending', 'verified', 'failed',
    name='delegation_status',
)

ScanStatusEnum = Enum(
    'running', 'completed', 'failed',
    name='scan_status',
)

ScanPhaseEnum = Enum(
    'counting', 'scanning', 'done',
    name='scan_phase',
)

RiskLevelEnum = Enum(
    'critical', 'high', 'medium', 'low',
    name='risk_level',
)

JobStatusEnum = Enum(
    'pending', 'running', 'completed', 'failed', 'cancelled',
    name='job_status',
)


# =============================================================================
# CORE MODELS
# =============================================================================


class Organization(Base):
    """A Workspace domain and its running scan statistics."""

    __tablename__ = "organizations"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    plan: Mapped[str] = mapped_column(PlanEnum, nullable=False, default='free')

    # Aggregate counters, incremented on each completed scan
    total_scans: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_files_scanned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_scan_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    # Domain-wide delegation
    delegation_client_email: Mapped[Optional[str]] = mapped_column(String(255))
    delegation_private_key: Mapped[Optional[str]] = mapped_column(Text)
    delegation_client_id: Mapped[Optional[str]] = mapped_column(String(64))
    delegation_admin_email: Mapped[Optional[str]] = mapped_column(String(255))
    delegation_status: Mapped[Optional[str]] = mapped_column(DelegationStatusEnum)
    delegation_error: Mapped[Optional[str]] = mapped_column(Text)
    delegation_verified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Scan(Base):
    """One pass over one account's storage."""

    __tablename__ = "scans"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    organization_id: Mapped[PyUUID] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    integrated_job_id: Mapped[Optional[PyUUID]] = mapped_column(
        ForeignKey("integrated_scan_jobs.id", ondelete="SET NULL")
    )

    # Initiating account
    user_id: Mapped[Optional[str]] = mapped_column(String(255))
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    user_name: Mapped[Optional[str]] = mapped_column(String(255))

    status: Mapped[str] = mapped_column(ScanStatusEnum, nullable=False, default='running')
    phase: Mapped[str] = mapped_column(ScanPhaseEnum, nullable=False, default='counting')

    total_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    risky_summary: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    average_score: Mapped[Optional[int]] = mapped_column(Integer)
    top_issues: Mapped[Optional[list]] = mapped_column(JSONB)

    # Drive changes token captured at start, for future incremental scans
    change_token: Mapped[Optional[str]] = mapped_column(String(255))

    error_message: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index('ix_scans_org_started', 'organization_id', 'started_at'),
        Index('ix_scans_org_status', 'organization_id', 'status'),
    )


class ScannedFile(Base):
    """Scored item within one scan."""

    __tablename__ = "scanned_files"

    scan_id: Mapped[PyUUID] = mapped_column(
        ForeignKey("scans.id", ondelete="CASCADE"), primary_key=True
    )
    file_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    organization_id: Mapped[PyUUID] = mapped_column(Uuid, nullable=False)

    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    size: Mapped[Optional[int]] = mapped_column(BigInteger)
    created_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    modified_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    web_view_link: Mapped[Optional[str]] = mapped_column(Text)

    owner_email: Mapped[Optional[str]] = mapped_column(String(255))
    owner_name: Mapped[Optional[str]] = mapped_column(String(255))
    is_internal_owner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    parent_folder_id: Mapped[Optional[str]] = mapped_column(String(255))
    parent_folder_name: Mapped[Optional[str]] = mapped_column(Text)

    permissions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    risk_level: Mapped[str] = mapped_column(RiskLevelEnum, nullable=False, default='low')
    issues: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    risk_factors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    recommendations: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    __table_args__ = (
        Index('ix_scanned_files_scan_score', 'scan_id', 'risk_score'),
        Index('ix_scanned_files_scan_folder', 'scan_id', 'parent_folder_id'),
    )


class FolderSummary(Base):
    """Per-folder aggregate of one scan, recomputable from scanned_files."""

    __tablename__ = "folder_summaries"

    scan_id: Mapped[PyUUID] = mapped_column(
        ForeignKey("scans.id", ondelete="CASCADE"), primary_key=True
    )
    folder_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")

    file_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    risky_summary: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    highest_risk_level: Mapped[str] = mapped_column(RiskLevelEnum, nullable=False, default='low')
    total_risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # {file_count, risky_summary, highest_risk_level, total_risk_score}
    internal_stats: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    external_stats: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class IntegratedScanJob(Base):
    """Sequential scan of every target account in an organization."""

    __tablename__ = "integrated_scan_jobs"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=generate_uuid)
    organization_id: Mapped[PyUUID] = mapped_column(ForeignKey("organizations.id"), nullable=False)
    initiated_by: Mapped[Optional[str]] = mapped_column(String(255))

    status: Mapped[str] = mapped_column(JobStatusEnum, nullable=False, default='pending')

    # [{email, name}], fixed at creation
    target_users: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    # Parallel to target_users
    user_results: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_processed_user_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    current_user_email: Mapped[Optional[str]] = mapped_column(String(255))

    total_files_scanned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_risky_summary: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_integrated_jobs_org_status', 'organization_id', 'status'),
    )
