"""
Unified exception hierarchy for ShareAudit.

All exception classes live here. No per-module exception files.

Hierarchy:
    ShareAuditError (base)
    ├── AdapterError
    │   └── DriveAPIError
    ├── DelegationError
    ├── ConfigurationError
    ├── PlanLimitError
    ├── ScanStateError
    ├── JobError
    ├── NotFoundError
    ├── ConflictError
    └── ValidationError

Usage:
    from shareaudit.exceptions import DriveAPIError, NotFoundError
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# ROOT
# =============================================================================


class ShareAuditError(Exception):
    """
    Base exception for all ShareAudit errors.

    Attributes:
        message: Human-readable error description
        context: Additional context about what was being done
        details: Technical details (scan ids, endpoints, etc.)
    """

    def __init__(
        self,
        message: str,
        context: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.context = context
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append(f"Context: {self.context}")
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            parts.append(f"Details: {detail_str}")
        return ". ".join(parts)


# =============================================================================
# ADAPTERS
# =============================================================================


class AdapterError(ShareAuditError):
    """Raised when communication with the storage provider fails."""

    def __init__(
        self,
        message: str,
        adapter_type: str | None = None,
        operation: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if adapter_type:
            details["adapter_type"] = adapter_type
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details, **kwargs)
        self.adapter_type = adapter_type
        self.operation = operation


class DriveAPIError(AdapterError):
    """Raised when a Drive or Admin Directory API request fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        endpoint: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, adapter_type="drive", details=details, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint


class DelegationError(ShareAuditError):
    """
    Raised when delegated credentials cannot act as the requested account.

    These are configuration-verification failures (invalid grant, delegation
    not authorized, invalid client, access denied), distinct from errors that
    happen while a scan is running.
    """

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        subject: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if reason:
            details["reason"] = reason
        if subject:
            details["subject"] = subject
        super().__init__(message, details=details, **kwargs)
        self.reason = reason
        self.subject = subject


# =============================================================================
# PRE-FLIGHT REJECTIONS
# =============================================================================


class ConfigurationError(ShareAuditError):
    """Raised when required configuration is missing or unverified."""


class PlanLimitError(ShareAuditError):
    """Raised when an organization's plan does not allow another scan."""

    def __init__(
        self,
        message: str,
        plan: str | None = None,
        limit: int | None = None,
        used: int | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if plan:
            details["plan"] = plan
        if limit is not None:
            details["limit"] = limit
        if used is not None:
            details["used"] = used
        super().__init__(message, details=details, **kwargs)
        self.plan = plan
        self.limit = limit
        self.used = used


# =============================================================================
# STATE & JOBS
# =============================================================================


class ScanStateError(ShareAuditError):
    """Raised on an illegal scan status or phase transition."""

    def __init__(
        self,
        message: str,
        scan_id: str | None = None,
        current: str | None = None,
        target: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if scan_id:
            details["scan_id"] = scan_id
        if current:
            details["current"] = current
        if target:
            details["target"] = target
        super().__init__(message, details=details, **kwargs)
        self.scan_id = scan_id
        self.current = current
        self.target = target


class JobError(ShareAuditError):
    """Raised when an integrated scan job cannot be processed."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if job_id:
            details["job_id"] = job_id
        super().__init__(message, details=details, **kwargs)
        self.job_id = job_id


# =============================================================================
# LOOKUPS & INPUT
# =============================================================================


class NotFoundError(ShareAuditError):
    """Raised when a requested record does not exist."""

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message, details=details, **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(ShareAuditError):
    """Raised when an operation conflicts with existing state."""


class ValidationError(ShareAuditError):
    """Raised when caller input is invalid."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message, details=details, **kwargs)
        self.field = field
