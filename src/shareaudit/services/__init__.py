"""
Persistence services.

Each service wraps one table family and opens a committed session per
operation.
"""

from shareaudit.services.base import BaseService
from shareaudit.services.folder_service import FolderSummaryService
from shareaudit.services.integrated_job_service import IntegratedJobService, JobStatus
from shareaudit.services.organization_service import OrganizationService
from shareaudit.services.scan_service import ScanService
from shareaudit.services.scanned_file_service import ScannedFileService

__all__ = [
    "BaseService",
    "FolderSummaryService",
    "IntegratedJobService",
    "JobStatus",
    "OrganizationService",
    "ScanService",
    "ScannedFileService",
]
