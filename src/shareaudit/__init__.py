"""
ShareAudit - sharing risk audit for Google Drive organizations.

Scans every file a Workspace account can see, scores how risky its sharing
is, and keeps per-scan results, folder roll-ups and organization-wide
integrated scans resumable across restarts.
"""

__version__ = "0.1.0"
