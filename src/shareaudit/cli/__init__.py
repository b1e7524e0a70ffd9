"""
ShareAudit CLI module.

Provides the command groups and shared CLI helpers.
"""
