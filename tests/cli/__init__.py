"""
CLI command tests for shareaudit.

Commands run through click's CliRunner against a temporary SQLite database.
"""
