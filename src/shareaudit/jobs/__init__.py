"""
Scan execution.

- lifecycle: scan status/phase state machine and timeout rule
- folders: bounded-concurrency folder name lookup
- scan: the two-phase single-account pipeline
- summaries: per-folder aggregates
- integrated: resumable multi-account job orchestrator
"""
