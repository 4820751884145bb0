"""Run coordination module.

This module handles:
- The per-run state machine
- Serializing runs per repository
- The run ledger: runs, build jobs, and tag assignments
"""

from multiarch.runs.models import BuildJobRecord, RunRecord, TagRecord

__all__ = ["BuildJobRecord", "RunRecord", "TagRecord"]
