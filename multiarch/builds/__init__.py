"""Per-platform build orchestration.

This module handles:
- Running the Image Builder for one platform
- Fanning out builds across platforms behind a single barrier
- Collecting content digests into the run-scoped store
"""

from multiarch.builds.digests import DigestStore
from multiarch.builds.dispatcher import BuildOutcome, DispatchResult, dispatch_builds

__all__ = ["BuildOutcome", "DigestStore", "DispatchResult", "dispatch_builds"]
