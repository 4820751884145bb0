"""Registry access.

This module handles:
- Publishing manifest lists and tags through the Docker CLI
- Reading manifest lists back (Docker CLI or distribution API)
- Manifest list and repository coordinate models
"""

from multiarch.registry.client import (
    BuildxRegistryClient,
    ManifestReader,
    RegistryClient,
)
from multiarch.registry.models import ManifestEntry, ManifestList

__all__ = [
    "BuildxRegistryClient",
    "ManifestEntry",
    "ManifestList",
    "ManifestReader",
    "RegistryClient",
]
