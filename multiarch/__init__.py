"""multiarch-publish - Multi-platform container image build coordinator.

This package fans out one image build per platform, collects the
content-addressed digests, and publishes them as a single manifest list
under every resolved tag.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
