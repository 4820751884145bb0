"""Pydantic models for manifest lists and image references.

This module defines the in-memory form of published manifest lists
(OCI image indexes / Docker manifest lists) and the parsing of
repository coordinates into registry host and path.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from multiarch.types import PlatformTarget

DEFAULT_REGISTRY = "docker.io"
DOCKER_HUB_API_HOST = "registry-1.docker.io"
ATTESTATION_ANNOTATION = "vnd.docker.reference.type"
ATTESTATION_VALUE = "attestation-manifest"


class ManifestMediaType(str, Enum):
    """Content types related to image manifests."""

    DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
    DOCKER_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
    OCI_MANIFEST_V1 = "application/vnd.oci.image.manifest.v1+json"
    OCI_INDEX_V1 = "application/vnd.oci.image.index.v1+json"


INDEX_MEDIA_TYPES = (
    ManifestMediaType.OCI_INDEX_V1.value,
    ManifestMediaType.DOCKER_LIST_V2.value,
)


class ManifestEntry(BaseModel):
    """One platform image inside a manifest list.

    Attributes:
        digest: Digest of the platform image manifest.
        platform: Platform the image runs on, when known.
        media_type: Media type of the platform manifest.
        annotations: Descriptor annotations.
    """

    model_config = ConfigDict(frozen=True)

    digest: str
    platform: PlatformTarget | None = None
    media_type: str | None = None
    annotations: dict[str, str] = Field(default_factory=dict)

    @property
    def is_attestation(self) -> bool:
        """Whether this entry is a build attestation rather than an image."""
        if self.annotations.get(ATTESTATION_ANNOTATION) == ATTESTATION_VALUE:
            return True
        return self.platform is not None and (
            self.platform.os == "unknown" and self.platform.architecture == "unknown"
        )


class ManifestList(BaseModel):
    """A published object mapping platforms to image digests.

    Attributes:
        reference: Reference it was read from or published under.
        media_type: Index media type.
        digest: Digest of the manifest list itself, when known.
        entries: Platform image entries.
    """

    reference: str
    media_type: str = ManifestMediaType.OCI_INDEX_V1.value
    digest: str | None = None
    entries: list[ManifestEntry] = Field(default_factory=list)

    @property
    def images(self) -> list[ManifestEntry]:
        """Platform image entries, excluding attestations."""
        return [e for e in self.entries if not e.is_attestation]

    @property
    def platforms(self) -> list[PlatformTarget]:
        """Platforms of the image entries that declare one."""
        return [e.platform for e in self.images if e.platform is not None]


class ImageReference(BaseModel):
    """A repository coordinate split into registry host and path.

    Attributes:
        registry: Registry host (e.g., 'docker.io', 'ghcr.io').
        path: Repository path (e.g., 'library/alpine').
    """

    model_config = ConfigDict(frozen=True)

    registry: str
    path: str

    @property
    def api_host(self) -> str:
        """Host serving the distribution API."""
        if self.registry == DEFAULT_REGISTRY:
            return DOCKER_HUB_API_HOST
        return self.registry


def parse_repository(repository: str) -> ImageReference:
    """Split a repository coordinate into registry and path.

    Follows the Docker convention: the first component is a registry host
    only if it contains '.' or ':' or is 'localhost'.

    Args:
        repository: Coordinate such as 'flashbots/rollup-boost'.

    Returns:
        ImageReference instance.

    Raises:
        ValueError: If the coordinate is empty or carries a tag/digest.
    """
    value = repository.strip()
    if not value:
        raise ValueError("Repository must not be empty")
    if "@" in value:
        raise ValueError(f"Repository must not include a digest: '{repository}'")

    first, _, rest = value.partition("/")
    if rest and ("." in first or ":" in first or first == "localhost"):
        registry, path = first, rest
    else:
        registry, path = DEFAULT_REGISTRY, value

    if ":" in path:
        raise ValueError(f"Repository must not include a tag: '{repository}'")
    if registry == DEFAULT_REGISTRY and "/" not in path:
        path = f"library/{path}"
    return ImageReference(registry=registry, path=path)


def split_reference(reference: str) -> tuple[str, str]:
    """Split 'repository:tag' or 'repository@digest'.

    Returns:
        Tuple of (repository, tag or digest).

    Raises:
        ValueError: If the reference has neither tag nor digest.
    """
    if "@" in reference:
        repository, _, ref = reference.partition("@")
        return repository, ref
    last_slash = reference.rfind("/")
    colon = reference.rfind(":")
    if colon > last_slash:
        return reference[:colon], reference[colon + 1 :]
    raise ValueError(f"Reference has no tag or digest: '{reference}'")


def _parse_platform(data: Any) -> PlatformTarget | None:
    if not isinstance(data, dict):
        return None
    os_name = data.get("os")
    arch = data.get("architecture")
    if not os_name or not arch:
        return None
    variant = data.get("variant")
    return PlatformTarget(
        os=str(os_name).lower(),
        architecture=str(arch).lower(),
        variant=str(variant).lower() if variant else None,
    )


def parse_manifest_list(
    reference: str,
    document: dict[str, Any],
    digest: str | None = None,
) -> ManifestList:
    """Parse a raw image index document.

    Args:
        reference: Reference the document was read from.
        document: Decoded JSON document.
        digest: Digest of the document, if known.

    Returns:
        ManifestList instance.

    Raises:
        ValueError: If the document is not an image index.
    """
    if not isinstance(document, dict):
        raise ValueError(f"{reference} did not return a JSON object")
    media_type = document.get("mediaType")
    manifests = document.get("manifests")
    if not isinstance(manifests, list):
        raise ValueError(f"{reference} is not a manifest list (mediaType={media_type})")

    entries = [
        ManifestEntry(
            digest=item["digest"],
            platform=_parse_platform(item.get("platform")),
            media_type=item.get("mediaType"),
            annotations=item.get("annotations") or {},
        )
        for item in manifests
        if isinstance(item, dict) and "digest" in item
    ]
    return ManifestList(
        reference=reference,
        media_type=media_type or ManifestMediaType.OCI_INDEX_V1.value,
        digest=digest,
        entries=entries,
    )


__all__ = [
    "DEFAULT_REGISTRY",
    "INDEX_MEDIA_TYPES",
    "ImageReference",
    "ManifestEntry",
    "ManifestList",
    "ManifestMediaType",
    "parse_manifest_list",
    "parse_repository",
    "split_reference",
]
