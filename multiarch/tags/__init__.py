"""Tag resolution for published manifest lists."""

from multiarch.tags.resolver import (
    ResolvedTags,
    TagPolicy,
    TriggerContext,
    resolve_tags,
)

__all__ = ["ResolvedTags", "TagPolicy", "TriggerContext", "resolve_tags"]
