"""Manifest list publishing and read-back verification."""

from multiarch.publish.merger import merge_and_publish, plan_manifest_list
from multiarch.publish.verify import verify_publication

__all__ = ["merge_and_publish", "plan_manifest_list", "verify_publication"]
