"""Configuration endpoints."""

import json
from typing import Any

from fastapi import APIRouter

from multiarch.config import get_settings, print_settings_json

router = APIRouter()


@router.get("")
def get_config() -> dict[str, Any]:
    """Get effective configuration.

    Registry credentials are masked.
    """
    data: dict[str, Any] = json.loads(print_settings_json(get_settings()))
    return data
