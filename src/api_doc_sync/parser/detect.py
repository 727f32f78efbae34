"""Auto-detect API documentation format from a parsed payload or a file."""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

APIFOX_KEYS = ("apifoxProject", "apis", "apiList")


def is_openapi_document(payload: Any) -> bool:
    return (
        isinstance(payload, Mapping)
        and isinstance(payload.get("openapi"), str)
        and isinstance(payload.get("paths"), Mapping)
    )


def is_swagger2_document(payload: Any) -> bool:
    return (
        isinstance(payload, Mapping)
        and str(payload.get("swagger")) == "2.0"
        and isinstance(payload.get("paths"), Mapping)
    )


def is_swagger_like_document(payload: Any) -> bool:
    return is_openapi_document(payload) or is_swagger2_document(payload)


def is_postman_collection(payload: Any) -> bool:
    if not isinstance(payload, Mapping):
        return False
    info = payload.get("info")
    if not isinstance(info, Mapping):
        return False
    schema = info.get("schema")
    if isinstance(schema, str) and "postman" in schema.lower():
        return True
    # exports without a schema URL still carry the collection id
    return "_postman_id" in info and isinstance(payload.get("item"), list)


def is_apifox_document(payload: Any) -> bool:
    if not isinstance(payload, Mapping):
        return False
    if is_swagger_like_document(payload):
        return True
    return any(key in payload for key in APIFOX_KEYS)


def detect_format(payload: Any) -> str | None:
    """Detect the format of a parsed API document.

    Returns: 'openapi', 'swagger', 'postman', 'apifox', or None.
    """
    if is_openapi_document(payload):
        return "openapi"
    if is_swagger2_document(payload):
        return "swagger"
    if is_postman_collection(payload):
        return "postman"
    if is_apifox_document(payload):
        return "apifox"
    return None


def detect_file_format(file_path: Path) -> str | None:
    """Detect the format of a JSON or YAML file on disk."""
    text = file_path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        return None
    return detect_format(data)
