"""Collapse several fetched documents into a single payload.

Multi-endpoint and discovery sources produce one document per request;
the configured strategy decides how they combine.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any, Literal, Union

from .errors import MergeError

logger = logging.getLogger(__name__)

MergeStrategyName = Literal["auto", "first", "json-array", "swagger", "openapi"]
MergeStrategy = Union[MergeStrategyName, Callable[[list[Any]], Any]]

_SECTION_KEYS = ("components", "definitions")


def merge_documents(documents: list[Any], strategy: MergeStrategy | None = "auto") -> Any:
    """Merge ``documents`` according to ``strategy``.

    Raises:
        MergeError: When there is nothing to merge, the strategy is unknown, or
            an OpenAPI merge is requested for documents without ``paths``.
    """
    if not documents:
        raise MergeError("No documents fetched to merge.")
    if callable(strategy):
        return strategy(list(documents))

    applied = strategy if strategy and strategy != "auto" else detect_merge_strategy(documents)
    if applied == "first":
        return documents[0]
    if applied == "json-array":
        return list(documents)
    if applied in ("swagger", "openapi"):
        if not all(_has_paths(doc) for doc in documents):
            raise MergeError(
                f"Merge strategy {applied} requested but not all documents appear to be OpenAPI/Swagger."
            )
        return merge_swagger_documents(documents)
    raise MergeError(f"Unknown merge strategy {strategy!r}.")


def detect_merge_strategy(documents: list[Any]) -> str:
    if len(documents) == 1:
        return "first"
    if all(_has_paths(doc) for doc in documents):
        return "swagger"
    return "json-array"


def merge_swagger_documents(documents: list[Mapping]) -> dict:
    """Merge OpenAPI/Swagger documents; later documents win on conflicts."""
    first, *rest = documents
    merged = dict(first)
    merged["paths"] = {key: _copy(value) for key, value in _paths(first).items()}
    for section in _SECTION_KEYS:
        if isinstance(first.get(section), Mapping):
            merged[section] = dict(first[section])

    tags: dict[str, dict] = {}
    servers: dict[str, dict] = {}
    _collect(tags, first.get("tags"), "name")
    _collect(servers, first.get("servers"), "url")

    for index, doc in enumerate(rest, start=1):
        for path, item in _paths(doc).items():
            current = merged["paths"].get(path)
            if isinstance(current, Mapping) and isinstance(item, Mapping):
                for method in sorted(item.keys() & current.keys()):
                    logger.warning("Document %d overrides %s %s from an earlier document", index, method.upper(), path)
                merged["paths"][path] = {**current, **item}
            else:
                merged["paths"][path] = _copy(item)

        for section in _SECTION_KEYS:
            if isinstance(doc.get(section), Mapping):
                target = merged.get(section)
                if not isinstance(target, dict):
                    target = merged[section] = {}
                _merge_section(target, doc[section])

        _collect(tags, doc.get("tags"), "name")
        _collect(servers, doc.get("servers"), "url")

    if tags:
        merged["tags"] = list(tags.values())
    if servers:
        merged["servers"] = list(servers.values())
    return merged


def _merge_section(target: dict, source: Mapping) -> None:
    for key, value in source.items():
        current = target.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            target[key] = {**current, **value}
        else:
            target[key] = value


def _collect(target: dict[str, dict], entries: Any, key: str) -> None:
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, Mapping) or not isinstance(entry.get(key), str):
            continue
        existing = target.get(entry[key])
        target[entry[key]] = {**existing, **entry} if existing else dict(entry)


def _copy(value: Any) -> Any:
    return dict(value) if isinstance(value, Mapping) else value


def _has_paths(doc: Any) -> bool:
    return isinstance(doc, Mapping) and "paths" in doc


def _paths(doc: Mapping) -> Mapping:
    paths = doc.get("paths")
    return paths if isinstance(paths, Mapping) else {}
