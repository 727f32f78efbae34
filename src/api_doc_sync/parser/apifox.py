"""Apifox project export parser.

Apifox can export plain OpenAPI, which is delegated to the Swagger parser;
native snapshots list their operations under ``apis`` or ``apiList``.
"""

from collections.abc import Mapping
from typing import Any

from ..errors import ParseError
from .base import (
    HTTP_METHODS,
    EndpointDefinition,
    EndpointParameters,
    ParameterDefinition,
    RequestBodyDefinition,
    ResponseDefinition,
    ServiceDefinition,
    ServiceSource,
    primitive,
    sanitize_id,
    sort_responses,
    unique_id,
    unknown_schema,
)
from .detect import is_apifox_document, is_swagger_like_document
from .swagger import parse_swagger_document

_LOCATIONS = ("path", "query", "header")


def parse_apifox_export(payload: Any, source_name: str | None = None) -> ServiceDefinition:
    """Parse an Apifox export into a ServiceDefinition."""
    if not is_apifox_document(payload):
        label = source_name or "apifox"
        raise ParseError(f'Payload for source "{label}" is not a valid Apifox export.', source=label)
    if is_swagger_like_document(payload):
        return parse_swagger_document(payload)

    project = payload.get("apifoxProject")
    project = project if isinstance(project, Mapping) else {}
    operations = payload.get("apis") or payload.get("apiList") or []

    endpoints = []
    used: set[str] = set()
    for item in operations if isinstance(operations, list) else []:
        if not isinstance(item, Mapping):
            continue
        method = str(item.get("method") or "GET").upper()
        if method not in HTTP_METHODS:
            continue
        path = item.get("path") if isinstance(item.get("path"), str) and item.get("path") else "/"
        name = _text(item.get("name"))
        raw_id = _text(item.get("operationId")) or name or f"{method}_{path}"
        endpoint_id = unique_id(sanitize_id(raw_id), used)

        endpoints.append(
            EndpointDefinition(
                id=endpoint_id,
                name=name or endpoint_id,
                description=_text(item.get("description")),
                path=path,
                method=method,
                tags=[t for t in item.get("tags") or [] if isinstance(t, str)],
                parameters=_parameters(item.get("parameters")),
                body=_body(item.get("requestBody")),
                responses=_responses(item.get("responses")),
            )
        )

    title = _text(payload.get("projectName")) or _text(payload.get("name")) or _text(project.get("name"))
    version = payload.get("version")
    return ServiceDefinition(
        title=title or "Apifox Project",
        version=None if version is None else str(version),
        description=_text(payload.get("description")),
        endpoints=endpoints,
        source=ServiceSource(kind="apifox", raw=payload),
    )


def _parameters(raw: Any) -> EndpointParameters:
    """Accepts a flat list with ``in`` fields or a mapping keyed by location."""
    if isinstance(raw, Mapping):
        entries = [
            {**p, "in": location}
            for location, group in raw.items()
            if isinstance(group, list)
            for p in group
            if isinstance(p, Mapping)
        ]
    elif isinstance(raw, list):
        entries = [p for p in raw if isinstance(p, Mapping)]
    else:
        entries = []

    grouped = EndpointParameters()
    for prm in entries:
        location = prm.get("in")
        if location not in _LOCATIONS or not _text(prm.get("name")):
            continue
        getattr(grouped, location).append(
            ParameterDefinition(
                name=prm["name"],
                location=location,
                required=bool(prm.get("required")),
                description=_text(prm.get("description")),
                schema=primitive("string"),
            )
        )
    return grouped


def _body(raw: Any) -> RequestBodyDefinition | None:
    if not isinstance(raw, Mapping) or not raw:
        return None
    return RequestBodyDefinition(
        required=bool(raw.get("required")),
        content_type=_text(raw.get("contentType")) or _text(raw.get("type")),
        schema=unknown_schema(),
    )


def _responses(raw: Any) -> list[ResponseDefinition]:
    if not isinstance(raw, list):
        return []
    responses = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        status = item.get("status", item.get("code"))
        try:
            status = int(status)
        except (TypeError, ValueError):
            status = "default" if status == "default" else None
        responses.append(
            ResponseDefinition(
                status=status,
                description=_text(item.get("description")) or _text(item.get("name")),
                content_type=_text(item.get("contentType")),
                schema=unknown_schema(),
            )
        )
    return sort_responses(responses)


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None
