"""Postman Collection v2.x parser.

Parses Postman exported collections into a ServiceDefinition. Request and
response bodies only carry examples, so their schemas are inferred.
"""

import json
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl

from ..errors import ParseError
from .base import (
    HTTP_METHODS,
    EndpointDefinition,
    EndpointParameters,
    ObjectSchema,
    ParameterDefinition,
    RequestBodyDefinition,
    ResponseDefinition,
    ServiceDefinition,
    ServiceSource,
    primitive,
    sanitize_id,
    unique_id,
)
from .detect import is_postman_collection
from .schema import infer_from_example

_HOST_PREFIX = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9+.-]*://[^/?#]*|\{\{[^}]*\}\}[^/?#]*)")
_PATH_TOKENS = (re.compile(r"\{\{(.*?)\}\}"), re.compile(r":([A-Za-z_]\w*)"), re.compile(r"\{(.*?)\}"))


def parse_postman_collection(collection: Any, source_name: str | None = None) -> ServiceDefinition:
    """Parse a Postman collection into a ServiceDefinition."""
    if not is_postman_collection(collection):
        label = source_name or "postman"
        raise ParseError(f'Payload for source "{label}" is not a Postman collection.', source=label)

    endpoints: list[EndpointDefinition] = []
    _parse_items(collection.get("item") or [], [], endpoints, set())

    info = collection["info"]
    version = info.get("version")
    return ServiceDefinition(
        title=_text(info.get("name")) or "Postman Collection",
        version=str(version) if isinstance(version, (str, int, float)) else None,
        description=_description(info.get("description")),
        endpoints=endpoints,
        source=ServiceSource(kind="postman", raw=collection),
    )


def _parse_items(items: list, tags: list[str], endpoints: list[EndpointDefinition], used: set[str]) -> None:
    """Recursively parse items (supports folders)."""
    for item in items:
        if not isinstance(item, Mapping):
            continue
        if isinstance(item.get("item"), list):
            folder = [*tags, item["name"]] if _text(item.get("name")) else tags
            _parse_items(item["item"], folder, endpoints, used)
        elif isinstance(item.get("request"), (Mapping, str)):
            endpoint = _parse_request(item, tags, used)
            if endpoint is not None:
                endpoints.append(endpoint)


def _parse_request(item: Mapping, tags: list[str], used: set[str]) -> EndpointDefinition | None:
    request = item["request"]
    if isinstance(request, str):
        # shorthand form: the request is just its URL
        request = {"url": request, "method": "GET"}
    method = str(request.get("method") or "GET").upper()
    if method not in HTTP_METHODS:
        return None
    url = request.get("url")
    path = _to_path(url)

    name = _text(item.get("name"))
    endpoint_id = unique_id(sanitize_id(name or f"{method}_{path}"), used)

    return EndpointDefinition(
        id=endpoint_id,
        name=name or endpoint_id,
        description=_description(request.get("description")),
        path=path,
        method=method,
        tags=list(tags),
        parameters=EndpointParameters(
            path=_parse_path_params(url),
            query=_parse_query_params(url),
            header=_parse_headers(request.get("header")),
        ),
        body=_parse_body(request.get("body")),
        responses=_parse_responses(item.get("response")),
    )


def _to_path(url: Any) -> str:
    if isinstance(url, Mapping):
        segments = url.get("path")
        if isinstance(segments, list):
            path = "/" + "/".join(_segment(s) for s in segments)
        elif isinstance(segments, str):
            path = segments if segments.startswith("/") else "/" + segments
        else:
            return _to_path(url.get("raw"))
    elif isinstance(url, str):
        path = _strip_host(url).split("?", 1)[0].split("#", 1)[0]
        path = path if path.startswith("/") else "/" + path
    else:
        return "/"
    # :id and {{id}} become {id} so the transport can substitute them
    path = re.sub(r"(?<=/):([A-Za-z_]\w*)", r"{\1}", path)
    return re.sub(r"\{\{(\w+)\}\}", r"{\1}", path)


def _strip_host(raw: str) -> str:
    return _HOST_PREFIX.sub("", raw.strip(), count=1)


def _segment(segment: Any) -> str:
    if isinstance(segment, Mapping):
        return str(segment.get("value") or "")
    return str(segment)


def _parse_path_params(url: Any) -> list[ParameterDefinition]:
    raw = url if isinstance(url, str) else url.get("raw") if isinstance(url, Mapping) else None
    if not isinstance(raw, str):
        return []
    target = _strip_host(raw).split("?", 1)[0]
    names: list[str] = []
    for pattern in _PATH_TOKENS:
        for match in pattern.finditer(target):
            name = re.sub(r"[:{}]", "", match.group(0))
            if name and name not in names:
                names.append(name)
    return [ParameterDefinition(name=n, location="path", required=True, schema=primitive("string")) for n in names]


def _parse_query_params(url: Any) -> list[ParameterDefinition]:
    if isinstance(url, Mapping):
        entries = [q for q in url.get("query") or [] if isinstance(q, Mapping) and q.get("key")]
    elif isinstance(url, str) and "?" in url:
        entries = [{"key": k, "value": v} for k, v in parse_qsl(url.split("?", 1)[1], keep_blank_values=True)]
    else:
        entries = []
    return [
        ParameterDefinition(
            name=str(q["key"]),
            location="query",
            required=False,
            description=_description(q.get("description")),
            schema=primitive("string", example=q.get("value")),
        )
        for q in entries
    ]


def _parse_headers(headers: Any) -> list[ParameterDefinition]:
    if not isinstance(headers, list):
        return []
    return [
        ParameterDefinition(
            name=str(h["key"]),
            location="header",
            required=False,
            description=_description(h.get("description")),
            schema=primitive("string"),
        )
        for h in headers
        if isinstance(h, Mapping) and h.get("key")
    ]


def _parse_body(body: Any) -> RequestBodyDefinition | None:
    if not isinstance(body, Mapping):
        return None
    mode = body.get("mode")
    if mode == "raw":
        raw_text = body.get("raw") or ""
        options = body.get("options")
        raw_options = options.get("raw") if isinstance(options, Mapping) else None
        language = raw_options.get("language") if isinstance(raw_options, Mapping) else None
        try:
            schema = infer_from_example(json.loads(raw_text))
            is_json = True
        except (json.JSONDecodeError, TypeError):
            schema = primitive("string", example=raw_text)
            is_json = False
        content_type = "application/json" if language == "json" or (is_json and language is None) else "text/plain"
        return RequestBodyDefinition(required=True, content_type=content_type, schema=schema)
    if mode == "urlencoded":
        return RequestBodyDefinition(
            required=True, content_type="application/x-www-form-urlencoded", schema=ObjectSchema()
        )
    if mode == "formdata":
        return RequestBodyDefinition(required=True, content_type="multipart/form-data", schema=ObjectSchema())
    return None


def _parse_responses(responses: Any) -> list[ResponseDefinition]:
    if not isinstance(responses, list) or not responses or not isinstance(responses[0], Mapping):
        return []
    response = responses[0]
    try:
        schema = infer_from_example(json.loads(response.get("body")))
    except (json.JSONDecodeError, TypeError):
        schema = primitive("string")
    try:
        status = int(response.get("code")) or 200
    except (TypeError, ValueError):
        status = 200
    content_type = None
    for header in response.get("header") or []:
        if isinstance(header, Mapping) and str(header.get("key", "")).lower() == "content-type":
            content_type = header.get("value")
            break
    return [
        ResponseDefinition(
            status=status,
            description=_text(response.get("name")),
            content_type=content_type,
            schema=schema,
        )
    ]


def _description(value: Any) -> str | None:
    if isinstance(value, Mapping):
        value = value.get("content")
    return _text(value)


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None
