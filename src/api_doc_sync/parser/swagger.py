"""OpenAPI / Swagger document parser.

Parses OpenAPI 3.x and Swagger 2.0 documents into a ServiceDefinition.
"""

from collections.abc import Mapping
from typing import Any

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
    operation_id,
    primitive,
    sort_responses,
    unique_id,
)
from .detect import is_openapi_document, is_swagger2_document
from .schema import RefResolver, convert

LOCATIONS = {"path": "path", "query": "query", "header": "header", "cookie": "header"}


def parse_openapi_document(doc: Any) -> ServiceDefinition:
    """Parse an OpenAPI 3.x document."""
    if not is_openapi_document(doc):
        raise ParseError("Not an OpenAPI 3.x document")

    refs = RefResolver(doc)
    servers = [
        s["url"] for s in _list(doc.get("servers")) if isinstance(s, Mapping) and isinstance(s.get("url"), str)
    ]
    components = _mapping(doc.get("components"))
    types = _convert_types(_mapping(components.get("schemas")), refs)

    endpoints = []
    used: set[str] = set()
    for path, method, path_item, operation in _iter_operations(doc):
        params = _normalize_parameters(_merged_parameters(path_item, operation), refs, swagger2=False)

        body = None
        request_body = refs.follow(operation.get("requestBody"))
        if isinstance(request_body, Mapping):
            content_type, schema = _pick_first_content(request_body.get("content"), refs)
            body = RequestBodyDefinition(
                required=request_body.get("required") is True,
                content_type=content_type,
                schema=schema,
            )

        responses = []
        for status, response in _mapping(operation.get("responses")).items():
            response = refs.follow(response)
            if not isinstance(response, Mapping):
                continue
            content_type, schema = _pick_first_content(response.get("content"), refs)
            responses.append(
                ResponseDefinition(
                    status=_status(status),
                    description=_text(response.get("description")),
                    content_type=content_type,
                    schema=schema,
                )
            )

        endpoints.append(_endpoint(path, method, operation, params, body, responses, used))

    return _service(doc, "openapi", servers, types, endpoints)


def parse_swagger2_document(doc: Any) -> ServiceDefinition:
    """Parse a Swagger 2.0 document."""
    if not is_swagger2_document(doc):
        raise ParseError("Not a Swagger 2.0 document")

    refs = RefResolver(doc)
    servers = []
    if doc.get("host"):
        schemes = _list(doc.get("schemes"))
        scheme = schemes[0] if schemes else "https"
        servers.append(f"{scheme}://{doc['host']}{doc.get('basePath') or ''}")
    types = _convert_types(_mapping(doc.get("definitions")), refs)
    consumes = _list(doc.get("consumes"))
    produces = _list(doc.get("produces"))

    endpoints = []
    used: set[str] = set()
    for path, method, path_item, operation in _iter_operations(doc):
        raw_params = [refs.follow(p) for p in _merged_parameters(path_item, operation)]
        op_consumes = _list(operation.get("consumes")) or consumes
        op_produces = _list(operation.get("produces")) or produces

        body = None
        form_fields = []
        for prm in raw_params:
            if not isinstance(prm, Mapping):
                continue
            if prm.get("in") == "body":
                body = RequestBodyDefinition(
                    required=prm.get("required") is True,
                    content_type=op_consumes[0] if op_consumes else "application/json",
                    schema=convert(prm.get("schema"), refs),
                )
            elif prm.get("in") == "formData" and isinstance(prm.get("name"), str):
                form_fields.append(prm)
        if body is None and form_fields:
            body = _form_body(form_fields, op_consumes, refs)

        params = _normalize_parameters(raw_params, refs, swagger2=True)

        responses = []
        for status, response in _mapping(operation.get("responses")).items():
            response = refs.follow(response)
            if not isinstance(response, Mapping):
                continue
            schema = convert(response.get("schema"), refs)
            responses.append(
                ResponseDefinition(
                    status=_status(status),
                    description=_text(response.get("description")),
                    content_type=(op_produces[0] if op_produces else "application/json") if schema else None,
                    schema=schema,
                )
            )

        endpoints.append(_endpoint(path, method, operation, params, body, responses, used))

    return _service(doc, "swagger", servers, types, endpoints)


def parse_swagger_document(doc: Any) -> ServiceDefinition:
    """Parse either flavour, dispatching on the document shape."""
    if is_openapi_document(doc):
        return parse_openapi_document(doc)
    if is_swagger2_document(doc):
        return parse_swagger2_document(doc)
    raise ParseError("Invalid Swagger or OpenAPI document")


def _iter_operations(doc: Mapping):
    for path, path_item in doc["paths"].items():
        if not isinstance(path_item, Mapping):
            continue
        for method in HTTP_METHODS:
            operation = path_item.get(method.lower())
            if isinstance(operation, Mapping):
                yield str(path), method, path_item, operation


def _merged_parameters(path_item: Mapping, operation: Mapping) -> list:
    return [*_list(path_item.get("parameters")), *_list(operation.get("parameters"))]


def _normalize_parameters(params: list, refs: RefResolver, swagger2: bool) -> EndpointParameters:
    grouped = EndpointParameters()
    for prm in params:
        prm = refs.follow(prm)
        if not isinstance(prm, Mapping) or not isinstance(prm.get("name"), str):
            continue
        location = LOCATIONS.get(prm.get("in"))
        if location is None:
            continue
        if swagger2:
            schema = convert(prm.get("schema") or prm, refs)
        else:
            schema = convert(prm.get("schema"), refs)
        getattr(grouped, location).append(
            ParameterDefinition(
                name=prm["name"],
                location=location,
                required=prm.get("required") is True,
                description=_text(prm.get("description")),
                schema=schema,
                style=_text(prm.get("style")),
            )
        )
    return grouped


def _pick_first_content(content: Any, refs: RefResolver) -> tuple[str | None, Any]:
    if not isinstance(content, Mapping) or not content:
        return None, None
    content_type, media = next(iter(content.items()))
    schema = convert(media.get("schema"), refs) if isinstance(media, Mapping) else None
    return str(content_type), schema


def _form_body(fields: list[Mapping], consumes: list, refs: RefResolver) -> RequestBodyDefinition:
    multipart = any("multipart" in str(c) for c in consumes) or any(f.get("type") == "file" for f in fields)
    properties = {}
    for field in fields:
        if field.get("type") == "file":
            properties[field["name"]] = primitive("string", format="binary", description=_text(field.get("description")))
        else:
            properties[field["name"]] = convert(field, refs)
    return RequestBodyDefinition(
        required=any(f.get("required") is True for f in fields),
        content_type="multipart/form-data" if multipart else "application/x-www-form-urlencoded",
        schema=ObjectSchema(
            properties=properties,
            required=[f["name"] for f in fields if f.get("required") is True],
        ),
    )


def _endpoint(path, method, operation, params, body, responses, used: set[str]) -> EndpointDefinition:
    endpoint_id = unique_id(operation_id(method, path, operation.get("operationId")), used)
    tags = [t for t in _list(operation.get("tags")) if isinstance(t, str)]
    return EndpointDefinition(
        id=endpoint_id,
        name=_text(operation.get("summary")) or endpoint_id,
        description=_text(operation.get("description")),
        path=path,
        method=method,
        tags=tags,
        parameters=params,
        body=body,
        responses=sort_responses(responses),
    )


def _service(doc: Mapping, kind: str, servers: list[str], types: dict, endpoints: list) -> ServiceDefinition:
    info = _mapping(doc.get("info"))
    version = info.get("version")
    return ServiceDefinition(
        title=_text(info.get("title")) or "API",
        version=None if version is None else str(version),
        description=_text(info.get("description")),
        servers=servers,
        types=types,
        endpoints=endpoints,
        source=ServiceSource(kind=kind, raw=doc),
    )


def _convert_types(schemas: Mapping, refs: RefResolver) -> dict:
    types = {}
    for name, schema in schemas.items():
        converted = convert(schema, refs)
        if converted is not None:
            types[str(name)] = converted
    return types


def _status(code: Any) -> int | str | None:
    if str(code) == "default":
        return "default"
    try:
        return int(code)
    except (TypeError, ValueError):
        # 2XX style ranges
        return None


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None
