"""Convert JSON-Schema style type descriptors into the unified Schema algebra.

Used by every adapter: OpenAPI/Swagger schema objects go through ``convert``,
Postman example payloads go through ``infer_from_example``.
"""

from collections.abc import Mapping
from typing import Any

from .base import (
    ArraySchema,
    EnumSchema,
    ObjectSchema,
    OneOfSchema,
    PrimitiveSchema,
    Schema,
    unknown_schema,
)

PRIMITIVE_TYPES = ("string", "number", "integer", "boolean", "null")
_SCALARS = (str, int, float, bool, type(None))


class RefResolver:
    """Resolves local ``#/...`` JSON pointers against a document root."""

    def __init__(self, document: Any):
        self.document = document

    def lookup(self, ref: str) -> Any | None:
        if not isinstance(ref, str) or not ref.startswith("#"):
            return None
        node = self.document
        for token in ref[1:].split("/"):
            if not token:
                continue
            token = token.replace("~1", "/").replace("~0", "~")
            if isinstance(node, Mapping) and token in node:
                node = node[token]
            elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
                node = node[int(token)]
            else:
                return None
        return node

    def follow(self, node: Any, limit: int = 16) -> Any:
        """Dereference a ``$ref`` chain (parameters, request bodies, responses)."""
        for _ in range(limit):
            if not isinstance(node, Mapping) or "$ref" not in node:
                return node
            node = self.lookup(node["$ref"])
        return None


def convert(node: Any, refs: RefResolver | None = None) -> Schema | None:
    """Convert a schema object; None only when ``node`` is not a mapping."""
    return _convert(node, refs, ())


def _convert(node: Any, refs: RefResolver | None, seen: tuple[str, ...]) -> Schema | None:
    if not isinstance(node, Mapping):
        return None
    try:
        return _convert_node(node, refs, seen)
    except (ValueError, TypeError):
        # pydantic ValidationError is a ValueError: malformed input degrades
        return unknown_schema(description=_text(node.get("description")))


def _convert_node(node: Mapping, refs: RefResolver | None, seen: tuple[str, ...]) -> Schema:
    ref = node.get("$ref")
    if isinstance(ref, str):
        return _convert_ref(node, ref, refs, seen)

    common = _common(node)
    type_name, nullable = _pick_type(node.get("type"))
    if nullable:
        common["nullable"] = True

    if type_name is None:
        variants = node.get("oneOf") or node.get("anyOf")
        if isinstance(variants, list):
            converted = [s for s in (_convert(v, refs, seen) for v in variants) if s is not None]
            if converted:
                return OneOfSchema(variants=converted, **common)
            return unknown_schema(**common)
        if isinstance(node.get("enum"), list):
            return _enum(node["enum"], common)
        if "const" in node:
            return _enum([node["const"]], common)
        if isinstance(node.get("allOf"), list):
            return _all_of(node["allOf"], refs, seen, common)
        if isinstance(node.get("properties"), Mapping):
            type_name = "object"
        else:
            return unknown_schema(**common)

    if type_name == "object":
        return _object(node, refs, seen, common)
    if type_name == "array":
        return _array(node, refs, seen, common)
    if type_name in PRIMITIVE_TYPES:
        fmt = node.get("format")
        return PrimitiveSchema(kind=type_name, format=fmt if isinstance(fmt, str) else None, **common)
    return unknown_schema(**common)


def _convert_ref(node: Mapping, ref: str, refs: RefResolver | None, seen: tuple[str, ...]) -> Schema:
    if refs is None or ref in seen:
        return unknown_schema(title=ref)
    target = refs.lookup(ref)
    if not isinstance(target, Mapping):
        return unknown_schema(title=ref)
    resolved = _convert(target, refs, (*seen, ref))
    description = _text(node.get("description"))
    if description:
        resolved = resolved.model_copy(update={"description": description})
    return resolved


def _object(node: Mapping, refs, seen, common: dict) -> ObjectSchema:
    raw_properties = node.get("properties")
    properties = {}
    if isinstance(raw_properties, Mapping):
        for key, value in raw_properties.items():
            converted = _convert(value, refs, seen)
            properties[str(key)] = converted if converted is not None else unknown_schema()

    required = node.get("required")
    required = [r for r in required if isinstance(r, str)] if isinstance(required, list) else []

    additional = node.get("additionalProperties")
    if not isinstance(additional, bool):
        additional = _convert(additional, refs, seen)

    return ObjectSchema(
        properties=properties,
        required=required,
        additional_properties=additional,
        **common,
    )


def _array(node: Mapping, refs, seen, common: dict) -> ArraySchema:
    items = node.get("items")
    if isinstance(items, list):
        variants = [s for s in (_convert(i, refs, seen) for i in items) if s is not None]
        element = OneOfSchema(variants=variants) if variants else None
    else:
        element = _convert(items, refs, seen)

    min_items = _count(node.get("minItems"))
    max_items = _count(node.get("maxItems"))
    if min_items is not None and max_items is not None and min_items > max_items:
        max_items = None
    return ArraySchema(element=element, min_items=min_items, max_items=max_items, **common)


def _all_of(members: list, refs, seen, common: dict) -> Schema:
    converted = [s for s in (_convert(m, refs, seen) for m in members) if s is not None]
    if len(converted) == 1:
        return converted[0].model_copy(update={k: v for k, v in common.items() if v})
    if converted and all(isinstance(s, ObjectSchema) for s in converted):
        properties: dict = {}
        required: list[str] = []
        for part in converted:
            properties.update(part.properties)
            required.extend(r for r in part.required if r not in required)
        return ObjectSchema(properties=properties, required=required, **common)
    return unknown_schema(**common)


def _enum(values: list, common: dict) -> Schema:
    scalars = [v for v in values if isinstance(v, _SCALARS)]
    if not scalars:
        return unknown_schema(**common)
    return EnumSchema(values=scalars, **common)


def _pick_type(raw: Any) -> tuple[str | None, bool]:
    """Return (type name, nullable-from-type-array)."""
    if isinstance(raw, str):
        return raw, False
    if isinstance(raw, list):
        names = [t for t in raw if isinstance(t, str)]
        concrete = [t for t in names if t != "null"]
        if concrete:
            return concrete[0], "null" in names
        return ("null", False) if names else (None, False)
    return None, False


def _common(node: Mapping) -> dict:
    example = node.get("example")
    if example is None and isinstance(node.get("examples"), list) and node["examples"]:
        example = node["examples"][0]
    return {
        "description": _text(node.get("description")),
        "title": _text(node.get("title")),
        "nullable": node.get("nullable") is True,
        "example": example,
    }


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _count(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def infer_from_example(value: Any) -> Schema:
    """Infer a schema from a concrete example value (Postman bodies and responses)."""
    if value is None:
        return PrimitiveSchema(kind="null")
    if isinstance(value, bool):
        return PrimitiveSchema(kind="boolean", example=value)
    if isinstance(value, int):
        return PrimitiveSchema(kind="integer", example=value)
    if isinstance(value, float):
        return PrimitiveSchema(kind="number", example=value)
    if isinstance(value, str):
        return PrimitiveSchema(kind="string", example=value)
    if isinstance(value, list):
        element = infer_from_example(value[0]) if value else unknown_schema()
        return ArraySchema(element=element)
    if isinstance(value, Mapping):
        return ObjectSchema(
            properties={str(k): infer_from_example(v) for k, v in value.items()},
            required=[str(k) for k, v in value.items() if v is not None],
        )
    return unknown_schema()
