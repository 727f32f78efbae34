"""Unified data models for parsed API documentation.

All adapters (OpenAPI, Swagger, Postman, Apifox) convert their input
into these standard models; the code generator consumes nothing else.
"""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
ParamLocation = Literal["path", "query", "header", "body"]
EnumValue = Union[str, int, float, bool, None]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# -- Schema algebra -----------------------------------------------------------


class _SchemaNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str | None = None
    title: str | None = None
    nullable: bool = False
    example: Any = None


class PrimitiveSchema(_SchemaNode):
    """A scalar or untyped node."""

    kind: Literal["string", "number", "integer", "boolean", "null", "any", "unknown"]
    format: str | None = None  # date-time / uuid / binary ...


class EnumSchema(_SchemaNode):
    """A closed, ordered set of literal values."""

    kind: Literal["enum"] = "enum"
    values: list[EnumValue]


class OneOfSchema(_SchemaNode):
    kind: Literal["oneOf"] = "oneOf"
    variants: list["Schema"]

    @field_validator("variants")
    @classmethod
    def _non_empty(cls, variants: list) -> list:
        if not variants:
            raise ValueError("oneOf schema needs at least one variant")
        return variants


class ArraySchema(_SchemaNode):
    kind: Literal["array"] = "array"
    element: Union["Schema", None] = None
    min_items: int | None = Field(default=None, ge=0)
    max_items: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _bounds(self) -> "ArraySchema":
        if self.min_items is not None and self.max_items is not None and self.min_items > self.max_items:
            raise ValueError("min_items must not exceed max_items")
        return self


class ObjectSchema(_SchemaNode):
    """A keyed record. ``required`` only ever names keys of ``properties``."""

    kind: Literal["object"] = "object"
    properties: dict[str, "Schema"] = {}
    required: list[str] = []
    additional_properties: Union[bool, "Schema", None] = None

    @model_validator(mode="before")
    @classmethod
    def _known_required(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("required"):
            properties = data.get("properties") or {}
            seen: list[str] = []
            for name in data["required"]:
                if name in properties and name not in seen:
                    seen.append(name)
            data = {**data, "required": seen}
        return data


Schema = Annotated[
    Union[PrimitiveSchema, EnumSchema, OneOfSchema, ArraySchema, ObjectSchema],
    Field(discriminator="kind"),
]

OneOfSchema.model_rebuild()
ArraySchema.model_rebuild()
ObjectSchema.model_rebuild()


def primitive(kind: str, **fields: Any) -> PrimitiveSchema:
    return PrimitiveSchema(kind=kind, **fields)


def unknown_schema(**fields: Any) -> PrimitiveSchema:
    return PrimitiveSchema(kind="unknown", **fields)


# -- Endpoint models ----------------------------------------------------------


class ParameterDefinition(BaseModel):
    """A single API parameter (path, query, header, or body)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    location: ParamLocation
    required: bool = False
    description: str | None = None
    schema_: Schema | None = Field(default=None, alias="schema")
    style: str | None = None  # form / simple / deepObject ...


class EndpointParameters(BaseModel):
    path: list[ParameterDefinition] = []
    query: list[ParameterDefinition] = []
    header: list[ParameterDefinition] = []

    def all(self) -> list[ParameterDefinition]:
        return [*self.path, *self.query, *self.header]


class RequestBodyDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    required: bool = False
    content_type: str | None = None
    schema_: Schema | None = Field(default=None, alias="schema")


class ResponseDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: int | Literal["default"] | None = None
    description: str | None = None
    content_type: str | None = None
    schema_: Schema | None = Field(default=None, alias="schema")

    @property
    def is_success(self) -> bool:
        return isinstance(self.status, int) and 200 <= self.status < 300


class EndpointDefinition(BaseModel):
    """A single API operation with all its metadata."""

    id: str  # identifier-safe, unique within a service
    name: str
    description: str | None = None
    path: str  # /pets/{petId}
    method: HttpMethod
    tags: list[str] = []
    parameters: EndpointParameters = Field(default_factory=EndpointParameters)
    body: RequestBodyDefinition | None = None
    responses: list[ResponseDefinition] = []

    @field_validator("id")
    @classmethod
    def _identifier(cls, value: str) -> str:
        if not _IDENTIFIER.match(value):
            raise ValueError(f"endpoint id {value!r} is not identifier-safe")
        return value

    @field_validator("method", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    def success_response(self) -> ResponseDefinition | None:
        """First 2xx response, else the first response, else None."""
        for response in self.responses:
            if response.is_success:
                return response
        return self.responses[0] if self.responses else None


class ServiceSource(BaseModel):
    kind: str  # openapi / swagger / postman / apifox / custom
    raw: Any = None


class ServiceDefinition(BaseModel):
    """The intermediate representation every adapter produces."""

    title: str
    version: str | None = None
    description: str | None = None
    servers: list[str] = []
    types: dict[str, Schema] = {}
    endpoints: list[EndpointDefinition] = []
    source: ServiceSource | None = None

    @model_validator(mode="after")
    def _unique_ids(self) -> "ServiceDefinition":
        seen: set[str] = set()
        for endpoint in self.endpoints:
            if endpoint.id in seen:
                raise ValueError(f"duplicate endpoint id {endpoint.id!r}")
            seen.add(endpoint.id)
        return self

    def clone(self) -> "ServiceDefinition":
        return self.model_copy(deep=True)


# -- Generated output ---------------------------------------------------------


class GeneratedFile(BaseModel):
    filename: str  # relative, forward slashes
    content: str


class GeneratedBundle(BaseModel):
    entrypoint: str
    files: list[GeneratedFile]

    @model_validator(mode="after")
    def _consistent(self) -> "GeneratedBundle":
        names = [f.filename for f in self.files]
        if len(set(names)) != len(names):
            raise ValueError("generated filenames must be unique")
        if self.entrypoint not in names:
            raise ValueError(f"entrypoint {self.entrypoint!r} is not among the generated files")
        return self

    def as_dict(self) -> dict[str, str]:
        return {f.filename: f.content for f in self.files}

    def get(self, filename: str) -> GeneratedFile | None:
        for generated in self.files:
            if generated.filename == filename:
                return generated
        return None


# -- Helpers shared by the adapters -------------------------------------------


def sanitize_id(value: str, fallback: str = "endpoint") -> str:
    """Collapse a free-form name into an identifier-safe endpoint id."""
    text = re.sub(r"[^a-zA-Z0-9_]+", "_", value or "")
    if not text.strip("_"):
        text = fallback
    if text[0].isdigit():
        text = f"_{text}"
    return text


def unique_id(candidate: str, used: set[str]) -> str:
    """Return ``candidate`` or a numbered variant not yet in ``used``; records the result."""
    result, counter = candidate, 2
    while result in used:
        result = f"{candidate}_{counter}"
        counter += 1
    used.add(result)
    return result


def operation_id(method: str, path: str, explicit: Any = None) -> str:
    """Endpoint id from an explicit operationId, else ``METHOD_<path>``."""
    if isinstance(explicit, str) and explicit.strip():
        return sanitize_id(explicit)
    return sanitize_id(f"{method.upper()}_{re.sub(r'[^a-zA-Z0-9]+', '_', path)}")


def sort_responses(responses: list[ResponseDefinition]) -> list[ResponseDefinition]:
    """Stable sort placing 2xx responses first."""
    return sorted(responses, key=lambda r: 0 if r.is_success else 1)
