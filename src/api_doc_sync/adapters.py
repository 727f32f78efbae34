"""Format adapters: fetch a configured source and parse it into a ServiceDefinition.

Each adapter pairs a source type tag with a shape guard and a parser from
``api_doc_sync.parser``. Adapters are collected in an ``AdapterRegistry``
owned by the pipeline that uses it.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict

from .errors import DocSyncError, FetchError, ParseError
from .fetch import ApiDocRequest, ApiDocSource, coerce_document, fetch_documentation
from .parser.apifox import parse_apifox_export
from .parser.base import ServiceDefinition
from .parser.detect import (
    is_apifox_document,
    is_openapi_document,
    is_postman_collection,
    is_swagger_like_document,
)
from .parser.postman import parse_postman_collection
from .parser.swagger import parse_openapi_document, parse_swagger_document

logger = logging.getLogger(__name__)


class InvokeSourceConfig(BaseModel):
    """One document source of an invoke stage."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: str  # swagger / openapi / postman / apifox / custom tag
    name: str | None = None
    request: ApiDocSource | None = None
    document: Any = None  # inline payload; wins over ``request``
    options: dict[str, Any] = {}
    metadata: dict[str, Any] = {}

    @property
    def label(self) -> str:
        return self.name or self.type


class SourceAdapter(Protocol):
    type: str

    def can_handle(self, source: InvokeSourceConfig) -> bool: ...

    def matches(self, payload: Any) -> bool: ...

    async def fetch(self, source: InvokeSourceConfig, client: httpx.AsyncClient | None = None) -> Any: ...

    def parse(self, payload: Any, source: InvokeSourceConfig | None = None) -> ServiceDefinition: ...


class BaseAdapter:
    """Shared fetch logic; subclasses provide ``type``, ``matches`` and ``_parse``."""

    type: str = ""
    description: str = "document"

    def can_handle(self, source: InvokeSourceConfig) -> bool:
        return source.type.lower() == self.type

    def matches(self, payload: Any) -> bool:
        raise NotImplementedError

    async def fetch(self, source: InvokeSourceConfig, client: httpx.AsyncClient | None = None) -> Any:
        if source.document is not None:
            return coerce_document(source.document)
        if source.request is None:
            raise FetchError(f"Missing request for source type {self.type}.")
        return coerce_document(await fetch_documentation(source.request, client=client))

    def parse(self, payload: Any, source: InvokeSourceConfig | None = None) -> ServiceDefinition:
        label = source.label if source else self.type
        if not self.matches(payload):
            raise ParseError(f'Payload for source "{label}" is not a valid {self.description}.', source=label)
        return self._parse(payload, label)

    def _parse(self, payload: Any, label: str) -> ServiceDefinition:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.type!r})"


class SwaggerAdapter(BaseAdapter):
    """OpenAPI 3.x or Swagger 2.0; also accepts ``options.url``/``options.headers``."""

    type = "swagger"
    description = "Swagger/OpenAPI document"

    async def fetch(self, source: InvokeSourceConfig, client: httpx.AsyncClient | None = None) -> Any:
        url = source.options.get("url")
        if source.document is None and source.request is None and isinstance(url, str) and url:
            request = ApiDocRequest(url=url, headers=source.options.get("headers") or {})
            return coerce_document(await fetch_documentation(request, client=client))
        return await super().fetch(source, client)

    def matches(self, payload: Any) -> bool:
        return is_swagger_like_document(payload)

    def _parse(self, payload: Any, label: str) -> ServiceDefinition:
        return parse_swagger_document(payload)


class OpenApiAdapter(BaseAdapter):
    type = "openapi"
    description = "OpenAPI 3.x document"

    def matches(self, payload: Any) -> bool:
        return is_openapi_document(payload)

    def _parse(self, payload: Any, label: str) -> ServiceDefinition:
        return parse_openapi_document(payload)


class PostmanAdapter(BaseAdapter):
    type = "postman"
    description = "Postman collection"

    def matches(self, payload: Any) -> bool:
        return is_postman_collection(payload)

    def _parse(self, payload: Any, label: str) -> ServiceDefinition:
        return parse_postman_collection(payload, source_name=label)


class ApifoxAdapter(BaseAdapter):
    type = "apifox"
    description = "Apifox export"

    def matches(self, payload: Any) -> bool:
        return is_apifox_document(payload)

    def _parse(self, payload: Any, label: str) -> ServiceDefinition:
        return parse_apifox_export(payload, source_name=label)


def default_adapters() -> list[SourceAdapter]:
    return [ApifoxAdapter(), SwaggerAdapter(), OpenApiAdapter(), PostmanAdapter()]


class AdapterRegistry:
    """Ordered collection of adapters; an adapter registered under an existing type replaces it."""

    def __init__(self, adapters: Iterable[SourceAdapter] | None = None):
        self._adapters: list[SourceAdapter] = []
        for adapter in default_adapters() if adapters is None else adapters:
            self.register(adapter)

    @classmethod
    def default(cls) -> "AdapterRegistry":
        return cls()

    def register(self, adapter: SourceAdapter) -> "AdapterRegistry":
        for index, existing in enumerate(self._adapters):
            if existing.type == adapter.type:
                self._adapters[index] = adapter
                return self
        self._adapters.append(adapter)
        return self

    def with_overrides(self, adapters: Iterable[SourceAdapter] | None) -> "AdapterRegistry":
        """Copy of this registry with ``adapters`` registered on top."""
        registry = AdapterRegistry(self._adapters)
        for adapter in adapters or []:
            registry.register(adapter)
        return registry

    def ordered(self, prefer: str | None = None) -> list[SourceAdapter]:
        """Adapters in registration order, with the ``prefer`` type moved to the front."""
        if not prefer:
            return list(self._adapters)
        preferred = [a for a in self._adapters if a.type == prefer.lower()]
        return preferred + [a for a in self._adapters if a.type != prefer.lower()]

    def select(self, source: InvokeSourceConfig) -> SourceAdapter | None:
        for adapter in self._adapters:
            if adapter.can_handle(source):
                return adapter
        return None

    def parse(
        self,
        payload: Any,
        source: InvokeSourceConfig | None = None,
        primary: SourceAdapter | None = None,
        prefer: str | None = None,
    ) -> tuple[ServiceDefinition, SourceAdapter]:
        """Parse with ``primary`` first, then every other adapter whose shape guard matches.

        Returns the service definition and the adapter that produced it.
        """
        candidates = [primary] if primary is not None else []
        for adapter in self.ordered(prefer or (source.type if source else None)):
            matches = getattr(adapter, "matches", None)
            if adapter is not primary and matches is not None and matches(payload):
                candidates.append(adapter)

        failures = []
        for adapter in candidates:
            try:
                return adapter.parse(payload, source), adapter
            except (DocSyncError, ValueError, TypeError, KeyError) as exc:
                logger.debug("Adapter %s could not parse payload: %s", adapter.type, exc)
                failures.append(f"{adapter.type}: {exc}")

        label = source.label if source else "document"
        if not failures:
            raise ParseError(f'No registered adapter recognises the payload of source "{label}".', source=label)
        raise ParseError(f'Unable to parse source "{label}" ({"; ".join(failures)})', source=label)

    def __iter__(self) -> Iterator[SourceAdapter]:
        return iter(list(self._adapters))

    def __len__(self) -> int:
        return len(self._adapters)


def parse_service_definition(
    payload: Any,
    prefer: str | None = None,
    registry: AdapterRegistry | None = None,
) -> ServiceDefinition:
    """Detect the payload's format and parse it with the first adapter that succeeds."""
    service, _ = (registry or AdapterRegistry.default()).parse(coerce_document(payload), prefer=prefer)
    return service
