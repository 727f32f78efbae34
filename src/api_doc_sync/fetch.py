"""Document fetching for single, multi-endpoint and discovery sources.

Remote documents are retrieved with ``httpx.AsyncClient``; local files are
read from disk and parsed with ``yaml.safe_load`` (which also accepts JSON).
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Callable, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Literal, Union
from urllib.parse import unquote, urlsplit

import httpx
import yaml
from pydantic import BaseModel, ConfigDict

from .errors import FetchError
from .merge import MergeStrategy, merge_documents

logger = logging.getLogger(__name__)

ResponseParseMode = Literal["auto", "json", "text", "buffer"]
QueryValue = Union[str, int, float, bool, None, list[Union[str, int, float, bool]]]


class ApiDocRequest(BaseModel):
    """A single HTTP request that returns an API document."""

    model_config = ConfigDict(extra="forbid")

    url: str
    method: str = "GET"
    headers: dict[str, str] = {}
    query: dict[str, QueryValue] | None = None
    body: Any = None
    parse_as: ResponseParseMode = "auto"


class MultiEndpointSource(BaseModel):
    """Several documents fetched concurrently and merged."""

    model_config = ConfigDict(extra="forbid")

    requests: list[Union[str, ApiDocRequest]]
    merge_strategy: MergeStrategy = "auto"


class DiscoverySource(BaseModel):
    """An entry document whose content tells which documents to fetch next."""

    model_config = ConfigDict(extra="forbid")

    discovery: Union[str, ApiDocRequest]
    resolve_requests: Callable[[Any], Any]
    merge_strategy: MergeStrategy = "auto"


ApiDocSource = Union[str, ApiDocRequest, MultiEndpointSource, DiscoverySource]


async def fetch_documentation(source: ApiDocSource, client: httpx.AsyncClient | None = None) -> Any:
    """Fetch the raw document(s) described by ``source``.

    Args:
        source: URL/path string, ApiDocRequest, MultiEndpointSource or DiscoverySource.
        client: Optional shared client; a temporary one is created and closed otherwise.

    Raises:
        FetchError: When a request fails or a source yields no requests.
        MergeError: When fetched documents cannot be merged.
    """
    async with client_scope(client) as http:
        if isinstance(source, DiscoverySource):
            entry = await _fetch_single(source.discovery, http)
            followups = source.resolve_requests(entry)
            if inspect.isawaitable(followups):
                followups = await followups
            requests = _ensure_list(followups)
            if not requests:
                raise FetchError("Discovery source returned no follow-up requests.")
            documents = await asyncio.gather(*(_fetch_single(r, http) for r in requests))
            return merge_documents(list(documents), source.merge_strategy)

        if isinstance(source, MultiEndpointSource):
            if not source.requests:
                raise FetchError("Multi-endpoint source requires at least one request.")
            documents = await asyncio.gather(*(_fetch_single(r, http) for r in source.requests))
            return merge_documents(list(documents), source.merge_strategy)

        return await _fetch_single(source, http)


def load_document(path: str | Path) -> Any:
    """Read and parse a local JSON or YAML document."""
    absolute = Path(path).expanduser()
    if not absolute.is_absolute():
        absolute = Path.cwd() / absolute
    try:
        text = absolute.read_text(encoding="utf-8")
    except OSError as exc:
        raise FetchError(f"Failed to read {absolute}: {exc}", url=str(absolute)) from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise FetchError(f"Failed to parse JSON from {absolute}: {exc}", url=str(absolute)) from exc


def coerce_document(payload: Any) -> Any:
    """Parse textual payloads (served as text/plain or bytes) into mappings when possible."""
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            return payload
    if isinstance(payload, str):
        try:
            parsed = yaml.safe_load(payload)
        except yaml.YAMLError:
            return payload
        if isinstance(parsed, (Mapping, list)):
            return parsed
    return payload


def is_http_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


@asynccontextmanager
async def client_scope(client: httpx.AsyncClient | None):
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(follow_redirects=True) as owned:
        yield owned


async def _fetch_single(spec: Any, http: httpx.AsyncClient) -> Any:
    if isinstance(spec, httpx.URL):
        spec = str(spec)
    if isinstance(spec, str):
        if is_http_url(spec):
            return await _fetch_http(ApiDocRequest(url=spec), http)
        if spec.startswith("file://"):
            return load_document(unquote(urlsplit(spec).path))
        return load_document(spec)
    if isinstance(spec, Mapping):
        spec = ApiDocRequest.model_validate(spec)
    if isinstance(spec, ApiDocRequest):
        return await _fetch_http(spec, http)
    raise FetchError(f"Unsupported document request: {spec!r}")


async def _fetch_http(request: ApiDocRequest, http: httpx.AsyncClient) -> Any:
    method = request.method.upper()
    headers = dict(request.headers)
    content = None
    if request.body is not None and method != "GET":
        if isinstance(request.body, Mapping):
            if not any(key.lower() == "content-type" for key in headers):
                headers["Content-Type"] = "application/json"
            content = json.dumps(request.body)
        else:
            content = request.body

    logger.debug("Fetching %s %s", method, request.url)
    try:
        response = await http.request(
            method,
            request.url,
            params=_query_params(request.query),
            headers=headers,
            content=content,
        )
    except httpx.HTTPError as exc:
        raise FetchError(f"Failed to fetch API document from {request.url}: {exc}", url=request.url) from exc

    if not response.is_success:
        raise FetchError(
            f"Unexpected response {response.status_code} {response.reason_phrase} from {response.url}",
            url=str(response.url),
            status=response.status_code,
        )
    return _decode(response, request.parse_as)


def _query_params(query: dict[str, QueryValue] | None) -> list[tuple[str, Any]] | None:
    if not query:
        return None
    params = []
    for key, value in query.items():
        if value is None:
            continue
        for item in value if isinstance(value, list) else [value]:
            params.append((key, item))
    return params or None


def _decode(response: httpx.Response, mode: ResponseParseMode) -> Any:
    if mode == "text":
        return response.text
    if mode == "buffer":
        return response.content
    content_type = response.headers.get("content-type", "")
    if mode == "json" or "application/json" in content_type or "+json" in content_type:
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"Response from {response.url} is not valid JSON: {exc}", url=str(response.url)) from exc
    if content_type.startswith("text/"):
        return response.text
    return response.content


def _ensure_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
