"""Source of the ``transport.py`` module shipped with every generated client.

The generated endpoint classes subclass ``BaseClient`` and describe
themselves with an ``EndpointSpec``; everything about URLs, headers, body
encoding and response decoding lives here, built on ``requests``.
"""

TRANSPORT_FILENAME = "transport"


def render_transport() -> str:
    return _TRANSPORT_SOURCE


_TRANSPORT_SOURCE = r'''"""Shared HTTP transport for the generated API client.

Requires ``requests`` and ``typing_extensions>=4.13``.
"""

from __future__ import annotations

import dataclasses
import json
import re
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional
from urllib.parse import quote, urlencode

import requests

__all__ = [
    "ApiClientError",
    "BaseClient",
    "CancelToken",
    "ClientConfig",
    "EndpointSpec",
    "HttpError",
    "QueryArrayFormat",
    "RequestCancelled",
    "RequestContext",
    "ResponseContext",
    "apply_path_params",
    "serialize_query",
]

QueryArrayFormat = Literal["repeat", "comma"]

_PATH_PARAM = re.compile(r"\{([^{}]+)\}")


class ApiClientError(Exception):
    """Base class for errors raised by the generated client."""


class HttpError(ApiClientError):
    """Raised for every non-2xx response; ``data`` holds the decoded body."""

    def __init__(self, status: int, status_text: str, data: Any = None, url: str = "") -> None:
        super().__init__(f"HTTP {status} {status_text}".strip())
        self.status = status
        self.status_text = status_text
        self.data = data
        self.url = url


class RequestCancelled(ApiClientError):
    """Raised when a call is cancelled through its ``CancelToken``."""


class CancelToken:
    """Cooperative cancellation, checked before sending and before decoding."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelled("Request was cancelled")


@dataclass
class RequestContext:
    url: str
    method: str
    headers: dict[str, str]
    body: Any = None


@dataclass
class ResponseContext(RequestContext):
    status: int = 0
    status_text: str = ""
    data: Any = None


@dataclass
class ClientConfig:
    base_url: str = ""
    session: Optional[requests.Session] = None
    default_headers: dict[str, str] = field(default_factory=dict)
    query_array_format: QueryArrayFormat = "repeat"
    on_request: Optional[Callable[[RequestContext], None]] = None
    on_response: Optional[Callable[[ResponseContext], None]] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class EndpointSpec:
    method: str
    path: str
    body_required: bool = False
    body_content_type: Optional[str] = None
    response_content_type: Optional[str] = None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def apply_path_params(path: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Substitute ``{name}`` placeholders; missing values become empty strings."""
    values = params or {}

    def replace(match: re.Match) -> str:
        value = values.get(match.group(1))
        return quote("" if value is None else _stringify(value), safe="")

    return _PATH_PARAM.sub(replace, path)


def serialize_query(params: Optional[Mapping[str, Any]], array_format: QueryArrayFormat = "repeat") -> str:
    """Build a ``?a=1&b=2`` suffix; None values are skipped, lists follow ``array_format``."""
    if not params:
        return ""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            items = [_stringify(item) for item in value if item is not None]
            if array_format == "comma":
                pairs.append((key, ",".join(items)))
            else:
                pairs.extend((key, item) for item in items)
        else:
            pairs.append((key, _stringify(value)))
    return "?" + urlencode(pairs, quote_via=quote) if pairs else ""


def _find_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def _set_header(headers: dict[str, str], name: str, value: Optional[str]) -> None:
    for key in [k for k in headers if k.lower() == name.lower()]:
        del headers[key]
    if value is not None:
        headers[name] = value


class BaseClient:
    """Base class for the generated endpoint clients.

    Args:
        config: Client configuration; keyword overrides are applied on top.
    """

    def __init__(self, config: Optional[ClientConfig] = None, **overrides: Any) -> None:
        if config is None:
            config = ClientConfig(**overrides)
        elif overrides:
            config = dataclasses.replace(config, **overrides)
        self.config = config
        self.session = config.session or requests.Session()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self.config.session is None:
            self.session.close()

    def build_url(self, spec: EndpointSpec, request: Optional[Mapping[str, Any]] = None) -> str:
        request = request or {}
        path = apply_path_params(spec.path, request.get("path"))
        query = serialize_query(request.get("query"), self.config.query_array_format)
        return self.config.base_url.rstrip("/") + path + query

    def request(
        self,
        spec: EndpointSpec,
        request: Optional[Mapping[str, Any]] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> Any:
        """Send the call described by ``spec`` and return the decoded body.

        ``headers`` and any other keyword (``timeout``, ``verify``, ...) are passed
        to ``requests`` and take precedence over configured values.
        """
        request = request or {}
        signal: Optional[CancelToken] = request.get("signal")
        method = spec.method.upper()
        body = request.get("body")
        if spec.body_required and body is None:
            raise ValueError(f"{method} {spec.path} requires a request body")

        merged = {**self.config.default_headers, **(request.get("headers") or {}), **dict(headers or {})}
        data, files = None, None
        if body is not None and method not in ("GET", "HEAD"):
            data, files = self._encode_body(body, spec.body_content_type, merged)

        if signal is not None:
            signal.raise_if_cancelled()
        context = RequestContext(url=self.build_url(spec, request), method=method, headers=merged, body=data)
        if self.config.on_request is not None:
            self.config.on_request(context)

        kwargs.setdefault("timeout", self.config.timeout)
        response = self.session.request(
            context.method,
            context.url,
            headers=context.headers,
            data=context.body,
            files=files,
            **kwargs,
        )
        if signal is not None and signal.cancelled:
            response.close()
            raise RequestCancelled("Request was cancelled")

        result = self._decode(response, spec, method)
        if self.config.on_response is not None:
            self.config.on_response(
                ResponseContext(
                    url=context.url,
                    method=method,
                    headers=context.headers,
                    body=context.body,
                    status=response.status_code,
                    status_text=response.reason or "",
                    data=result,
                )
            )
        if not 200 <= response.status_code < 300:
            raise HttpError(response.status_code, response.reason or "", result, context.url)
        return result

    def _encode_body(self, body: Any, declared: Optional[str], headers: dict[str, str]) -> tuple[Any, Any]:
        if isinstance(body, (bytes, bytearray, str, Iterator)) or hasattr(body, "read"):
            return body, None
        content_type = declared or _find_header(headers, "content-type") or "application/json"
        if "json" in content_type:
            _set_header(headers, "Content-Type", content_type)
            return json.dumps(body), None
        if "application/x-www-form-urlencoded" in content_type and isinstance(body, Mapping):
            _set_header(headers, "Content-Type", content_type)
            pairs = [(k, _stringify(v)) for k, v in body.items() if v is not None]
            return urlencode(pairs, quote_via=quote), None
        if "multipart/form-data" in content_type and isinstance(body, Mapping):
            # requests writes the boundary itself
            _set_header(headers, "Content-Type", None)
            files = {
                k: v if isinstance(v, tuple) or hasattr(v, "read") else (None, _stringify(v))
                for k, v in body.items()
                if v is not None
            }
            return None, files
        return _stringify(body), None

    def _decode(self, response: requests.Response, spec: EndpointSpec, method: str) -> Any:
        if response.status_code == 204 or method == "HEAD":
            return None
        content_type = spec.response_content_type or response.headers.get("content-type") or ""
        if "json" in content_type:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return response.text
        if content_type.startswith("text/"):
            return response.text
        return response.content
'''
