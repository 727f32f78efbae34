"""Client code generator: turns a ServiceDefinition into a typed Python package.

One module per endpoint (laid out by URL path), a shared ``transport``
module, a ``types`` module for named schemas, and an entry file that
re-exports all of them.
"""

import keyword
import logging
import re
from collections import Counter
from pathlib import PurePosixPath

from pydantic import BaseModel

from ..errors import GenerationError
from ..parser.base import (
    EndpointDefinition,
    GeneratedBundle,
    GeneratedFile,
    ParameterDefinition,
    ServiceDefinition,
)
from .render import TypeRenderer, docstring_text, pascal_case
from .transport import TRANSPORT_FILENAME, render_transport
from .validator import validate_bundle

logger = logging.getLogger(__name__)

TYPES_FILENAME = "types"
TYPING_NAMES = ("Any", "Literal", "NotRequired", "Protocol", "TypedDict")
TRANSPORT_IMPORTS = ("BaseClient", "CancelToken", "EndpointSpec")
DERIVED_SUFFIXES = ("", "Request", "Response", "Caller", "PathParams", "QueryParams", "Headers")


class CodegenOptions(BaseModel):
    entry_file_name: str = "__init__"
    file_extension: str = "py"
    validate_output: bool = True


# -- file layout ----------------------------------------------------------------


def snake_case(value: str) -> str:
    """``listPets`` / ``List Pets`` / ``list-pets`` -> ``list_pets``."""
    text = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", value or "")
    text = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", text)
    return "_".join(re.sub(r"[^A-Za-z0-9]+", " ", text).lower().split())


def module_name(value: str, fallback: str) -> str:
    """A snake_case name usable as a Python module."""
    name = snake_case(value) or fallback
    if name[0].isdigit():
        name = f"_{name}"
    if keyword.iskeyword(name):
        name += "_"
    return name


def normalize_path_segment(segment: str, index: int) -> str:
    unwrapped = re.sub(r"^[{:]+|}+$", "", segment.strip()).strip()
    return module_name(unwrapped, f"part_{index + 1}")


def extract_path_segments(path: str, fallback: str, index: int) -> list[str]:
    segments = [s for s in path.split("/") if s.strip()]
    if segments:
        return [normalize_path_segment(s, i) for i, s in enumerate(segments)]
    return [module_name(fallback, f"endpoint_{index + 1}")]


def assign_filenames(
    endpoints: list[EndpointDefinition],
    extension: str = "py",
    reserved: tuple[str, ...] = (TRANSPORT_FILENAME, TYPES_FILENAME),
) -> list[str]:
    """Relative filename for each endpoint, in input order.

    Endpoints sharing a path get their method appended; remaining clashes get a
    numeric suffix. A module that doubles as another file's directory becomes
    that directory's ``__init__``.
    """
    layouts = []
    for index, endpoint in enumerate(endpoints):
        segments = extract_path_segments(endpoint.path, endpoint.name or endpoint.id, index)
        if segments[0] in reserved:
            segments[0] += "_api"
        layouts.append(segments)

    counts = Counter("/".join(segments) for segments in layouts)
    stems: list[str] = []
    used: set[str] = set()
    for endpoint, segments in zip(endpoints, layouts):
        *dirs, base = segments
        if counts["/".join(segments)] > 1:
            base = f"{base}_{endpoint.method.lower()}"
        stem = "/".join([*dirs, base])
        candidate, counter = stem, 2
        while candidate in used:
            candidate = f"{stem}_{counter}"
            counter += 1
        used.add(candidate)
        stems.append(candidate)

    directories = {"/".join(stem.split("/")[:i]) for stem in stems for i in range(1, stem.count("/") + 1)}
    return [
        f"{stem}/__init__.{extension}" if stem in directories else f"{stem}.{extension}" for stem in stems
    ]


def relative_module(from_filename: str, target_filename: str) -> str:
    """Relative import path from one generated file to another, e.g. ``..transport``."""
    from_dir = PurePosixPath(from_filename).parent.parts
    target = list(PurePosixPath(target_filename).with_suffix("").parts)
    if target and target[-1] == "__init__":
        target.pop()
    common = 0
    while common < min(len(from_dir), len(target)) and from_dir[common] == target[common]:
        common += 1
    return "." * (len(from_dir) - common + 1) + ".".join(target[common:])


# -- generator ------------------------------------------------------------------


class ClientGenerator:
    """Generates a Python client package from a ServiceDefinition."""

    name = "python-client"

    def generate(self, service: ServiceDefinition, options: CodegenOptions | None = None) -> GeneratedBundle:
        """Generate all files for the client package.

        Raises:
            GenerationError: If ``options.validate_output`` is set and a file fails validation.
        """
        options = options or CodegenOptions()
        ext = options.file_extension.lstrip(".")
        entry_stem = options.entry_file_name.removesuffix(f".{ext}")
        entry = f"{entry_stem}.{ext}"
        transport = f"{TRANSPORT_FILENAME}.{ext}"
        types_file = f"{TYPES_FILENAME}.{ext}"

        reserved = (TRANSPORT_FILENAME, TYPES_FILENAME, entry_stem)
        filenames = assign_filenames(service.endpoints, ext, reserved)
        types_source, type_names = self._render_types(service) if service.types else ("", [])
        class_names = _class_names(service.endpoints, set(type_names))
        endpoint_files = [
            GeneratedFile(
                filename=filename,
                content=self._render_endpoint(endpoint, cls, filename, transport, type_names),
            )
            for endpoint, cls, filename in zip(service.endpoints, class_names, filenames)
        ]

        shared = [GeneratedFile(filename=transport, content=render_transport())]
        if service.types:
            shared.append(GeneratedFile(filename=types_file, content=types_source))

        exports = [types_file] if service.types else []
        exports += [transport, *filenames]
        modules = [relative_module(entry, filename) for filename in exports]
        bundle = GeneratedBundle(
            entrypoint=entry,
            files=[
                GeneratedFile(filename=entry, content=self._render_entry(service, modules)),
                *shared,
                *endpoint_files,
            ],
        )
        logger.info("Generated %d files for %d endpoints", len(bundle.files), len(service.endpoints))

        if options.validate_output:
            errors = validate_bundle(bundle)
            if errors:
                details = "; ".join(f"{name}: {message}" for name, message in errors.items())
                raise GenerationError(f"Generated client failed validation: {details}", errors=errors)
        return bundle

    # -- file renderers --------------------------------------------------------

    def _render_entry(self, service: ServiceDefinition, modules: list[str]) -> str:
        title = docstring_text(" ".join(p for p in (service.title, service.version) if p))
        lines = [f'"""Generated API client: {title}"""' if title else '"""Generated API client."""', ""]
        lines += [f"from {module} import *  # noqa: F401,F403" for module in modules]
        return "\n".join(lines) + "\n"

    def _render_types(self, service: ServiceDefinition) -> tuple[str, list[str]]:
        """Source of the types module and the names it exports."""
        renderer = TypeRenderer(reserved=set(TYPING_NAMES))
        names = {key: renderer.claim(key) for key in service.types}
        for key, schema in service.types.items():
            renderer.render_named(schema, names[key])
        body = "\n\n\n".join(renderer.definitions)
        exported = _defined_names(renderer.definitions)
        header = ['"""Named schemas shared by the API."""', ""]
        return _module(header, _typing_import(body), [], exported, body), exported

    def _render_endpoint(
        self,
        endpoint: EndpointDefinition,
        cls: str,
        filename: str,
        transport: str,
        type_names: list[str],
    ) -> str:
        names = {
            "request": f"{cls}Request",
            "response": f"{cls}Response",
            "caller": f"{cls}Caller",
            "path": f"{cls}PathParams",
            "query": f"{cls}QueryParams",
            "header": f"{cls}Headers",
        }
        renderer = TypeRenderer(reserved={cls, *names.values(), *TYPING_NAMES, *TRANSPORT_IMPORTS, *type_names})

        request_fields = []
        buckets = (("path", "path", True), ("query", "query", False), ("header", "headers", False))
        for location, key, required in buckets:
            params = getattr(endpoint.parameters, location)
            if params:
                self._render_params(renderer, names[location], params)
                request_fields.append((key, names[location], required, None))

        body = endpoint.body
        if body is not None and body.schema_ is not None:
            request_fields.append(("body", renderer.render(body.schema_, f"{cls}Body"), body.required, None))
        request_fields.append(("signal", "CancelToken", False, None))
        renderer.typed_dict(names["request"], request_fields)
        has_required = any(required for _, _, required, _ in request_fields)

        success = endpoint.success_response()
        if success is not None and success.schema_ is not None:
            renderer.render_named(success.schema_, names["response"])
        else:
            renderer.definitions.append(f"{names['response']} = None")

        signature = (
            f"self, request: {names['request']}, **kwargs: Any"
            if has_required
            else f"self, request: {names['request']} | None = None, **kwargs: Any"
        )
        renderer.definitions.append(
            "\n".join(
                [
                    f"class {names['caller']}(Protocol):",
                    f"    def fetch({signature}) -> {names['response']}: ...",
                ]
            )
        )
        renderer.definitions.append(
            self._render_client_class(cls, endpoint, signature, names, success.content_type if success else None)
        )

        body_source = "\n\n\n".join(renderer.definitions)
        header = [f'"""Auto-generated for {endpoint.method} {docstring_text(endpoint.path)}"""', ""]
        transport_import = f"from {relative_module(filename, transport)} import {', '.join(TRANSPORT_IMPORTS)}"
        return _module(
            header,
            _typing_import(body_source),
            [transport_import],
            _defined_names(renderer.definitions),
            body_source,
        )

    def _render_params(self, renderer: TypeRenderer, name: str, params: list[ParameterDefinition]) -> None:
        # duplicate names: the last declaration wins, keeping the first position
        by_name: dict[str, ParameterDefinition] = {}
        for param in params:
            by_name[param.name] = param
        fields = [
            (p.name, renderer.render(p.schema_, name + pascal_case(p.name, "Param")), p.required, p.description)
            for p in by_name.values()
        ]
        renderer.typed_dict(name, fields)

    def _render_client_class(
        self,
        cls: str,
        endpoint: EndpointDefinition,
        signature: str,
        names: dict[str, str],
        response_content_type: str | None,
    ) -> str:
        doc = docstring_text(" - ".join(p for p in (endpoint.name, endpoint.description) if p))
        spec_fields = [f"method={endpoint.method!r}", f"path={endpoint.path!r}"]
        if endpoint.body is not None and endpoint.body.required:
            spec_fields.append("body_required=True")
        if endpoint.body is not None and endpoint.body.content_type:
            spec_fields.append(f"body_content_type={endpoint.body.content_type!r}")
        if response_content_type:
            spec_fields.append(f"response_content_type={response_content_type!r}")

        lines = [f"class {cls}(BaseClient):"]
        if doc:
            lines += [f'    """{doc}"""', ""]
        lines += ["    spec = EndpointSpec("]
        lines += [f"        {field}," for field in spec_fields]
        lines += [
            "    )",
            "",
            f"    def fetch({signature}) -> {names['response']}:",
            "        return self.request(self.spec, request, **kwargs)",
        ]
        return "\n".join(lines)


def generate_client_source(service: ServiceDefinition, options: CodegenOptions | None = None) -> GeneratedBundle:
    return ClientGenerator().generate(service, options)


# -- helpers --------------------------------------------------------------------


def _class_names(endpoints: list[EndpointDefinition], reserved: set[str] | None = None) -> list[str]:
    """PascalCase client class per endpoint, unique across the bundle.

    The entry file star-imports every module, so neither a class nor its
    derived names may repeat a name from ``reserved`` (the types module).
    """
    used: set[str] = set(reserved or ())
    names = []
    for endpoint in endpoints:
        base = pascal_case(endpoint.name or endpoint.id, "Endpoint")
        name, counter = base, 2
        while any(name + suffix in used for suffix in DERIVED_SUFFIXES):
            name = f"{base}{counter}"
            counter += 1
        used.add(name)
        names.append(name)
    return names


def _typing_import(body: str) -> list[str]:
    used = [name for name in TYPING_NAMES if re.search(rf"\b{name}\b", body)]
    if not used:
        return []
    return [f"from typing_extensions import {', '.join(used)}"]


def _defined_names(definitions: list[str]) -> list[str]:
    names = []
    for block in definitions:
        for line in block.splitlines():
            match = re.match(r"^class (\w+)\b|^(\w+) = ", line)
            if match:
                names.append(match.group(1) or match.group(2))
    return names


def _module(
    header: list[str],
    typing_imports: list[str],
    local_imports: list[str],
    exported: list[str],
    body: str,
) -> str:
    lines = list(header)
    if typing_imports:
        lines += typing_imports + [""]
    if local_imports:
        lines += local_imports + [""]
    lines.append("__all__ = [")
    lines += [f"    {name!r}," for name in exported]
    lines += ["]", "", ""]
    return "\n".join(lines) + body + "\n"
