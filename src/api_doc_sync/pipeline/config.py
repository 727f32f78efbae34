"""Stage configuration models and run-option loading."""

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..adapters import InvokeSourceConfig
from ..errors import ParseError
from ..fetch import is_http_url, load_document
from ..generator.client import CodegenOptions
from ..output import OutputFile
from ..parser.base import GeneratedBundle, GeneratedFile, ServiceDefinition
from .extensions import resolve_extension


class _StageConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    skip: bool = False


class InvokeStageConfig(_StageConfig):
    sources: list[InvokeSourceConfig] = []
    adapters: list[Any] = []  # SourceAdapter objects registered on top of the pipeline registry
    continue_on_error: bool = True


class NormalizerInput(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    payload: Any
    key: str | None = None


class NormalizerStageConfig(_StageConfig):
    service: ServiceDefinition | None = None
    transforms: list[Callable[[ServiceDefinition], Any]] = []
    extensions: list[Any] = []  # NormalizerExtension objects or built-in names
    inputs: list[NormalizerInput] = []

    @field_validator("extensions", mode="before")
    @classmethod
    def _builtin_extensions(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [resolve_extension(item) for item in value]
        return value


class GeneratorStageConfig(_StageConfig):
    service: ServiceDefinition | None = None
    generator: Any = None  # object with ``name`` and ``generate(service, options)``
    options: CodegenOptions = CodegenOptions()


class OutputStageConfig(_StageConfig):
    bundle: GeneratedBundle | None = None
    writer: Any = None  # object with ``write_batch(files)``
    output_dir: str | None = None
    map_file_path: Callable[[GeneratedFile], Any] | None = None
    extra_files: list[OutputFile] = []
    clean: bool = True  # remove output_dir before writing


class StageDefaults(BaseModel):
    """Per-stage defaults held by a pipeline; run options override them field by field."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    invoke: InvokeStageConfig | None = None
    normalizer: NormalizerStageConfig | None = None
    generator: GeneratorStageConfig | None = None
    output: OutputStageConfig | None = None


class PipelineRunOptions(StageDefaults):
    initial_context: dict[str, Any] = {}
    interceptors: list[Callable[..., Any]] = []
    # None keeps the pipeline's logging interceptor, False disables it
    logger: logging.Logger | bool | None = None


def merge_stage_config(base: BaseModel | None, override: BaseModel | None) -> Any:
    """Shallow merge: fields explicitly set on ``override`` replace those of ``base``."""
    if base is None:
        return override
    if override is None:
        return base
    return base.model_copy(update={name: getattr(override, name) for name in override.model_fields_set})


def load_run_options(path: str | Path) -> PipelineRunOptions:
    """Load ``PipelineRunOptions`` from a YAML or JSON file.

    Relative file paths used as source requests are resolved against the
    directory containing the config file.
    """
    config_path = Path(path).expanduser().resolve()
    data = load_document(config_path)
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ParseError(f"Run configuration {config_path} must be a mapping.", source=str(config_path))

    data = dict(data)
    invoke = data.get("invoke")
    if isinstance(invoke, Mapping):
        invoke = dict(invoke)
        invoke["sources"] = [
            _resolve_source(source, config_path.parent) for source in invoke.get("sources") or []
        ]
        data["invoke"] = invoke

    try:
        return PipelineRunOptions.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"Invalid run configuration {config_path}: {exc}", source=str(config_path)) from exc


def _resolve_source(source: Any, base: Path) -> Any:
    if not isinstance(source, Mapping):
        return source
    source = dict(source)
    request = source.get("request")
    if isinstance(request, str):
        source["request"] = _resolve_path(request, base)
    elif isinstance(request, Mapping) and isinstance(request.get("requests"), list):
        source["request"] = {
            **request,
            "requests": [_resolve_path(r, base) if isinstance(r, str) else r for r in request["requests"]],
        }
    return source


def _resolve_path(value: str, base: Path) -> str:
    if is_http_url(value) or value.startswith("file://"):
        return value
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return value
    return str(base / candidate)
