"""The four pipeline stages: invoke, normalizer, generator and output."""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from ..adapters import AdapterRegistry, InvokeSourceConfig
from ..errors import InvokeError, MissingServiceError
from ..fetch import client_scope
from ..generator.client import ClientGenerator
from ..output import FileWriter, OutputFile, clean_directory
from ..parser.base import GeneratedBundle, Schema, ServiceDefinition
from .config import GeneratorStageConfig, InvokeStageConfig, NormalizerStageConfig, OutputStageConfig
from .context import PipelineContext

logger = logging.getLogger(__name__)


@dataclass
class UnifiedDocument:
    """A successfully fetched and parsed source."""

    type: str
    name: str
    raw_document: Any
    service_definition: ServiceDefinition
    adapter: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class InvokeSourceError:
    type: str
    name: str | None
    message: str
    cause: BaseException | None = None


@dataclass
class InvokeStageResult:
    documents: list[UnifiedDocument] = field(default_factory=list)
    errors: list[InvokeSourceError] = field(default_factory=list)


@dataclass
class NormalizerStageResult:
    service_definition: ServiceDefinition
    normalized_types: dict[str, Schema] | None = None
    applied_transforms: list[str] = field(default_factory=list)
    applied_extensions: list[str] = field(default_factory=list)


@dataclass
class GeneratorStageResult:
    bundle: GeneratedBundle
    generator: str


@dataclass
class OutputStageResult:
    written_files: list[str] = field(default_factory=list)


class InvokeStage:
    """Fetches and parses every configured source concurrently.

    Args:
        registry: Adapters available to this stage; per-run adapters are layered on top.
        client: Shared HTTP client. When omitted, one client is opened per run and closed afterwards.
    """

    name = "invoke"

    def __init__(self, registry: AdapterRegistry | None = None, client: httpx.AsyncClient | None = None):
        self.registry = registry or AdapterRegistry.default()
        self.client = client

    async def execute(self, context: PipelineContext, config: InvokeStageConfig | None) -> InvokeStageResult | None:
        if config is None or config.skip:
            return None
        if not config.sources:
            raise InvokeError("At least one source must be provided.")

        registry = self.registry.with_overrides(config.adapters)
        async with client_scope(self.client) as http:
            outcomes = await asyncio.gather(
                *(self._load(source, registry, http) for source in config.sources),
                return_exceptions=True,
            )

        result = InvokeStageResult()
        for source, outcome in zip(config.sources, outcomes):
            if isinstance(outcome, UnifiedDocument):
                result.documents.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            error = InvokeSourceError(type=source.type, name=source.name, message=str(outcome), cause=outcome)
            result.errors.append(error)
            if not config.continue_on_error:
                raise InvokeError(f'Source "{source.label}" failed: {error.message}', errors=[error]) from outcome
            logger.warning("Source %s failed: %s", source.label, error.message)

        context.invoke_results = result
        return result

    async def _load(
        self, source: InvokeSourceConfig, registry: AdapterRegistry, http: httpx.AsyncClient
    ) -> UnifiedDocument:
        adapter = registry.select(source)
        if adapter is None:
            raise InvokeError(f'No adapter registered for source type "{source.type}".')
        raw = await adapter.fetch(source, http)
        service, used = registry.parse(raw, source, primary=adapter)
        logger.debug("Parsed source %s with %s adapter", source.label, used.type)
        return UnifiedDocument(
            type=adapter.type,
            name=source.name or adapter.type,
            raw_document=raw,
            service_definition=service,
            adapter=used.type,
            metadata=dict(source.metadata),
        )


class NormalizerStage:
    """Applies transforms and extensions to a deep copy of the service definition."""

    name = "normalizer"

    async def execute(
        self, context: PipelineContext, config: NormalizerStageConfig | None
    ) -> NormalizerStageResult | None:
        if config is not None and config.skip:
            return None
        config = config or NormalizerStageConfig()
        base = config.service or context.normalized_service or context.service_definition
        if base is None:
            return None

        working = base.clone()
        applied_transforms = []
        for index, transform in enumerate(config.transforms):
            replaced = transform(working)
            if inspect.isawaitable(replaced):
                replaced = await replaced
            applied_transforms.append(_callable_name(transform) or f"transform#{index + 1}")
            if replaced is not None:
                working = replaced

        normalized_types = None
        applied_extensions: list[str] = []
        if config.extensions and config.inputs:
            collected = dict(working.types)
            for input_index, item in enumerate(config.inputs):
                for extension_index, extension in enumerate(config.extensions):
                    schema = extension.normalize(item.payload)
                    if schema is None:
                        continue
                    collected[item.key or f"{extension.name}-{input_index}-{extension_index}"] = schema
                    if extension.name not in applied_extensions:
                        applied_extensions.append(extension.name)
            if applied_extensions:
                normalized_types = collected
                working = working.model_copy(update={"types": collected})

        context.normalized_service = working
        context.service_definition = working
        return NormalizerStageResult(
            service_definition=working,
            normalized_types=normalized_types,
            applied_transforms=applied_transforms,
            applied_extensions=applied_extensions,
        )


class GeneratorStage:
    name = "generator"

    def __init__(self, generator: Any = None):
        self.generator = generator or ClientGenerator()

    async def execute(
        self, context: PipelineContext, config: GeneratorStageConfig | None
    ) -> GeneratorStageResult | None:
        config = config or GeneratorStageConfig()
        if config.skip:
            return None
        service = config.service or context.normalized_service or context.service_definition
        if service is None:
            raise MissingServiceError("Generator stage requires a service definition.")

        generator = config.generator or self.generator
        bundle = generator.generate(service, config.options)
        if inspect.isawaitable(bundle):
            bundle = await bundle
        context.generated_bundle = bundle
        context.generator_name = generator.name
        return GeneratorStageResult(bundle=bundle, generator=generator.name)


class OutputStage:
    name = "output"

    def __init__(self, writer: Any = None):
        self.writer = writer or FileWriter()

    async def execute(self, context: PipelineContext, config: OutputStageConfig | None) -> OutputStageResult | None:
        if config is None or config.skip:
            return None

        bundle = config.bundle or context.generated_bundle
        output_dir = (config.output_dir or "").strip()
        files: list[OutputFile] = []
        for generated in bundle.files if bundle else []:
            if config.map_file_path is not None:
                target = config.map_file_path(generated)
            elif output_dir:
                target = Path(output_dir) / generated.filename
            else:
                target = generated.filename
            files.append(OutputFile(path=target, content=generated.content))
        files.extend(config.extra_files)

        if not files:
            context.written_files = []
            return OutputStageResult()

        if output_dir and config.clean:
            clean_directory(output_dir)
        writer = config.writer or self.writer
        written = writer.write_batch(files)
        if inspect.isawaitable(written):
            await written

        context.written_files = [str(f.path) for f in files]
        return OutputStageResult(written_files=list(context.written_files))


def _callable_name(func: Any) -> str | None:
    name = getattr(func, "__name__", None)
    if not name or name == "<lambda>":
        return None
    return name
