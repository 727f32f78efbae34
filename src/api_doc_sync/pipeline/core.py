"""DocSyncPipeline: invoke -> normalize -> generate -> output.

Every stage call runs through a chain of interceptors. The first one, unless
disabled, logs START / SUCCESS / FAIL with the duration and a short preview
of the stage params and result.
"""

import asyncio
import dataclasses
import functools
import logging
import time
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel

from ..adapters import AdapterRegistry
from ..errors import MissingServiceError, StageError
from .config import InvokeStageConfig, PipelineRunOptions, StageDefaults, merge_stage_config
from .context import CallNext, Interceptor, PipelineContext, Stage, StageInvocation
from .stages import GeneratorStage, InvokeStage, InvokeStageResult, NormalizerStage, OutputStage, UnifiedDocument

logger = logging.getLogger(__name__)

# run() returns the final context
PipelineResult = PipelineContext

_PREVIEW_ITEMS = 5
_PREVIEW_CHARS = 80


def format_for_log(value: Any) -> str:
    """Compact one-line preview: long strings are cut, containers show their first items."""
    if value is None:
        return "None"
    if isinstance(value, str):
        if len(value) > _PREVIEW_CHARS:
            return "'" + value[: _PREVIEW_CHARS - 3] + "...'"
        return "'" + value + "'"
    if isinstance(value, (bool, int, float)):
        return str(value)
    if isinstance(value, BaseException):
        return f"{type(value).__name__}({value})"
    if isinstance(value, (list, tuple, set)):
        items = list(value)
        if not items:
            return "[]"
        preview = ", ".join(format_for_log(item) for item in items[:_PREVIEW_ITEMS])
        suffix = ", ..." if len(items) > _PREVIEW_ITEMS else ""
        return f"Array({len(items)})[{preview}{suffix}]"

    if isinstance(value, Mapping):
        entries = list(value.items())
    elif isinstance(value, BaseModel):
        entries = [(name, getattr(value, name)) for name in type(value).model_fields]
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        entries = [(f.name, getattr(value, f.name)) for f in dataclasses.fields(value)]
    else:
        return str(value)
    if not entries:
        return "{}"
    preview = ", ".join(f"{key}={format_for_log(val)}" for key, val in entries[:_PREVIEW_ITEMS])
    suffix = ", ..." if len(entries) > _PREVIEW_ITEMS else ""
    return "{" + preview + suffix + "}"


def logging_interceptor(target: logging.Logger | None = None) -> Interceptor:
    """Interceptor that logs each stage call to ``target`` (this module's logger by default)."""
    log = target or logger

    async def log_stage(call_next: CallNext, invocation: StageInvocation) -> Any:
        name = invocation.stage.name
        log.info("[DocSyncPipeline] START stage=%s params=%s", name, format_for_log(invocation.params))
        start = time.perf_counter()
        try:
            result = await call_next(invocation)
        except Exception as exc:
            duration = (time.perf_counter() - start) * 1000
            log.error(
                "[DocSyncPipeline] FAIL stage=%s duration=%.0fms message=%s error=%s",
                name,
                duration,
                exc,
                format_for_log(exc),
            )
            raise
        duration = (time.perf_counter() - start) * 1000
        log.info(
            "[DocSyncPipeline] SUCCESS stage=%s duration=%.0fms result=%s",
            name,
            duration,
            format_for_log(result),
        )
        return result

    return log_stage


async def run_stage(
    stage: Stage,
    context: PipelineContext,
    params: Any,
    interceptors: list[Interceptor] | None = None,
) -> Any:
    """Run ``stage`` through ``interceptors`` (outermost first) and record its result.

    Raises:
        StageError: Wrapping whatever the stage or an interceptor raised.
    """

    async def invoke(invocation: StageInvocation) -> Any:
        return await invocation.stage.execute(invocation.context, invocation.params)

    chain: CallNext = invoke
    for interceptor in reversed(interceptors or []):
        chain = functools.partial(interceptor, chain)

    try:
        result = await chain(StageInvocation(stage, context, params, context.stage_results))
    except Exception as exc:
        raise StageError(stage.name, exc) from exc
    context.stage_results[stage.name] = result
    return result


def select_primary_document(
    result: InvokeStageResult | None,
    config: InvokeStageConfig | None = None,
) -> UnifiedDocument | None:
    """Configured sources in declaration order, then ``metadata.primary``, then the first document."""
    if result is None or not result.documents:
        return None
    for source in config.sources if config else []:
        key = source.name or source.type
        for document in result.documents:
            if document.name == key or document.type == source.type:
                return document
    for document in result.documents:
        if document.metadata.get("primary") is True:
            return document
    return result.documents[0]


class DocSyncPipeline:
    """Runs the document-to-client stages in a fixed order.

    Args:
        defaults: Stage configs merged under each run's options.
        interceptors: Wrap every stage call, after the logging interceptor.
        logger: Logger for the logging interceptor; ``False`` disables it.
        registry: Adapter registry owned by this pipeline.
        client: Shared HTTP client for the invoke stage.
    """

    name = "doc-sync"

    def __init__(
        self,
        defaults: StageDefaults | None = None,
        interceptors: list[Interceptor] | None = None,
        logger: logging.Logger | bool | None = None,
        registry: AdapterRegistry | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.defaults = defaults or StageDefaults()
        self.interceptors = list(interceptors or [])
        self.logger = logger
        self.registry = registry or AdapterRegistry.default()
        self.invoke_stage = InvokeStage(self.registry, client)
        self.normalizer_stage = NormalizerStage()
        self.generator_stage = GeneratorStage()
        self.output_stage = OutputStage()

    def _interceptors(self, options: PipelineRunOptions) -> list[Interceptor]:
        target = self.logger if options.logger is None else options.logger
        chain: list[Interceptor] = []
        if target is not False:
            chain.append(logging_interceptor(target if isinstance(target, logging.Logger) else None))
        return chain + self.interceptors + list(options.interceptors)

    async def run(self, options: PipelineRunOptions | None = None) -> PipelineResult:
        options = options or PipelineRunOptions()
        context = PipelineContext.from_mapping(options.initial_context)
        interceptors = self._interceptors(options)

        invoke = merge_stage_config(self.defaults.invoke, options.invoke)
        if invoke is not None:
            await run_stage(self.invoke_stage, context, invoke, interceptors)

        if context.service_definition is None:
            primary = select_primary_document(
                context.invoke_results or context.stage_results.get(self.invoke_stage.name), invoke
            )
            if primary is not None:
                context.service_definition = primary.service_definition
                if context.raw_document is None:
                    context.raw_document = primary.raw_document
                if context.adapter_name is None:
                    context.adapter_name = primary.adapter
        if context.service_definition is None:
            raise MissingServiceError(
                "Missing service definition. Provide invoke configuration or set it on the initial context."
            )

        normalizer = merge_stage_config(self.defaults.normalizer, options.normalizer)
        await run_stage(self.normalizer_stage, context, normalizer, interceptors)

        generator = merge_stage_config(self.defaults.generator, options.generator)
        await run_stage(self.generator_stage, context, generator, interceptors)

        output = merge_stage_config(self.defaults.output, options.output)
        if output is not None:
            await run_stage(self.output_stage, context, output, interceptors)

        logger.debug("Pipeline finished with stages %s", ", ".join(context.stage_results))
        return context

    def run_sync(self, options: PipelineRunOptions | None = None) -> PipelineResult:
        """Blocking wrapper around ``run`` for callers without an event loop."""
        return asyncio.run(self.run(options))
