"""Run context shared by the stages of one pipeline run."""

import dataclasses
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..parser.base import GeneratedBundle, ServiceDefinition


@dataclass
class PipelineContext:
    """Mutable state handed from stage to stage; also the result of a run.

    Keys of an initial context that are not fields here land in ``extras``.
    """

    raw_document: Any = None
    service_definition: ServiceDefinition | None = None
    invoke_results: Any = None
    normalized_service: ServiceDefinition | None = None
    generated_bundle: GeneratedBundle | None = None
    adapter_name: str | None = None
    generator_name: str | None = None
    written_files: list[str] = field(default_factory=list)
    stage_results: dict[str, Any] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None = None) -> "PipelineContext":
        names = {f.name for f in dataclasses.fields(cls)}
        known = {k: v for k, v in (values or {}).items() if k in names and k != "extras"}
        extras = {k: v for k, v in (values or {}).items() if k not in names}
        extras.update((values or {}).get("extras") or {})
        return cls(**known, extras=extras)


class Stage(Protocol):
    name: str

    async def execute(self, context: PipelineContext, params: Any) -> Any: ...


@dataclass
class StageInvocation:
    stage: Stage
    context: PipelineContext
    params: Any
    stage_results: dict[str, Any]


CallNext = Callable[[StageInvocation], Awaitable[Any]]
Interceptor = Callable[[CallNext, StageInvocation], Awaitable[Any]]
