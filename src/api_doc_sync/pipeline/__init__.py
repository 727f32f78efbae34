from .config import (
    GeneratorStageConfig,
    InvokeStageConfig,
    NormalizerInput,
    NormalizerStageConfig,
    OutputStageConfig,
    PipelineRunOptions,
    StageDefaults,
    load_run_options,
    merge_stage_config,
)
from .context import PipelineContext, StageInvocation
from .core import (
    DocSyncPipeline,
    PipelineResult,
    format_for_log,
    logging_interceptor,
    run_stage,
    select_primary_document,
)
from .extensions import ExampleExtension, JsonSchemaExtension
from .stages import (
    GeneratorStage,
    InvokeSourceError,
    InvokeStage,
    InvokeStageResult,
    NormalizerStage,
    OutputStage,
    UnifiedDocument,
)
