import asyncio
import json
import logging
from pathlib import Path

import pytest
import yaml

from api_doc_sync.adapters import InvokeSourceConfig
from api_doc_sync.errors import InvokeError, MissingServiceError, ParseError, StageError
from api_doc_sync.generator.client import CodegenOptions
from api_doc_sync.output import OutputFile
from api_doc_sync.parser.base import GeneratedBundle, GeneratedFile, ServiceDefinition
from api_doc_sync.parser.swagger import parse_openapi_document
from api_doc_sync.pipeline import (
    DocSyncPipeline,
    GeneratorStageConfig,
    InvokeStageConfig,
    InvokeStageResult,
    NormalizerInput,
    NormalizerStage,
    NormalizerStageConfig,
    OutputStage,
    OutputStageConfig,
    PipelineContext,
    PipelineRunOptions,
    StageDefaults,
    UnifiedDocument,
    format_for_log,
    load_run_options,
    merge_stage_config,
    select_primary_document,
)

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def petstore_doc():
    return yaml.safe_load((FIXTURES / "petstore.yaml").read_text(encoding="utf-8"))


@pytest.fixture
def postman_doc():
    return json.loads((FIXTURES / "postman_collection.json").read_text(encoding="utf-8"))


def _invoke(*sources, **kwargs):
    return InvokeStageConfig(sources=list(sources), **kwargs)


def _run(options, **pipeline_kwargs):
    pipeline_kwargs.setdefault("logger", False)
    return DocSyncPipeline(**pipeline_kwargs).run_sync(options)


class TestPipelineRun:
    def test_end_to_end(self, petstore_doc, tmp_path):
        out = tmp_path / "client"
        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)),
            output=OutputStageConfig(output_dir=str(out)),
        )
        result = _run(options)
        assert list(result.stage_results) == ["invoke", "normalizer", "generator", "output"]
        assert result.adapter_name == "openapi"
        assert result.generator_name == "python-client"
        assert result.raw_document == petstore_doc
        assert len(result.written_files) == 7
        assert (out / "__init__.py").exists()
        assert (out / "pets" / "pet_id_get.py").read_text(encoding="utf-8").startswith(
            '"""Auto-generated for GET /pets/{petId}"""'
        )

    def test_without_output_stage(self, petstore_doc):
        result = _run(PipelineRunOptions(invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc))))
        assert "output" not in result.stage_results
        assert result.written_files == []
        assert result.generated_bundle.entrypoint == "__init__.py"

    def test_initial_context_service(self, petstore_doc):
        service = parse_openapi_document(petstore_doc)
        options = PipelineRunOptions(initial_context={"service_definition": service, "tenant": "acme"})
        result = _run(options)
        assert "invoke" not in result.stage_results
        assert result.extras == {"tenant": "acme"}
        assert result.generated_bundle is not None

    def test_missing_service_is_not_a_stage_error(self):
        with pytest.raises(MissingServiceError, match="Missing service definition"):
            _run(PipelineRunOptions())

    def test_async_run(self, petstore_doc):
        pipeline = DocSyncPipeline(logger=False)
        options = PipelineRunOptions(invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)))
        result = asyncio.run(pipeline.run(options))
        assert len(result.normalized_service.endpoints) == 4

    def test_defaults_merged_field_by_field(self, petstore_doc):
        defaults = StageDefaults(generator=GeneratorStageConfig(options=CodegenOptions(entry_file_name="client")))
        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)),
            generator=GeneratorStageConfig(skip=False),
        )
        result = _run(options, defaults=defaults)
        assert result.generated_bundle.entrypoint == "client.py"

    def test_generator_skip(self, petstore_doc):
        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)),
            generator=GeneratorStageConfig(skip=True),
        )
        result = _run(options)
        assert result.stage_results["generator"] is None
        assert result.generated_bundle is None


class TestInvokeStage:
    def test_failed_source_recorded_and_logged(self, petstore_doc, caplog):
        options = PipelineRunOptions(
            invoke=_invoke(
                InvokeSourceConfig(type="postman", name="broken", document={"nothing": True}),
                InvokeSourceConfig(type="openapi", name="pets", document=petstore_doc),
            )
        )
        with caplog.at_level(logging.WARNING, logger="api_doc_sync.pipeline.stages"):
            result = _run(options)
        invoke = result.stage_results["invoke"]
        assert [d.name for d in invoke.documents] == ["pets"]
        assert [(e.type, e.name) for e in invoke.errors] == [("postman", "broken")]
        assert isinstance(invoke.errors[0].cause, ParseError)
        assert "Source broken failed" in caplog.text
        assert result.service_definition.title == "Petstore"

    def test_fail_fast(self, petstore_doc):
        options = PipelineRunOptions(
            invoke=_invoke(
                InvokeSourceConfig(type="postman", name="broken", document={"nothing": True}),
                InvokeSourceConfig(type="openapi", document=petstore_doc),
                continue_on_error=False,
            )
        )
        with pytest.raises(StageError) as exc_info:
            _run(options)
        error = exc_info.value
        assert error.stage == "invoke"
        assert isinstance(error.cause, InvokeError)
        assert str(error).startswith('Stage invoke failed: Source "broken" failed:')
        assert error.cause.errors[0].name == "broken"

    def test_unknown_source_type(self):
        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="graphql", document={}), continue_on_error=False)
        )
        with pytest.raises(StageError, match='No adapter registered for source type "graphql"'):
            _run(options)

    def test_requires_sources(self):
        with pytest.raises(StageError, match="At least one source must be provided"):
            _run(PipelineRunOptions(invoke=_invoke()))

    def test_all_sources_failing_leaves_no_service(self):
        options = PipelineRunOptions(invoke=_invoke(InvokeSourceConfig(type="postman", document={"x": 1})))
        with pytest.raises(MissingServiceError):
            _run(options)

    def test_primary_follows_declaration_order(self, petstore_doc, postman_doc):
        options = PipelineRunOptions(
            invoke=_invoke(
                InvokeSourceConfig(type="postman", name="shop", document=postman_doc),
                InvokeSourceConfig(type="openapi", name="pets", document=petstore_doc),
            )
        )
        result = _run(options)
        assert result.service_definition.title == "Shop API"
        assert result.adapter_name == "postman"


class TestSelectPrimaryDocument:
    def _doc(self, name, doc_type="openapi", **metadata):
        service = ServiceDefinition(title=name)
        return UnifiedDocument(doc_type, name, {}, service, doc_type, metadata)

    def test_empty(self):
        assert select_primary_document(None) is None
        assert select_primary_document(InvokeStageResult()) is None

    def test_configured_source_first(self):
        result = InvokeStageResult(documents=[self._doc("a"), self._doc("b", "postman")])
        config = _invoke(InvokeSourceConfig(type="postman", name="b"), InvokeSourceConfig(type="openapi", name="a"))
        assert select_primary_document(result, config).name == "b"

    def test_metadata_primary(self):
        result = InvokeStageResult(documents=[self._doc("a"), self._doc("b", primary=True)])
        assert select_primary_document(result).name == "b"

    def test_first_document_fallback(self):
        result = InvokeStageResult(documents=[self._doc("a"), self._doc("b")])
        assert select_primary_document(result).name == "a"


class TestInterceptors:
    def test_order_and_results(self, petstore_doc):
        seen = []

        def recorder(tag):
            async def intercept(call_next, invocation):
                seen.append((tag, invocation.stage.name, sorted(invocation.stage_results)))
                return await call_next(invocation)

            return intercept

        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)),
            interceptors=[recorder("run")],
        )
        _run(options, interceptors=[recorder("pipeline")])
        assert [(tag, stage) for tag, stage, _ in seen] == [
            ("pipeline", "invoke"),
            ("run", "invoke"),
            ("pipeline", "normalizer"),
            ("run", "normalizer"),
            ("pipeline", "generator"),
            ("run", "generator"),
        ]
        assert seen[-1][2] == ["invoke", "normalizer"]

    def test_interceptor_can_short_circuit(self, petstore_doc):
        async def skip_generator(call_next, invocation):
            if invocation.stage.name == "generator":
                return "skipped"
            return await call_next(invocation)

        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)),
            interceptors=[skip_generator],
        )
        result = _run(options)
        assert result.stage_results["generator"] == "skipped"
        assert result.generated_bundle is None

    def test_logging_interceptor(self, petstore_doc, caplog):
        options = PipelineRunOptions(invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)))
        with caplog.at_level(logging.INFO, logger="api_doc_sync.pipeline.core"):
            DocSyncPipeline().run_sync(options)
        assert "[DocSyncPipeline] START stage=invoke" in caplog.text
        assert "[DocSyncPipeline] SUCCESS stage=generator" in caplog.text

    def test_logging_failure(self, petstore_doc, caplog):
        def explode(service):
            raise RuntimeError("boom")

        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)),
            normalizer=NormalizerStageConfig(transforms=[explode]),
        )
        with caplog.at_level(logging.INFO, logger="api_doc_sync.pipeline.core"):
            with pytest.raises(StageError, match="Stage normalizer failed: boom"):
                DocSyncPipeline().run_sync(options)
        failures = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert "FAIL stage=normalizer" in failures[0].getMessage()

    def test_logging_disabled_per_run(self, petstore_doc, caplog):
        options = PipelineRunOptions(
            invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)),
            logger=False,
        )
        with caplog.at_level(logging.INFO, logger="api_doc_sync.pipeline.core"):
            DocSyncPipeline().run_sync(options)
        assert "[DocSyncPipeline]" not in caplog.text

    def test_custom_logger(self, petstore_doc, caplog):
        target = logging.getLogger("tests.pipeline")
        options = PipelineRunOptions(invoke=_invoke(InvokeSourceConfig(type="openapi", document=petstore_doc)))
        with caplog.at_level(logging.INFO, logger="tests.pipeline"):
            DocSyncPipeline(logger=target).run_sync(options)
        assert any(r.name == "tests.pipeline" and "START" in r.getMessage() for r in caplog.records)


class TestNormalizerStage:
    def _execute(self, service, config):
        context = PipelineContext(service_definition=service)
        return asyncio.run(NormalizerStage().execute(context, config)), context

    def test_transforms_work_on_a_copy(self):
        service = ServiceDefinition(title="Original")

        def rename(svc):
            return svc.model_copy(update={"title": "Renamed"})

        async def add_version(svc):
            return svc.model_copy(update={"version": "2"})

        config = NormalizerStageConfig(transforms=[rename, lambda svc: None, add_version])
        result, context = self._execute(service, config)
        assert result.applied_transforms == ["rename", "transform#2", "add_version"]
        assert (result.service_definition.title, result.service_definition.version) == ("Renamed", "2")
        assert context.normalized_service is result.service_definition
        assert service.title == "Original"

    def test_extensions_keyed_by_position(self):
        config = NormalizerStageConfig(
            extensions=["json-schema", "example"],
            inputs=[
                NormalizerInput(payload={"type": "object", "properties": {"a": {"type": "string"}}}),
                NormalizerInput(payload=[1, 2]),
            ],
        )
        result, _ = self._execute(ServiceDefinition(title="T"), config)
        assert list(result.normalized_types) == ["json-schema-0-0", "example-0-1", "example-1-1"]
        assert result.normalized_types["example-1-1"].kind == "array"
        assert result.applied_extensions == ["json-schema", "example"]
        assert set(result.service_definition.types) == set(result.normalized_types)

    def test_explicit_key(self):
        config = NormalizerStageConfig(
            extensions=["example"],
            inputs=[NormalizerInput(payload={"id": 1}, key="Widget")],
        )
        result, _ = self._execute(ServiceDefinition(title="T"), config)
        assert result.service_definition.types["Widget"].kind == "object"

    def test_unknown_extension(self):
        with pytest.raises(ValueError, match="Unknown normalizer extension"):
            NormalizerStageConfig(extensions=["xml"])

    def test_skip(self):
        result, context = self._execute(ServiceDefinition(title="T"), NormalizerStageConfig(skip=True))
        assert result is None
        assert context.normalized_service is None


class TestOutputStage:
    def _bundle(self):
        return GeneratedBundle(entrypoint="a.py", files=[GeneratedFile(filename="a.py", content="x = 1\n")])

    def test_clean_removes_stale_files(self, tmp_path):
        (tmp_path / "stale.py").write_text("old")
        config = OutputStageConfig(bundle=self._bundle(), output_dir=str(tmp_path))
        result = asyncio.run(OutputStage().execute(PipelineContext(), config))
        assert result.written_files == [str(tmp_path / "a.py")]
        assert not (tmp_path / "stale.py").exists()

    def test_keep_existing_files(self, tmp_path):
        (tmp_path / "stale.py").write_text("old")
        config = OutputStageConfig(bundle=self._bundle(), output_dir=str(tmp_path), clean=False)
        asyncio.run(OutputStage().execute(PipelineContext(), config))
        assert (tmp_path / "stale.py").exists()
        assert (tmp_path / "a.py").read_text() == "x = 1\n"

    def test_custom_writer_and_mapping(self, tmp_path):
        class RecordingWriter:
            async def write_batch(self, files):
                self.files = list(files)

        writer = RecordingWriter()
        config = OutputStageConfig(
            bundle=self._bundle(),
            writer=writer,
            map_file_path=lambda f: tmp_path / "mapped" / f.filename,
            extra_files=[OutputFile(path=tmp_path / "README.md", content="hi")],
        )
        context = PipelineContext()
        asyncio.run(OutputStage().execute(context, config))
        assert [f.path for f in writer.files] == [tmp_path / "mapped" / "a.py", tmp_path / "README.md"]
        assert context.written_files == [str(tmp_path / "mapped" / "a.py"), str(tmp_path / "README.md")]

    def test_nothing_to_write(self):
        context = PipelineContext()
        result = asyncio.run(OutputStage().execute(context, OutputStageConfig(output_dir="unused")))
        assert result.written_files == []
        assert context.written_files == []


class TestFormatForLog:
    def test_scalars(self):
        assert format_for_log(None) == "None"
        assert format_for_log("hi") == "'hi'"
        assert format_for_log(True) == "True"
        assert format_for_log(1.5) == "1.5"
        assert format_for_log(ValueError("bad")) == "ValueError(bad)"

    def test_long_string_cut(self):
        assert format_for_log("x" * 100) == "'" + "x" * 77 + "...'"

    def test_containers(self):
        assert format_for_log([]) == "[]"
        assert format_for_log(list(range(7))) == "Array(7)[0, 1, 2, 3, 4, ...]"
        assert format_for_log({"a": 1, "b": "x"}) == "{a=1, b='x'}"
        assert format_for_log({}) == "{}"

    def test_models_and_dataclasses(self):
        assert format_for_log(InvokeStageResult()) == "{documents=[], errors=[]}"
        assert format_for_log(CodegenOptions()).startswith("{entry_file_name='__init__'")


class TestRunConfig:
    def test_merge_stage_config(self):
        base = OutputStageConfig(output_dir="a", clean=False)
        merged = merge_stage_config(base, OutputStageConfig(output_dir="b"))
        assert (merged.output_dir, merged.clean) == ("b", False)
        assert merge_stage_config(None, base) is base
        assert merge_stage_config(base, None) is base

    def test_load_resolves_relative_requests(self):
        options = load_run_options(FIXTURES / "run_config.yaml")
        assert options.invoke.sources[0].request == str((FIXTURES / "petstore.yaml").resolve())
        assert options.output.output_dir == "build/client"
        assert options.generator.options.entry_file_name == "__init__"

    def test_remote_requests_untouched(self, tmp_path):
        config = tmp_path / "run.yaml"
        config.write_text(
            "invoke:\n"
            "  sources:\n"
            "    - type: openapi\n"
            "      request: https://docs.test/openapi.json\n"
            "    - type: swagger\n"
            "      request:\n"
            "        requests: [a.json, https://docs.test/b.json]\n"
        )
        sources = load_run_options(config).invoke.sources
        assert sources[0].request == "https://docs.test/openapi.json"
        assert sources[1].request.requests == [str(tmp_path.resolve() / "a.json"), "https://docs.test/b.json"]

    def test_invalid_config(self, tmp_path):
        config = tmp_path / "run.yaml"
        config.write_text("invoke:\n  sources:\n    - name: missing-type\n")
        with pytest.raises(ParseError, match="Invalid run configuration"):
            load_run_options(config)

    def test_non_mapping_config(self, tmp_path):
        config = tmp_path / "run.yaml"
        config.write_text("- 1\n- 2\n")
        with pytest.raises(ParseError, match="must be a mapping"):
            load_run_options(config)

    def test_loaded_config_runs(self, tmp_path):
        options = load_run_options(FIXTURES / "run_config.yaml")
        options = options.model_copy(update={"output": options.output.model_copy(update={"output_dir": str(tmp_path)})})
        result = _run(options)
        assert (tmp_path / "pets_get.py").exists()
        assert result.service_definition.title == "Petstore"
