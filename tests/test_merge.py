import logging

import pytest

from api_doc_sync.errors import MergeError
from api_doc_sync.merge import detect_merge_strategy, merge_documents, merge_swagger_documents


def _doc(paths, **extra):
    return {"openapi": "3.0.0", "paths": paths, **extra}


class TestMergeDocuments:
    def test_empty_list_fails(self):
        with pytest.raises(MergeError, match="No documents"):
            merge_documents([])

    def test_first(self):
        assert merge_documents([{"a": 1}, {"b": 2}], "first") == {"a": 1}

    def test_json_array(self):
        assert merge_documents([{"a": 1}, {"b": 2}], "json-array") == [{"a": 1}, {"b": 2}]

    def test_custom_function(self):
        assert merge_documents([1, 2, 3], lambda docs: sum(docs)) == 6

    def test_swagger_requires_paths(self):
        with pytest.raises(MergeError, match="not all documents"):
            merge_documents([_doc({}), {"item": []}], "swagger")

    def test_unknown_strategy(self):
        with pytest.raises(MergeError):
            merge_documents([{}], "zip")

    def test_single_document_identity(self):
        doc = _doc({"/a": {"get": {"operationId": "a"}}}, components={"schemas": {"A": {"type": "string"}}})
        assert merge_documents([doc]) == doc
        assert merge_documents([doc], "swagger") == doc


class TestDetectStrategy:
    def test_single(self):
        assert detect_merge_strategy([{"x": 1}]) == "first"

    def test_all_have_paths(self):
        assert detect_merge_strategy([_doc({}), _doc({})]) == "swagger"

    def test_mixed(self):
        assert detect_merge_strategy([_doc({}), {"x": 1}]) == "json-array"


class TestMergeSwagger:
    def test_paths_merged_later_wins(self, caplog):
        first = _doc({"/a": {"get": {"operationId": "old"}, "post": {"operationId": "create"}}})
        second = _doc({"/a": {"get": {"operationId": "new"}}, "/b": {"get": {"operationId": "b"}}})
        with caplog.at_level(logging.WARNING, logger="api_doc_sync.merge"):
            merged = merge_swagger_documents([first, second])
        assert merged["paths"]["/a"]["get"]["operationId"] == "new"
        assert merged["paths"]["/a"]["post"]["operationId"] == "create"
        assert "/b" in merged["paths"]
        assert "GET /a" in caplog.text

    def test_sections_merged_one_level_deep(self):
        first = _doc({}, components={"schemas": {"A": {"type": "string"}}, "securitySchemes": {"k": {}}})
        second = _doc({}, components={"schemas": {"B": {"type": "integer"}}})
        merged = merge_swagger_documents([first, second])
        assert set(merged["components"]["schemas"]) == {"A", "B"}
        assert "securitySchemes" in merged["components"]

    def test_definitions_gained_from_later_document(self):
        merged = merge_swagger_documents([_doc({}), _doc({}, definitions={"User": {"type": "object"}})])
        assert merged["definitions"] == {"User": {"type": "object"}}

    def test_tags_and_servers_deduplicated(self):
        first = _doc({}, tags=[{"name": "pets", "description": "old"}], servers=[{"url": "https://a"}])
        second = _doc({}, tags=[{"name": "pets", "description": "new"}, {"name": "users"}], servers=[{"url": "https://a"}])
        merged = merge_swagger_documents([first, second])
        assert merged["tags"] == [{"name": "pets", "description": "new"}, {"name": "users"}]
        assert merged["servers"] == [{"url": "https://a"}]

    def test_inputs_not_mutated(self):
        first = _doc({"/a": {"get": {}}})
        merge_swagger_documents([first, _doc({"/a": {"post": {}}})])
        assert first["paths"] == {"/a": {"get": {}}}

    @pytest.mark.parametrize("section", ["definitions", "components"])
    def test_null_section_replaced_by_later_document(self, section):
        docs = [_doc({}, **{section: None}), _doc({}, **{section: {"X": {"type": "object"}}})]
        assert merge_documents(docs, "swagger")[section] == {"X": {"type": "object"}}

    def test_non_mapping_paths_ignored(self):
        merged = merge_swagger_documents([{"paths": ["x"]}, _doc({"/a": {"get": {}}}), _doc(None)])
        assert merged["paths"] == {"/a": {"get": {}}}
