"""Tests for chunk and search data structures."""

import pytest
from pydantic import ValidationError

from docarchive.rag import (
    DocumentChunk,
    DocumentMetadata,
    RetrievalConfig,
    SearchFilters,
    generate_document_id,
)


class TestDocumentId:
    """Tests for path-derived document ids."""

    def test_deterministic(self):
        """Test the same path always yields the same id."""
        assert generate_document_id("/data/report.pdf") == generate_document_id("/data/report.pdf")

    def test_format(self):
        """Test ids are doc_ plus 12 hex characters of the path's MD5."""
        doc_id = generate_document_id("/data/report.pdf")
        assert doc_id.startswith("doc_")
        assert len(doc_id) == 16
        int(doc_id[4:], 16)

    def test_known_value(self):
        assert generate_document_id("") == "doc_d41d8cd98f00"

    def test_different_paths(self):
        assert generate_document_id("/a.txt") != generate_document_id("/b.txt")


class TestDocumentChunk:
    """Tests for DocumentChunk."""

    def test_camel_case_serialization(self, make_chunk):
        """Test the protocol-facing dump uses camelCase keys."""
        data = make_chunk().model_dump(by_alias=True)

        assert data["chunkId"] == "doc_000000000001_chunk0"
        assert data["documentId"] == "doc_000000000001"
        assert data["pageNumber"] == 0
        assert "chunk_id" not in data

    def test_accepts_camel_case_input(self, make_chunk):
        data = make_chunk().model_dump(by_alias=True)
        assert DocumentChunk.model_validate(data) == make_chunk()

    def test_to_record(self, make_chunk):
        """Test table records are snake_case and carry the vector."""
        record = make_chunk().to_record([0.1, 0.2])

        assert record["vector"] == [0.1, 0.2]
        assert record["chunk_id"] == "doc_000000000001_chunk0"
        assert record["file_hash"] == "0" * 32

    def test_from_record_ignores_extra_columns(self, make_chunk):
        """Test vector and distance columns are dropped when reading rows."""
        chunk = make_chunk(content="hello")
        record = chunk.to_record([1.0, 0.0])
        record["_distance"] = 0.25

        assert DocumentChunk.from_record(record) == chunk

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            DocumentChunk(chunk_id="c", document_id="d", chunk_index=0, content="x")


class TestRetrievalConfig:
    """Tests for RetrievalConfig."""

    def test_defaults(self):
        config = RetrievalConfig()
        assert config.index_type == "approximate"
        assert config.k == 10
        assert config.distance_metric == "cosine"
        assert config.refine_factor == 1

    def test_frozen(self):
        """Test configs cannot be mutated after creation."""
        config = RetrievalConfig()
        with pytest.raises(ValidationError):
            config.k = 5

    @pytest.mark.parametrize("field,value", [
        ("k", 0),
        ("refine_factor", 0),
        ("index_type", "fuzzy"),
        ("distance_metric", "manhattan"),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            RetrievalConfig(**{field: value})

    def test_camel_case_input(self):
        config = RetrievalConfig.model_validate(
            {"indexType": "exact", "k": 5, "distanceMetric": "dot", "refineFactor": 2}
        )
        assert config.index_type == "exact"
        assert config.distance_metric == "dot"
        assert config.refine_factor == 2


class TestSearchFilters:
    """Tests for SearchFilters."""

    def test_all_optional(self):
        filters = SearchFilters()
        assert filters.document_ids is None
        assert filters.file_types is None
        assert filters.language is None
        assert filters.date_range is None

    def test_from_protocol_payload(self):
        filters = SearchFilters.model_validate({
            "fileTypes": ["pdf"],
            "documentIds": ["doc_1"],
            "dateRange": {"start": "2024-01-01"},
        })
        assert filters.file_types == ["pdf"]
        assert filters.document_ids == ["doc_1"]
        assert filters.date_range.start == "2024-01-01"
        assert filters.date_range.end is None


class TestDocumentMetadata:
    def test_dump(self):
        metadata = DocumentMetadata(
            document_id="doc_1",
            filename="a.txt",
            title="A",
            file_type="txt",
            file_path="/a.txt",
            language="en",
            file_size=3,
            created_at="2024-01-01T00:00:00.000Z",
            updated_at="2024-01-01T00:00:00.000Z",
        )
        assert metadata.model_dump(by_alias=True)["fileType"] == "txt"
