"""Document chunk, search and retrieval data structures."""

import hashlib
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

IndexType = Literal["exact", "approximate"]
DistanceMetric = Literal["cosine", "euclidean", "dot"]

# Columns shared by every chunk of a document, in table order.
METADATA_COLUMNS = [
    "document_id",
    "filename",
    "title",
    "file_type",
    "file_path",
    "language",
    "file_size",
    "created_at",
    "updated_at",
]


def generate_document_id(file_path: str) -> str:
    """Derive the stable document id for a source path."""
    return f"doc_{hashlib.md5(file_path.encode('utf-8')).hexdigest()[:12]}"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DocumentChunk(_CamelModel):
    """A chunk of a source document, with its document metadata denormalized."""
    chunk_id: str
    document_id: str
    chunk_index: int
    content: str
    filename: str
    title: str
    file_type: str
    file_path: str
    language: str = "en"
    file_size: int = 0
    created_at: str
    updated_at: str
    file_hash: str
    page_number: int = 0
    start_index: int = 0
    end_index: int = 0

    def to_record(self, vector: list[float]) -> dict[str, Any]:
        """Convert to a chunk table row."""
        record = self.model_dump(by_alias=False)
        record["vector"] = vector
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "DocumentChunk":
        """Build a chunk from a chunk table row, ignoring vector and score columns."""
        fields = {name: record[name] for name in cls.model_fields if name in record}
        return cls(**fields)


class DocumentMetadata(_CamelModel):
    """Document-level metadata projected from its chunks."""
    document_id: str
    filename: str
    title: str
    file_type: str
    file_path: str
    language: str
    file_size: int
    created_at: str
    updated_at: str


class SearchResult(BaseModel):
    """A chunk with its normalized similarity score in [0, 1]."""
    chunk: DocumentChunk
    score: float


class RetrievalConfig(_CamelModel):
    """How a similarity search is executed."""
    model_config = ConfigDict(frozen=True)

    index_type: IndexType = "approximate"
    k: int = Field(default=10, gt=0)
    distance_metric: DistanceMetric = "cosine"
    refine_factor: int = Field(default=1, ge=1)


class DateRange(BaseModel):
    """Inclusive creation-date bounds, as ISO-8601 strings."""
    start: Optional[str] = None
    end: Optional[str] = None


class SearchFilters(_CamelModel):
    """Metadata constraints applied to a similarity search.

    Omitted fields are unconstrained; an empty list also means no constraint.
    """
    document_ids: Optional[list[str]] = None
    file_types: Optional[list[str]] = None
    language: Optional[str] = None
    date_range: Optional[DateRange] = None


class LoadedSegment(BaseModel):
    """A piece of text extracted from a file, e.g. one PDF page."""
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)

