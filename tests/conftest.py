"""
Test configuration and fixtures.
"""

import pytest

from docarchive.rag import (
    DocumentChunk,
    DocumentPipeline,
    EmbeddingService,
    HashEmbedding,
    LanceDBVectorStore,
    RecursiveChunker,
)

DIMENSION = 64


@pytest.fixture
async def embedding():
    """Initialized embedding service over the deterministic hash model."""
    service = EmbeddingService(HashEmbedding(dimension=DIMENSION))
    await service.initialize()
    return service


@pytest.fixture
async def store(embedding, tmp_path):
    """Ready LanceDB store in a temp directory."""
    store = LanceDBVectorStore(embedding, db_path=str(tmp_path / "lancedb"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def pipeline(embedding, store):
    """Ready pipeline with small chunks."""
    pipeline = DocumentPipeline(embedding, store, chunker=RecursiveChunker(chunk_size=200, chunk_overlap=40))
    await pipeline.initialize()
    return pipeline


@pytest.fixture
def make_chunk():
    """Factory for chunks with sensible defaults."""
    def _make(document_id: str = "doc_000000000001", chunk_index: int = 0, content: str = "Sample content", **overrides):
        fields = dict(
            chunk_id=f"{document_id}_chunk{chunk_index}",
            document_id=document_id,
            chunk_index=chunk_index,
            content=content,
            filename="sample.txt",
            title="Sample",
            file_type="txt",
            file_path="/data/sample.txt",
            language="en",
            file_size=len(content),
            created_at="2024-01-01T00:00:00.000Z",
            updated_at="2024-01-01T00:00:00.000Z",
            file_hash="0" * 32,
            page_number=0,
            start_index=0,
            end_index=len(content),
        )
        fields.update(overrides)
        return DocumentChunk(**fields)

    return _make
