"""Document ingestion and retrieval for the archive.

This module provides:
- Chunk, metadata and search data structures
- Embedding providers (local, OpenAI, hashed)
- A LanceDB chunk table with filtered similarity search
- Recursive chunking and file loaders
- The ingestion pipeline
- Retrieval tuning per query intent

Example:
    ```python
    from docarchive.rag import (
        DocumentPipeline,
        EmbeddingService,
        LanceDBVectorStore,
        LocalEmbedding,
        get_retrieval_config,
    )

    embedding = EmbeddingService(LocalEmbedding())
    await embedding.initialize()
    store = LanceDBVectorStore(embedding, db_path="data/lancedb")
    await store.initialize()

    pipeline = DocumentPipeline(embedding, store)
    await pipeline.initialize()
    await pipeline.process_document("docs/report.pdf")

    results = await store.similarity_search(
        "quarterly revenue", get_retrieval_config("statistical_data")
    )
    ```
"""

# Data structures
from .document import (
    DateRange,
    DocumentChunk,
    DocumentMetadata,
    LoadedSegment,
    RetrievalConfig,
    SearchFilters,
    SearchResult,
    generate_document_id,
)

# Base classes
from .base import BaseEmbedding, BaseLoader

# Embedding providers
from .embeddings import (
    EmbeddingService,
    HashEmbedding,
    LocalEmbedding,
    OpenAIEmbedding,
    create_embedding_model,
)

# Vector store
from .vectorstore import (
    LanceDBVectorStore,
    StoreState,
    build_where_clause,
    distance_to_score,
    plan_vector_index,
)

# Chunking and loading
from .chunking import RecursiveChunker, TextSpan
from .loaders import (
    CsvLoader,
    DocxLoader,
    JsonLoader,
    LoaderRegistry,
    PdfLoader,
    TextLoader,
)

# Pipeline
from .pipeline import DocumentPipeline, title_from_filename

# Retrieval policy
from .retrieval import INTENT_TYPES, RETRIEVAL_CONFIGS, get_retrieval_config

__all__ = [
    # Data structures
    "DateRange",
    "DocumentChunk",
    "DocumentMetadata",
    "LoadedSegment",
    "RetrievalConfig",
    "SearchFilters",
    "SearchResult",
    "generate_document_id",
    # Base classes
    "BaseEmbedding",
    "BaseLoader",
    # Embeddings
    "EmbeddingService",
    "HashEmbedding",
    "LocalEmbedding",
    "OpenAIEmbedding",
    "create_embedding_model",
    # Vector store
    "LanceDBVectorStore",
    "StoreState",
    "build_where_clause",
    "distance_to_score",
    "plan_vector_index",
    # Chunking and loading
    "RecursiveChunker",
    "TextSpan",
    "CsvLoader",
    "DocxLoader",
    "JsonLoader",
    "LoaderRegistry",
    "PdfLoader",
    "TextLoader",
    # Pipeline
    "DocumentPipeline",
    "title_from_filename",
    # Retrieval
    "INTENT_TYPES",
    "RETRIEVAL_CONFIGS",
    "get_retrieval_config",
]
