"""
docarchive - a watched, searchable document archive.

Files in watched directories are split into overlapping chunks, embedded and
stored in a LanceDB table for similarity search tuned per query intent.
"""

__version__ = "0.1.0"

from docarchive.core.archive import DocumentArchive
from docarchive.core.readiness import InitializationState, ReadinessManager, ServiceReadinessStatus
from docarchive.exceptions import (
    ArchiveError,
    ConfigError,
    EmbeddingError,
    EmptyDocumentError,
    InitializationError,
    LoaderError,
    NotInitializedError,
    QueryExecutionError,
    ReadinessTimeoutError,
    SchemaError,
    StoreConnectionError,
    UnsupportedFileTypeError,
    WatchError,
)
from docarchive.rag import (
    DocumentChunk,
    DocumentMetadata,
    RetrievalConfig,
    SearchFilters,
    SearchResult,
    get_retrieval_config,
)
from docarchive.utils.config import ArchiveConfig, load_config

__all__ = [
    "__version__",
    # Archive
    "DocumentArchive",
    "ReadinessManager",
    "InitializationState",
    "ServiceReadinessStatus",
    # Config
    "ArchiveConfig",
    "load_config",
    # Data
    "DocumentChunk",
    "DocumentMetadata",
    "RetrievalConfig",
    "SearchFilters",
    "SearchResult",
    "get_retrieval_config",
    # Errors
    "ArchiveError",
    "ConfigError",
    "EmbeddingError",
    "EmptyDocumentError",
    "InitializationError",
    "LoaderError",
    "NotInitializedError",
    "QueryExecutionError",
    "ReadinessTimeoutError",
    "SchemaError",
    "StoreConnectionError",
    "UnsupportedFileTypeError",
    "WatchError",
]
