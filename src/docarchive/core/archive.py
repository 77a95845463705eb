"""
The document archive: every service, wired together.
"""

from pathlib import Path
from typing import Any, Iterable, Optional

from docarchive.core.readiness import ReadinessManager, ServiceReadinessStatus
from docarchive.rag.base import BaseEmbedding
from docarchive.rag.chunking import RecursiveChunker
from docarchive.rag.document import (
    DocumentChunk,
    DocumentMetadata,
    RetrievalConfig,
    SearchFilters,
    SearchResult,
)
from docarchive.rag.embeddings import EmbeddingService, create_embedding_model
from docarchive.rag.loaders import LoaderRegistry
from docarchive.rag.pipeline import DocumentPipeline
from docarchive.rag.retrieval import get_retrieval_config
from docarchive.rag.vectorstore import LanceDBVectorStore
from docarchive.utils.config import ArchiveConfig, load_config
from docarchive.utils.logging import get_logger, set_log_level
from docarchive.watch.watcher import DirectoryWatcher

logger = get_logger(__name__)


class DocumentArchive:
    """
    Builds each archive service once and exposes the operations callers use.

    Every operation except ``get_retrieval_config`` requires the startup
    sequence to have completed and raises NotInitializedError otherwise.

    Example:
        ```python
        config = ArchiveConfig(document_directories=["docs"])
        async with DocumentArchive(config) as archive:
            results = await archive.search("solar panel efficiency", intent="statistical_data")
        ```
    """

    def __init__(
        self,
        config: ArchiveConfig | None = None,
        embedding_model: BaseEmbedding | None = None,
        loaders: LoaderRegistry | None = None,
    ):
        self.config = config or ArchiveConfig()
        set_log_level(self.config.log_level)

        self.embedding = EmbeddingService(
            embedding_model or create_embedding_model(self.config),
            default_dimension=self.config.embedding_dimension,
        )
        self.store = LanceDBVectorStore(self.embedding, db_path=self.config.lancedb_path)
        self.pipeline = DocumentPipeline(
            self.embedding,
            self.store,
            chunker=RecursiveChunker(
                chunk_size=self.config.chunk_size,
                chunk_overlap=self.config.chunk_overlap,
                separators=self.config.chunk_separators,
            ),
            loaders=loaders,
            skip_unchanged=self.config.skip_unchanged,
        )
        self.watcher = DirectoryWatcher(
            self.pipeline,
            extensions=self.config.file_extensions,
            depth=self.config.watch_depth,
            debounce_ms=self.config.watch_debounce_ms,
            stability_ms=self.config.write_stability_ms,
            poll_interval_ms=self.config.write_poll_interval_ms,
            watch_existing_files=self.config.watch_existing_files,
        )
        self.readiness = ReadinessManager(self.embedding, self.store, self.pipeline, self.watcher)

    @classmethod
    def from_config_file(cls, path: str | Path | None = None, **kwargs: Any) -> "DocumentArchive":
        return cls(load_config(path), **kwargs)

    # Lifecycle

    async def start(self, directories: Iterable[str] | None = None) -> None:
        """Initialize every service, then watch the document directories.

        Args:
            directories: Directories to watch; defaults to the configured ones
        """
        if directories is None:
            directories = self.config.document_directories
        await self.readiness.initialize(directories)

    async def wait_for_ready(self, timeout: float | None = None) -> None:
        await self.readiness.wait_for_ready(timeout if timeout is not None else self.config.ready_timeout)

    @property
    def is_ready(self) -> bool:
        return self.readiness.is_ready

    @property
    def status(self) -> ServiceReadinessStatus:
        return self.readiness.status

    async def shutdown(self) -> None:
        """Stop the watcher, then close the store. A failing step does not skip the next."""
        logger.info("Shutting down document archive")
        try:
            await self.watcher.stop_watching()
        except Exception as e:
            logger.error(f"Error stopping directory watcher: {e}")
        try:
            await self.store.close()
        except Exception as e:
            logger.error(f"Error closing vector store: {e}")

    async def __aenter__(self) -> "DocumentArchive":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    # Documents

    async def get_documents_metadata(self) -> list[DocumentMetadata]:
        self.readiness.require_ready()
        return await self.store.get_documents_metadata()

    async def get_document_metadata_by_id(self, document_id: str) -> Optional[DocumentMetadata]:
        self.readiness.require_ready()
        return await self.store.get_document_metadata_by_id(document_id)

    async def process_document(self, file_path: str) -> list[DocumentChunk]:
        self.readiness.require_ready()
        return await self.pipeline.process_document(file_path)

    async def delete_document(self, file_path: str) -> int:
        self.readiness.require_ready()
        return await self.pipeline.delete_document(file_path)

    async def upsert_chunks(self, chunks: list[DocumentChunk]) -> int:
        self.readiness.require_ready()
        return await self.store.upsert_chunks(chunks)

    # Search

    async def similarity_search(
        self,
        query: str,
        config: RetrievalConfig,
        filters: SearchFilters | dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        self.readiness.require_ready()
        return await self.store.similarity_search(query, config, filters)

    async def search(
        self,
        query: str,
        intent: str | None = None,
        filters: SearchFilters | dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Search with the retrieval settings tuned for a query intent."""
        return await self.similarity_search(query, get_retrieval_config(intent), filters)

    def get_retrieval_config(self, intent: str | None = None) -> RetrievalConfig:
        return get_retrieval_config(intent)
