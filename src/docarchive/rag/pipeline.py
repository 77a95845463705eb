"""Document ingestion: load, chunk, embed and store files."""

import asyncio
import hashlib
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from docarchive.exceptions import EmptyDocumentError, NotInitializedError

from .chunking import RecursiveChunker
from .document import DocumentChunk, LoadedSegment, generate_document_id
from .embeddings import EmbeddingService
from .loaders import LoaderRegistry
from .vectorstore import LanceDBVectorStore

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"


def title_from_filename(filename: str) -> str:
    """Turn ``quarterly_report-draftV2.pdf`` into ``Quarterly Report Draft V2``."""
    title = Path(filename).stem
    title = re.sub(r"[-_]", " ", title)
    title = re.sub(r"([a-z])([A-Z])", r"\1 \2", title)
    return re.sub(r"\b\w", lambda m: m.group().upper(), title)


def hash_file(file_path: str) -> str:
    """MD5 of the file contents, used for change detection."""
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()


def _timestamp(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DocumentPipeline:
    """Turns files into stored chunks.

    A document is identified by its absolute path. Writes for the same
    document are serialized; different documents proceed concurrently.

    Example:
        ```python
        pipeline = DocumentPipeline(embedding, store)
        await pipeline.initialize()

        chunks = await pipeline.process_document("docs/report.pdf")
        await pipeline.delete_document("docs/report.pdf")
        ```
    """

    def __init__(
        self,
        embedding: EmbeddingService,
        store: LanceDBVectorStore,
        chunker: Optional[RecursiveChunker] = None,
        loaders: Optional[LoaderRegistry] = None,
        skip_unchanged: bool = True,
    ):
        """Initialize the pipeline.

        Args:
            embedding: Embedding service shared with the store
            store: Vector store receiving the chunks
            chunker: Text splitter (default: RecursiveChunker(1000, 200))
            loaders: Extension -> loader table (default: built-in loaders)
            skip_unchanged: Skip reprocessing when the content hash is unchanged
        """
        self.embedding = embedding
        self.store = store
        self.chunker = chunker or RecursiveChunker()
        self.loaders = loaders or LoaderRegistry()
        self.skip_unchanged = skip_unchanged
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_timestamp = ""
        self._ready = False

    @property
    def is_initialized(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        if self._ready:
            return
        if not self.embedding.is_initialized:
            raise NotInitializedError("EmbeddingService")
        if not self.store.is_initialized:
            raise NotInitializedError("LanceDBVectorStore")
        self._ready = True
        logger.info(f"DocumentPipeline initialized (extensions: {', '.join(self.loaders.extensions)})")

    def _require_ready(self) -> None:
        if not self._ready:
            raise NotInitializedError("DocumentPipeline")

    def _next_timestamp(self) -> str:
        # Timestamps tell one ingestion of a document from the next, so they
        # must strictly increase.
        timestamp = _timestamp()
        if timestamp <= self._last_timestamp:
            last = datetime.fromisoformat(self._last_timestamp.replace("Z", "+00:00"))
            timestamp = _timestamp(last + timedelta(milliseconds=1))
        self._last_timestamp = timestamp
        return timestamp

    def _lock(self, document_id: str) -> asyncio.Lock:
        if document_id not in self._locks:
            self._locks[document_id] = asyncio.Lock()
        return self._locks[document_id]

    async def process_document(self, file_path: str) -> list[DocumentChunk]:
        """Load, chunk, embed and store one file.

        A file that is already stored has its previous chunks replaced: the
        new set is written first and the old one removed afterwards, so a
        failed write leaves the previous chunks in place.

        Returns:
            The chunks written, indexed 0..n-1 across the whole document

        Raises:
            UnsupportedFileTypeError: No loader for the file extension
            EmptyDocumentError: The loader produced no text
        """
        self._require_ready()
        path = os.path.abspath(file_path)
        document_id = generate_document_id(path)
        async with self._lock(document_id):
            return await self._process(path, document_id)

    async def delete_document(self, file_path: str) -> int:
        """Delete every chunk stored for a file; returns the number removed."""
        self._require_ready()
        path = os.path.abspath(file_path)
        document_id = generate_document_id(path)
        logger.info(f"Deleting document: {os.path.basename(path)} ({document_id})")
        async with self._lock(document_id):
            return await self.store.delete_document(document_id)

    async def reprocess_document(self, file_path: str) -> Optional[list[DocumentChunk]]:
        """Replace the stored chunks of a changed file.

        Returns None when ``skip_unchanged`` is on and the file content
        matches the hash recorded at the last ingestion. Otherwise the old
        chunks are deleted before the file is processed again.
        """
        self._require_ready()
        path = os.path.abspath(file_path)
        document_id = generate_document_id(path)
        async with self._lock(document_id):
            if self.skip_unchanged:
                loop = asyncio.get_event_loop()
                current_hash = await loop.run_in_executor(None, hash_file, path)
                stored_hash = await self.store.get_document_hash(document_id)
                if stored_hash == current_hash:
                    logger.info(f"Document unchanged, skipping: {os.path.basename(path)}")
                    return None
            await self.store.delete_document(document_id)
            return await self._process(path, document_id)

    async def _process(self, path: str, document_id: str) -> list[DocumentChunk]:
        filename = os.path.basename(path)
        logger.info(f"Processing document: {filename} ({document_id})")
        loop = asyncio.get_event_loop()
        timestamp = self._next_timestamp()
        written = False
        try:
            file_size = (await loop.run_in_executor(None, os.stat, path)).st_size
            file_hash = await loop.run_in_executor(None, hash_file, path)
            segments = await loop.run_in_executor(None, self.loaders.load, path)
            if not segments or not any(segment.text.strip() for segment in segments):
                raise EmptyDocumentError(path)

            chunks = self._build_chunks(segments, path, document_id, file_size, file_hash, timestamp)
            if not chunks:
                raise EmptyDocumentError(path)

            written = True
            await self.store.upsert_chunks(chunks)
            replaced = await self.store.delete_chunks(document_id, timestamp, keep=True)
            if replaced:
                logger.info(f"Replaced {replaced} previous chunks of {filename}")
        except Exception as e:
            logger.error(f"Error processing document {path}: {e}")
            if written:
                await self._rollback(document_id, timestamp)
            raise

        logger.info(f"Document processed successfully: {filename} ({len(chunks)} chunks)")
        return chunks

    async def _rollback(self, document_id: str, timestamp: str) -> None:
        # Only rows from this attempt carry its timestamp.
        try:
            await self.store.delete_chunks(document_id, timestamp)
        except Exception as e:
            logger.warning(f"Failed to remove partial chunks of {document_id}: {e}")

    def _build_chunks(
        self,
        segments: list[LoadedSegment],
        path: str,
        document_id: str,
        file_size: int,
        file_hash: str,
        timestamp: str,
    ) -> list[DocumentChunk]:
        filename = os.path.basename(path)
        title = _first_metadata(segments, "title") or title_from_filename(filename)
        language = _first_metadata(segments, "language") or DEFAULT_LANGUAGE
        file_type = Path(path).suffix.lower().lstrip(".")

        chunks = []
        for position, segment in enumerate(segments, start=1):
            page_number = segment.metadata.get("page_number")
            if page_number is None:
                page_number = position if len(segments) > 1 else 0

            for span in self.chunker.split(segment.text):
                chunk_index = len(chunks)
                chunks.append(DocumentChunk(
                    chunk_id=f"{document_id}_chunk{chunk_index}",
                    document_id=document_id,
                    chunk_index=chunk_index,
                    content=span.text,
                    filename=filename,
                    title=title,
                    file_type=file_type,
                    file_path=path,
                    language=language,
                    file_size=file_size,
                    created_at=timestamp,
                    updated_at=timestamp,
                    file_hash=file_hash,
                    page_number=page_number,
                    start_index=span.start,
                    end_index=span.end,
                ))
        logger.debug(f"Split {filename} into {len(chunks)} chunks across {len(segments)} segments")
        return chunks


def _first_metadata(segments: list[LoadedSegment], key: str) -> Optional[str]:
    for segment in segments:
        value = segment.metadata.get(key)
        if value:
            return str(value)
    return None
