"""LanceDB-backed chunk table with filtered similarity search."""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import lancedb
import pyarrow as pa
from lancedb.index import IvfPq

from docarchive.exceptions import (
    NotInitializedError,
    QueryExecutionError,
    SchemaError,
    StoreConnectionError,
)

from .document import (
    METADATA_COLUMNS,
    DocumentChunk,
    DocumentMetadata,
    RetrievalConfig,
    SearchFilters,
    SearchResult,
)
from .embeddings import EmbeddingService

logger = logging.getLogger(__name__)

DOCUMENTS_TABLE = "document_chunks"
VECTOR_COLUMN = "vector"
UPSERT_BATCH_SIZE = 50

# IVF-PQ needs enough rows to train its codebooks.
MIN_ROWS_FOR_INDEX = 256

_LANCE_DISTANCE_TYPES = {"cosine": "cosine", "dot": "dot", "euclidean": "l2"}


class StoreState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    SCHEMA_READY = "schema_ready"
    READY = "ready"


@dataclass(frozen=True)
class IndexPlan:
    """Parameters for an IVF-PQ vector index."""
    num_partitions: int
    num_sub_vectors: int
    metric: str = "cosine"


def plan_vector_index(row_count: int, dimension: int) -> Optional[IndexPlan]:
    """Decide whether and how to index a table of ``row_count`` vectors.

    Returns None below MIN_ROWS_FOR_INDEX; queries then use a full scan.
    """
    if row_count < MIN_ROWS_FOR_INDEX:
        return None
    num_partitions = max(4, min(round(math.sqrt(row_count)), 100))
    num_sub_vectors = max(1, min(round(dimension / 24), 16))
    # PQ splits each vector into equal-width sub-vectors.
    while num_sub_vectors > 1 and dimension % num_sub_vectors:
        num_sub_vectors -= 1
    return IndexPlan(num_partitions=num_partitions, num_sub_vectors=num_sub_vectors)


def distance_to_score(distance: float, metric: str) -> float:
    """Map a raw distance to a similarity score in [0, 1], 1 being identical."""
    if distance is None or math.isnan(distance):
        return 0.0
    if metric in ("cosine", "dot"):
        # LanceDB reports both as 1 - similarity, in [0, 2] for unit vectors, so dot
        # is rescaled like cosine rather than clamped as a raw distance.
        score = 1.0 - distance / 2.0
    else:
        score = math.exp(-distance)
    return max(0.0, min(1.0, score))


def _quote(value: Any) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def build_where_clause(filters: Optional[SearchFilters]) -> Optional[str]:
    """Translate search filters into a conjunctive SQL predicate.

    Empty allow-lists constrain nothing. Returns None when no field is set.
    """
    if filters is None:
        return None

    conditions = []
    if filters.document_ids:
        ids = ", ".join(_quote(doc_id) for doc_id in filters.document_ids)
        conditions.append(f"document_id IN ({ids})")
    if filters.file_types:
        types = ", ".join(_quote(file_type.lstrip(".").lower()) for file_type in filters.file_types)
        conditions.append(f"file_type IN ({types})")
    if filters.language:
        conditions.append(f"language = {_quote(filters.language)}")
    if filters.date_range:
        if filters.date_range.start:
            conditions.append(f"created_at >= {_quote(filters.date_range.start)}")
        if filters.date_range.end:
            conditions.append(f"created_at <= {_quote(filters.date_range.end)}")

    return " AND ".join(conditions) if conditions else None


def chunk_table_schema(dimension: int) -> pa.Schema:
    """Arrow schema of the chunk table for vectors of ``dimension`` floats."""
    return pa.schema([
        pa.field(VECTOR_COLUMN, pa.list_(pa.float32(), dimension)),
        pa.field("document_id", pa.string()),
        pa.field("chunk_id", pa.string()),
        pa.field("chunk_index", pa.int32()),
        pa.field("content", pa.string()),
        pa.field("filename", pa.string()),
        pa.field("title", pa.string()),
        pa.field("file_type", pa.string()),
        pa.field("file_path", pa.string()),
        pa.field("language", pa.string()),
        pa.field("file_size", pa.int64()),
        pa.field("created_at", pa.string()),
        pa.field("updated_at", pa.string()),
        pa.field("file_hash", pa.string()),
        pa.field("page_number", pa.int32()),
        pa.field("start_index", pa.int32()),
        pa.field("end_index", pa.int32()),
    ])


class LanceDBVectorStore:
    """Owns the ``document_chunks`` table: schema, index, writes and search.

    Lifecycle: UNINITIALIZED -> CONNECTING -> SCHEMA_READY -> READY. Every
    public operation other than ``initialize`` requires READY. The LanceDB
    client is synchronous, so calls run in the default executor.
    """

    def __init__(
        self,
        embedding: EmbeddingService,
        db_path: str = "data/lancedb",
        table_name: str = DOCUMENTS_TABLE,
        batch_size: int = UPSERT_BATCH_SIZE,
    ):
        self.embedding = embedding
        self.db_path = db_path
        self.table_name = table_name
        self.batch_size = batch_size
        self._db = None
        self._table = None
        self._indexed = False
        self._state = StoreState.UNINITIALIZED

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state == StoreState.READY

    def _require_ready(self) -> None:
        if self._state != StoreState.READY or self._table is None:
            raise NotInitializedError("LanceDBVectorStore")

    async def _run(self, func, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, func, *args)

    # Lifecycle

    async def initialize(self) -> None:
        if self._state == StoreState.READY:
            logger.debug("LanceDBVectorStore already initialized")
            return
        if not self.embedding.is_initialized:
            raise NotInitializedError("EmbeddingService")

        logger.info(f"Initializing LanceDB at {self.db_path}")
        self._state = StoreState.CONNECTING
        try:
            self._db = await self._run(self._connect_sync)
        except Exception as e:
            self._reset()
            logger.error(f"Failed to connect to LanceDB at {self.db_path}: {e}")
            raise StoreConnectionError(f"LanceDB connection failed: {e}") from e

        try:
            self._table, created = await self._run(self._open_or_create_table_sync)
        except SchemaError:
            self._reset()
            raise
        except Exception as e:
            self._reset()
            logger.error(f"Failed to open table {self.table_name}: {e}")
            raise StoreConnectionError(f"Failed to open table {self.table_name}: {e}") from e
        self._state = StoreState.SCHEMA_READY

        if not created:
            try:
                self._indexed = await self._run(self._has_vector_index_sync)
                if not self._indexed:
                    logger.info("Creating vector index on existing table")
                    await self._create_vector_index_internal()
            except Exception:
                self._reset()
                raise

        self._state = StoreState.READY
        logger.info("LanceDBVectorStore initialized successfully")

    def _connect_sync(self):
        Path(self.db_path).mkdir(parents=True, exist_ok=True)
        return lancedb.connect(self.db_path)

    def _open_or_create_table_sync(self):
        dimension = self.embedding.dimension
        if self._table_exists_sync():
            logger.info(f"Using existing table: {self.table_name}")
            table = self._db.open_table(self.table_name)
            self._check_schema(table.schema, dimension)
            return table, False

        logger.info(f"Creating new table: {self.table_name} ({dimension} dimensions)")
        table = self._db.create_table(self.table_name, schema=chunk_table_schema(dimension))
        return table, True

    def _table_exists_sync(self) -> bool:
        page_token = None
        while True:
            response = self._db.list_tables(page_token=page_token)
            if self.table_name in response.tables:
                return True
            page_token = response.page_token
            if not page_token:
                return False

    def _check_schema(self, schema: pa.Schema, dimension: int) -> None:
        if VECTOR_COLUMN not in schema.names:
            raise SchemaError(f"Table {self.table_name} has no '{VECTOR_COLUMN}' column")
        vector_type = schema.field(VECTOR_COLUMN).type
        if not pa.types.is_fixed_size_list(vector_type):
            raise SchemaError(f"Column '{VECTOR_COLUMN}' is not a fixed-size vector column")
        if vector_type.list_size != dimension:
            raise SchemaError(
                f"Table {self.table_name} stores {vector_type.list_size}-dimensional vectors "
                f"but the embedding model produces {dimension}"
            )

    def _has_vector_index_sync(self) -> bool:
        return any(VECTOR_COLUMN in (index.columns or []) for index in self._table.list_indices())

    def _reset(self) -> None:
        self._table = None
        self._indexed = False
        self._db = None
        self._state = StoreState.UNINITIALIZED

    async def close(self) -> None:
        if self._state == StoreState.UNINITIALIZED:
            return
        logger.info("Closing LanceDB connection")
        # LanceDB releases its handles when the objects are dropped.
        self._reset()

    # Indexing

    async def _create_vector_index_internal(self) -> bool:
        """Build the vector index without checking readiness.

        Used while the store is still SCHEMA_READY during initialize().
        """
        if self._table is None:
            raise StoreConnectionError("Table is not initialized")

        row_count = await self._run(self._table.count_rows)
        plan = plan_vector_index(row_count, self.embedding.dimension)
        if plan is None:
            logger.info(f"Skipping vector index: {row_count} rows is below {MIN_ROWS_FOR_INDEX}")
            return False

        logger.info(
            f"Creating IVF-PQ index over {row_count} vectors with {plan.num_partitions} partitions "
            f"and {plan.num_sub_vectors} sub-vectors"
        )
        try:
            await self._run(lambda: self._table.create_index(
                VECTOR_COLUMN,
                config=IvfPq(
                    distance_type=plan.metric,
                    num_partitions=plan.num_partitions,
                    num_sub_vectors=plan.num_sub_vectors,
                ),
            ))
        except Exception as e:
            logger.error(f"Failed to create vector index: {e}")
            raise QueryExecutionError(f"Failed to create vector index: {e}") from e
        self._indexed = True
        logger.info("Vector index created successfully")
        return True

    async def create_vector_index(self) -> bool:
        """Build the vector index if the table holds enough rows.

        Returns True when an index was built.
        """
        self._require_ready()
        return await self._create_vector_index_internal()

    # Writes

    async def upsert_chunks(self, chunks: list[DocumentChunk]) -> int:
        """Embed and append chunks in batches; returns the number written.

        Batches are not atomic: a failure part-way leaves earlier batches in
        the table.
        """
        self._require_ready()
        if not chunks:
            return 0

        logger.info(f"Upserting {len(chunks)} document chunks")
        for i in range(0, len(chunks), self.batch_size):
            batch = chunks[i:i + self.batch_size]
            vectors = await asyncio.gather(*(self.embedding.embed_text(chunk.content) for chunk in batch))
            records = [chunk.to_record(vector) for chunk, vector in zip(batch, vectors)]
            try:
                await self._run(self._add_sync, records)
            except Exception as e:
                logger.error(f"Error upserting document chunks: {e}")
                raise QueryExecutionError(f"Failed to upsert document chunks: {e}") from e
            logger.debug(f"Upserted batch of {len(records)} chunks")

        await self._optimize()
        logger.info(f"Successfully upserted {len(chunks)} document chunks")
        return len(chunks)

    def _add_sync(self, records: list[dict[str, Any]]) -> None:
        self._table.add(pa.Table.from_pylist(records, schema=self._table.schema))

    async def _optimize(self) -> None:
        try:
            await self._run(self._table.optimize)
        except Exception as e:
            logger.warning(f"Table optimization error (non-critical): {e}")

    async def delete_document(self, document_id: str) -> int:
        """Delete every chunk of a document; returns how many were removed."""
        self._require_ready()
        predicate = f"document_id = {_quote(document_id)}"
        try:
            count = await self._run(self._table.count_rows, predicate)
            if count > 0:
                await self._run(self._table.delete, predicate)
                logger.info(f"Deleted {count} chunks for document: {document_id}")
            else:
                logger.info(f"No chunks found for document: {document_id}")
        except Exception as e:
            logger.error(f"Error deleting document {document_id}: {e}")
            raise QueryExecutionError(f"Failed to delete document {document_id}: {e}") from e
        return count

    async def delete_chunks(self, document_id: str, updated_at: str, keep: bool = False) -> int:
        """Delete the chunks of a document written at ``updated_at``.

        With ``keep=True`` the selection is inverted: every other chunk of the
        document is deleted and those written at ``updated_at`` survive.
        Returns how many rows were removed.
        """
        self._require_ready()
        operator = "!=" if keep else "="
        predicate = f"document_id = {_quote(document_id)} AND updated_at {operator} {_quote(updated_at)}"
        try:
            count = await self._run(self._table.count_rows, predicate)
            if count > 0:
                await self._run(self._table.delete, predicate)
                logger.debug(f"Deleted {count} chunks of {document_id} ({predicate})")
        except Exception as e:
            logger.error(f"Error deleting chunks of {document_id}: {e}")
            raise QueryExecutionError(f"Failed to delete chunks of {document_id}: {e}") from e
        return count

    # Reads

    async def similarity_search(
        self,
        query: str,
        config: RetrievalConfig,
        filters: Union[SearchFilters, dict[str, Any], None] = None,
    ) -> list[SearchResult]:
        self._require_ready()
        if isinstance(filters, dict):
            filters = SearchFilters.model_validate(filters)

        logger.info(f"Performing similarity search ({config.distance_metric}, k={config.k}, {config.index_type})")
        query_vector = await self.embedding.embed_text(query)
        where = build_where_clause(filters)
        try:
            rows = await self._run(self._search_sync, query_vector, config, where)
        except Exception as e:
            logger.error(f"Error performing similarity search for {query!r}: {e}")
            raise QueryExecutionError(f"Similarity search failed: {e}") from e

        results = [
            SearchResult(
                chunk=DocumentChunk.from_record(row),
                score=distance_to_score(row["_distance"], config.distance_metric),
            )
            for row in rows
        ]
        results.sort(key=lambda result: result.score, reverse=True)
        logger.info(f"Found {len(results)} matching chunks")
        return results

    def _search_sync(self, vector: list[float], config: RetrievalConfig, where: Optional[str]) -> list[dict[str, Any]]:
        query = (
            self._table.search(vector, vector_column_name=VECTOR_COLUMN)
            .distance_type(_LANCE_DISTANCE_TYPES[config.distance_metric])
            .limit(config.k)
        )
        if config.index_type == "exact":
            query = query.bypass_vector_index()
        elif self._indexed and config.refine_factor > 1:
            # Refinement re-ranks approximate index hits; a flat scan is already exact.
            query = query.refine_factor(config.refine_factor)
        if where:
            query = query.where(where, prefilter=True)
        return query.to_list()

    def _select_sync(self, columns: list[str], where: Optional[str], limit: Optional[int]) -> list[dict[str, Any]]:
        if limit is None:
            limit = self._table.count_rows(where)
            if limit == 0:
                return []
        query = self._table.search()
        if where:
            query = query.where(where)
        return query.select(columns).limit(limit).to_list()

    async def get_documents_metadata(self) -> list[DocumentMetadata]:
        """List every stored document once, in first-seen order."""
        self._require_ready()
        logger.info("Fetching documents metadata")
        try:
            rows = await self._run(self._select_sync, METADATA_COLUMNS, None, None)
        except Exception as e:
            raise QueryExecutionError(f"Failed to fetch documents metadata: {e}") from e

        documents: dict[str, DocumentMetadata] = {}
        for row in rows:
            if row["document_id"] not in documents:
                documents[row["document_id"]] = DocumentMetadata(**{c: row[c] for c in METADATA_COLUMNS})
        return list(documents.values())

    async def get_document_metadata_by_id(self, document_id: str) -> Optional[DocumentMetadata]:
        self._require_ready()
        logger.info(f"Fetching metadata for document ID: {document_id}")
        try:
            rows = await self._run(self._select_sync, METADATA_COLUMNS, f"document_id = {_quote(document_id)}", 1)
        except Exception as e:
            raise QueryExecutionError(f"Failed to fetch metadata for document ID {document_id}: {e}") from e
        if not rows:
            return None
        return DocumentMetadata(**{c: rows[0][c] for c in METADATA_COLUMNS})

    async def get_document_hash(self, document_id: str) -> Optional[str]:
        """Content hash recorded when the document was last ingested."""
        self._require_ready()
        try:
            rows = await self._run(self._select_sync, ["file_hash"], f"document_id = {_quote(document_id)}", 1)
        except Exception as e:
            raise QueryExecutionError(f"Failed to fetch hash for document ID {document_id}: {e}") from e
        return rows[0]["file_hash"] if rows else None

    async def count_rows(self, document_id: Optional[str] = None) -> int:
        self._require_ready()
        where = f"document_id = {_quote(document_id)}" if document_id else None
        try:
            return await self._run(self._table.count_rows, where)
        except Exception as e:
            raise QueryExecutionError(f"Failed to count rows: {e}") from e
