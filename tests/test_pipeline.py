"""Tests for the ingestion pipeline."""

import os

import pytest

from docarchive.exceptions import (
    EmptyDocumentError,
    NotInitializedError,
    QueryExecutionError,
    UnsupportedFileTypeError,
)
from docarchive.rag import (
    BaseLoader,
    DocumentPipeline,
    LoadedSegment,
    LoaderRegistry,
    RecursiveChunker,
    TextLoader,
    generate_document_id,
    get_retrieval_config,
    title_from_filename,
)

PAGE_CHARS = 2500


class FakePdfLoader(BaseLoader):
    """Three pages of 2500 characters each."""

    extensions = (".pdf",)

    def load(self, file_path: str) -> list[LoadedSegment]:
        return [
            LoadedSegment(text=(f"p{page}w " * 700)[:PAGE_CHARS], metadata={"page_number": page})
            for page in (1, 2, 3)
        ]


class SectionLoader(BaseLoader):
    """Segments without page numbers, with embedded metadata on the second."""

    extensions = (".sec",)

    def load(self, file_path: str) -> list[LoadedSegment]:
        return [
            LoadedSegment(text="Introduction section."),
            LoadedSegment(text="Methods section.", metadata={"title": "Embedded Title", "language": "fr"}),
        ]


class TestTitleFromFilename:
    @pytest.mark.parametrize("filename,title", [
        ("quarterly_report.pdf", "Quarterly Report"),
        ("climate-change-2023.txt", "Climate Change 2023"),
        ("machineLearningIntro.md", "Machine Learning Intro"),
        ("/some/dir/notes.txt", "Notes"),
    ])
    def test_transform(self, filename, title):
        assert title_from_filename(filename) == title


class TestDocumentPipeline:
    """Tests for DocumentPipeline."""

    @pytest.mark.asyncio
    async def test_requires_initialization(self, embedding, store, tmp_path):
        pipeline = DocumentPipeline(embedding, store)

        with pytest.raises(NotInitializedError):
            await pipeline.process_document(str(tmp_path / "a.txt"))
        with pytest.raises(NotInitializedError):
            await pipeline.delete_document(str(tmp_path / "a.txt"))

    @pytest.mark.asyncio
    async def test_initialize_requires_ready_store(self, embedding, tmp_path):
        from docarchive.rag import LanceDBVectorStore

        store = LanceDBVectorStore(embedding, db_path=str(tmp_path / "db"))
        with pytest.raises(NotInitializedError):
            await DocumentPipeline(embedding, store).initialize()

    @pytest.mark.asyncio
    async def test_process_text_file(self, pipeline, store, tmp_path):
        """Test a text file is chunked, stored and described correctly."""
        path = tmp_path / "solar_power-notes.txt"
        text = "\n\n".join(f"Paragraph {i} talks about photovoltaic cells and inverters." for i in range(12))
        path.write_text(text, encoding="utf-8")

        chunks = await pipeline.process_document(str(path))

        assert len(chunks) > 1
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        document_id = generate_document_id(str(path))
        for chunk in chunks:
            assert chunk.document_id == document_id
            assert chunk.chunk_id == f"{document_id}_chunk{chunk.chunk_index}"
            assert chunk.title == "Solar Power Notes"
            assert chunk.file_type == "txt"
            assert chunk.language == "en"
            assert chunk.page_number == 0
            assert chunk.file_size == os.path.getsize(path)
            assert chunk.content == text[chunk.start_index:chunk.end_index]
            assert 0 <= chunk.start_index <= chunk.end_index <= len(text)
        assert await store.count_rows(document_id) == len(chunks)

    @pytest.mark.asyncio
    async def test_relative_and_absolute_paths_share_an_id(self, pipeline, tmp_path, monkeypatch):
        path = tmp_path / "doc.txt"
        path.write_text("Some content here.")
        monkeypatch.chdir(tmp_path)

        chunks = await pipeline.process_document("doc.txt")

        assert chunks[0].document_id == generate_document_id(str(path))
        assert chunks[0].file_path == str(path)

    @pytest.mark.asyncio
    async def test_three_page_scenario(self, embedding, store, tmp_path):
        """Test three 2500-character pages give three overlapping chunks each."""
        pipeline = DocumentPipeline(
            embedding,
            store,
            chunker=RecursiveChunker(chunk_size=1000, chunk_overlap=200),
            loaders=LoaderRegistry([FakePdfLoader()]),
        )
        await pipeline.initialize()
        path = tmp_path / "paper.pdf"
        path.write_bytes(b"%PDF-stub")

        chunks = await pipeline.process_document(str(path))

        assert len(chunks) == 9
        assert [c.chunk_index for c in chunks] == list(range(9))
        assert [c.page_number for c in chunks] == [1, 1, 1, 2, 2, 2, 3, 3, 3]
        for page in range(3):
            page_chunks = chunks[page * 3:page * 3 + 3]
            assert [(c.start_index, c.end_index) for c in page_chunks] == [(0, 999), (800, 1799), (1600, 2499)]
            for previous, current in zip(page_chunks, page_chunks[1:]):
                assert 0 < previous.end_index - current.start_index <= 200

        results = await store.similarity_search("p2w p2w", get_retrieval_config("statistical_data"), {"fileTypes": ["pdf"]})
        assert results and all(r.chunk.file_type == "pdf" for r in results)

    @pytest.mark.asyncio
    async def test_segment_positions_and_embedded_metadata(self, embedding, store, tmp_path):
        """Test page numbers fall back to segment position and loader metadata wins."""
        pipeline = DocumentPipeline(embedding, store, loaders=LoaderRegistry([SectionLoader()]))
        await pipeline.initialize()
        path = tmp_path / "study.sec"
        path.write_text("ignored")

        chunks = await pipeline.process_document(str(path))

        assert [c.page_number for c in chunks] == [1, 2]
        assert {c.title for c in chunks} == {"Embedded Title"}
        assert {c.language for c in chunks} == {"fr"}

    @pytest.mark.asyncio
    async def test_unsupported_file_type(self, pipeline, store, tmp_path):
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(UnsupportedFileTypeError):
            await pipeline.process_document(str(path))
        assert await store.count_rows() == 0

    @pytest.mark.asyncio
    async def test_empty_document(self, pipeline, store, tmp_path):
        path = tmp_path / "blank.txt"
        path.write_text("   \n\n  ")

        with pytest.raises(EmptyDocumentError):
            await pipeline.process_document(str(path))
        assert await store.count_rows() == 0

    @pytest.mark.asyncio
    async def test_missing_file(self, pipeline, tmp_path):
        """Test the original error propagates unchanged."""
        with pytest.raises(FileNotFoundError):
            await pipeline.process_document(str(tmp_path / "gone.txt"))

    @pytest.mark.asyncio
    async def test_delete_document(self, pipeline, store, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("Alpha beta gamma. " * 40)
        chunks = await pipeline.process_document(str(path))

        assert await pipeline.delete_document(str(path)) == len(chunks)
        assert await store.count_rows() == 0
        assert await pipeline.delete_document(str(path)) == 0

    @pytest.mark.asyncio
    async def test_reprocess_unchanged_is_skipped(self, pipeline, store, tmp_path):
        """Test an unchanged file is not rewritten."""
        path = tmp_path / "a.txt"
        path.write_text("Stable content. " * 30)
        chunks = await pipeline.process_document(str(path))

        assert await pipeline.reprocess_document(str(path)) is None
        assert await store.count_rows() == len(chunks)

    @pytest.mark.asyncio
    async def test_reprocess_changed_file(self, pipeline, store, tmp_path):
        """Test a changed file replaces its chunks instead of adding to them."""
        path = tmp_path / "a.txt"
        path.write_text("Original content. " * 30)
        await pipeline.process_document(str(path))

        path.write_text("Rewritten content.")
        chunks = await pipeline.reprocess_document(str(path))

        assert [c.content for c in chunks] == ["Rewritten content."]
        assert await store.count_rows() == 1

    @pytest.mark.asyncio
    async def test_reprocess_is_idempotent(self, embedding, store, tmp_path):
        """Test delete-then-reinsert of an unchanged file yields the same chunks."""
        pipeline = DocumentPipeline(
            embedding, store, chunker=RecursiveChunker(chunk_size=120, chunk_overlap=20), skip_unchanged=False
        )
        await pipeline.initialize()
        path = tmp_path / "a.txt"
        path.write_text("Idempotent ingestion matters. " * 20)

        first = await pipeline.process_document(str(path))
        second = await pipeline.reprocess_document(str(path))

        assert [c.content for c in second] == [c.content for c in first]
        assert await store.count_rows() == len(first)

    @pytest.mark.asyncio
    async def test_failed_upsert_leaves_no_chunks(self, embedding, store, tmp_path, monkeypatch):
        """Test chunks from earlier batches are removed when a later batch fails."""
        pipeline = DocumentPipeline(
            embedding, store, chunker=RecursiveChunker(chunk_size=50, chunk_overlap=0), loaders=LoaderRegistry([TextLoader()])
        )
        await pipeline.initialize()
        store.batch_size = 2
        original_add = store._add_sync
        calls = []

        def flaky_add(records):
            calls.append(len(records))
            if len(calls) == 2:
                raise RuntimeError("disk full")
            original_add(records)

        monkeypatch.setattr(store, "_add_sync", flaky_add)
        path = tmp_path / "a.txt"
        path.write_text("Some words to split into many chunks. " * 10)

        with pytest.raises(QueryExecutionError):
            await pipeline.process_document(str(path))

        assert len(calls) == 2
        assert await store.count_rows() == 0

    @pytest.mark.asyncio
    async def test_process_existing_document_replaces_chunks(self, pipeline, store, tmp_path):
        """Test processing an already stored file leaves one set of chunks."""
        path = tmp_path / "a.txt"
        path.write_text("First version of the notes. " * 20)
        first = await pipeline.process_document(str(path))

        path.write_text("Second version. " * 10)
        second = await pipeline.process_document(str(path))

        document_id = generate_document_id(str(path))
        assert await store.count_rows(document_id) == len(second)
        assert second[0].updated_at > first[0].updated_at
        results = await store.similarity_search("version", get_retrieval_config("statistical_data"))
        assert all(r.chunk.content.startswith("Second") for r in results)

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_previous_chunks(self, embedding, store, tmp_path, monkeypatch):
        """Test a write that fails on its first batch does not remove the stored chunks."""
        pipeline = DocumentPipeline(embedding, store, chunker=RecursiveChunker(chunk_size=50, chunk_overlap=0))
        await pipeline.initialize()
        path = tmp_path / "a.txt"
        path.write_text("Some words to split into many chunks. " * 5)
        stored = await pipeline.process_document(str(path))

        def failing_add(records):
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "_add_sync", failing_add)
        path.write_text("Replacement text that never lands. " * 5)

        with pytest.raises(QueryExecutionError):
            await pipeline.process_document(str(path))

        assert await store.count_rows() == len(stored)
        assert await store.get_document_hash(stored[0].document_id) == stored[0].file_hash
