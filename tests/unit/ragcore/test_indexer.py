"""
Unit tests for document ingestion.

Tests for:
- Status lifecycle (PENDING -> PROCESSING -> COMPLETED / FAILED)
- Chunk and embedding counts
- Background scheduling, re-indexing, repair and deletion
"""

import asyncio
from unittest.mock import patch

import pytest

from ragcore.core.exceptions import (
    BackendUnavailableError,
    DocumentNotFoundError,
    StorageError,
    UnsupportedContentTypeError,
)
from ragcore.core.types import DocumentStatus
from ragcore.retrieval.chunker import DocumentChunker
from ragcore.retrieval.embeddings import ChunkEmbeddingStore
from ragcore.retrieval.indexer import DocumentIndexer


GUIDE = "# Setup\nInstall the package.\n# Usage\nRun the command."


@pytest.fixture
def provider(make_provider):
    return make_provider()


@pytest.fixture
def indexer(store, make_gateway, provider):
    return DocumentIndexer(
        store,
        ChunkEmbeddingStore(store, make_gateway(provider)),
        DocumentChunker(),
        embed_concurrency=2,
    )


class TestIngestion:
    """Tests for add_document and ingest_document."""

    def test_create_document_is_pending(self, indexer, store):
        """Test a created document waits for processing."""
        document = indexer.create_document("guide.md", GUIDE)

        assert store.get_document(document.document_id).status == DocumentStatus.PENDING
        assert document.size == len(GUIDE.encode("utf-8"))

    def test_add_document_completes(self, indexer, store):
        """Test a successful ingestion stores chunks and every field embedding."""
        report = asyncio.run(indexer.add_document("guide.md", GUIDE, notes="Reviewed"))

        document = store.get_document(report.document_id)
        chunks = store.list_chunks(report.document_id)
        assert report.status == DocumentStatus.COMPLETED
        assert document.status == DocumentStatus.COMPLETED
        assert document.processed_at is not None
        assert report.chunks_created == 2
        assert [c.header_context for c in chunks] == ["Setup", "Usage"]
        assert all(c.notes == "Reviewed" for c in chunks)
        assert report.embeddings_created == 6
        assert report.embeddings_failed == 0
        assert store.count_embeddings(report.document_id) == 6

    def test_field_failures_do_not_fail_document(self, indexer, store, provider):
        """Test per-field failures are counted but the document completes."""
        provider.failures["Reviewed"] = BackendUnavailableError("down")

        report = asyncio.run(indexer.add_document("guide.md", GUIDE, notes="Reviewed"))

        assert report.status == DocumentStatus.COMPLETED
        assert report.embeddings_created == 4
        assert report.embeddings_failed == 2
        assert report.errors == []

    def test_non_numeric_vector_fails_one_field(self, indexer, store, provider):
        """Test a vector with a null component only fails the field it belongs to."""
        provider.vectors["Notes here"] = [None, 1.0, 2.0]

        report = asyncio.run(indexer.add_document("a.txt", "Some content.", notes="Notes here"))

        assert report.status == DocumentStatus.COMPLETED
        assert report.embeddings_created == 1
        assert report.embeddings_failed == 1
        assert store.get_document(report.document_id).status == DocumentStatus.COMPLETED

    def test_add_file(self, indexer, store, tmp_path):
        """Test a file is extracted and recorded with its type and byte size."""
        path = tmp_path / "guide.md"
        path.write_bytes(GUIDE.encode("utf-8"))

        report = asyncio.run(indexer.add_file(path, notes="Reviewed"))

        document = store.get_document(report.document_id)
        assert report.status == DocumentStatus.COMPLETED
        assert report.chunks_created == 2
        assert document.file_name == "guide.md"
        assert document.path == str(path)
        assert document.content_type == "text/markdown"
        assert document.size == len(GUIDE.encode("utf-8"))

    def test_add_file_unsupported_type(self, indexer, store, tmp_path):
        """Test an unsupported file is rejected before a document is created."""
        path = tmp_path / "diagram.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(UnsupportedContentTypeError):
            asyncio.run(indexer.add_file(path))

        assert store.list_documents() == []

    def test_empty_document_completes_without_chunks(self, indexer, store):
        """Test blank text yields no chunks and still completes."""
        report = asyncio.run(indexer.add_document("empty.txt", "   \n  "))

        assert report.status == DocumentStatus.COMPLETED
        assert report.chunks_created == 0
        assert store.list_chunks(report.document_id) == []

    def test_text_is_normalized(self, indexer, store):
        """Test line endings and inline whitespace are normalized before chunking."""
        report = asyncio.run(indexer.add_document("a.txt", "First   line\r\nsecond\tline."))

        chunk = store.list_chunks(report.document_id)[0]
        assert chunk.content == "First line\nsecond line."

    def test_storage_error_marks_failed(self, indexer, store):
        """Test a persistence failure marks the document FAILED."""
        document = indexer.create_document("guide.md", GUIDE)

        with patch.object(store, "create_chunks", side_effect=StorageError("disk full")):
            report = asyncio.run(indexer.ingest_document(document.document_id))

        assert report.status == DocumentStatus.FAILED
        assert report.errors == ["disk full"]
        assert store.get_document(document.document_id).status == DocumentStatus.FAILED

    def test_unexpected_error_marks_failed_and_raises(self, indexer, store):
        """Test an unexpected error is raised after marking the document FAILED."""
        document = indexer.create_document("guide.md", GUIDE)

        with patch.object(indexer.chunker, "chunk", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                asyncio.run(indexer.ingest_document(document.document_id))

        assert store.get_document(document.document_id).status == DocumentStatus.FAILED

    def test_missing_document(self, indexer):
        """Test ingesting an unknown document."""
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(indexer.ingest_document(12345))

    def test_invalid_concurrency(self, store, make_gateway):
        """Test a non-positive concurrency limit is rejected."""
        with pytest.raises(ValueError):
            DocumentIndexer(store, ChunkEmbeddingStore(store, make_gateway()), embed_concurrency=0)


class TestScheduling:
    """Tests for background ingestion."""

    def test_schedule_and_wait(self, indexer, store):
        """Test scheduled documents are processed in the background."""
        first = indexer.create_document("a.md", GUIDE)
        second = indexer.create_document("b.md", "Just one sentence.")

        async def _run():
            indexer.schedule(first.document_id)
            indexer.schedule(second.document_id)
            return await indexer.wait_for_pending()

        reports = asyncio.run(_run())

        assert sorted(r.document_id for r in reports) == [first.document_id, second.document_id]
        assert all(r.status == DocumentStatus.COMPLETED for r in reports)
        assert len(store.list_documents(DocumentStatus.COMPLETED)) == 2

    def test_wait_with_nothing_scheduled(self, indexer):
        """Test waiting with no pending work returns immediately."""
        assert asyncio.run(indexer.wait_for_pending()) == []


class TestMaintenance:
    """Tests for reindex, repair and delete."""

    def test_reindex_replaces_chunks(self, indexer, store):
        """Test re-indexing rebuilds chunks from new content."""
        report = asyncio.run(indexer.add_document("guide.md", GUIDE))

        rebuilt = asyncio.run(indexer.reindex_document(
            report.document_id, content="Completely new text.", notes="v2"
        ))

        chunks = store.list_chunks(report.document_id)
        assert rebuilt.status == DocumentStatus.COMPLETED
        assert [c.content for c in chunks] == ["Completely new text."]
        assert chunks[0].notes == "v2"
        assert store.count_embeddings(report.document_id) == 2

    def test_reindex_keeps_content(self, indexer, store):
        """Test re-indexing without new content rebuilds from the stored text."""
        report = asyncio.run(indexer.add_document("guide.md", GUIDE))

        rebuilt = asyncio.run(indexer.reindex_document(report.document_id))

        assert rebuilt.chunks_created == 2
        assert store.get_document(report.document_id).content == GUIDE

    def test_repair_document(self, indexer, store, provider):
        """Test repair embeds fields that failed earlier."""
        provider.failures["Install the package."] = BackendUnavailableError("down")
        report = asyncio.run(indexer.add_document("guide.md", GUIDE))
        provider.failures.clear()

        repaired = asyncio.run(indexer.repair_document(report.document_id))

        assert repaired.embeddings_created == 1
        assert repaired.embeddings_failed == 0
        assert store.count_embeddings(report.document_id) == 4

    def test_delete_document(self, indexer, store):
        """Test deletion removes the document, its chunks and embeddings."""
        report = asyncio.run(indexer.add_document("guide.md", GUIDE))

        indexer.delete_document(report.document_id)

        assert store.count_embeddings() == 0
        with pytest.raises(DocumentNotFoundError):
            store.get_document(report.document_id)
