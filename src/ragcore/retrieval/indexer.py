"""
Indexer - Ingest documents into chunks with per-field embeddings.

Workflow per document:
0. Extract text when ingesting a file (PDF, Word, plain text)
1. Mark the document PROCESSING
2. Normalize and chunk the text
3. Persist all chunks in one transaction
4. Embed every chunk field (bounded concurrency, failures isolated per field)
5. Mark the document COMPLETED, or FAILED if ingestion aborted
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional, Set, Union

from ..core.exceptions import RagError
from ..core.logging import CorrelationContext
from ..core.types import Document, DocumentStatus, IngestionReport, utc_now
from ..core.utils import normalize_text
from ..storage.sqlite_store import RagStore
from .chunker import DocumentChunker
from .embeddings import ChunkEmbeddingStore
from .extraction import read_document

logger = logging.getLogger(__name__)


class DocumentIndexer:
    """
    Runs the ingestion flow for documents.

    Example:
        >>> indexer = DocumentIndexer(store, embeddings, DocumentChunker())
        >>> report = await indexer.add_document("guide.md", text, notes="v2")
        >>> report.status
        <DocumentStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        store: RagStore,
        embeddings: ChunkEmbeddingStore,
        chunker: Optional[DocumentChunker] = None,
        embed_concurrency: int = 4,
        normalize: bool = True,
    ):
        """
        Initialize the indexer.

        Args:
            store: Persistence for documents and chunks
            embeddings: Field embedding generation
            chunker: Document chunker (uses default policy if not provided)
            embed_concurrency: Maximum concurrent backend calls per document
            normalize: Whether to normalize whitespace before chunking
        """
        if embed_concurrency <= 0:
            raise ValueError("embed_concurrency must be positive")
        self.store = store
        self.embeddings = embeddings
        self.chunker = chunker or DocumentChunker()
        self.embed_concurrency = embed_concurrency
        self.normalize = normalize
        self._tasks: Set[asyncio.Task] = set()

    def create_document(
        self,
        file_name: str,
        content: str,
        path: Optional[str] = None,
        content_type: Optional[str] = None,
        notes: Optional[str] = None,
        details: Optional[str] = None,
        size: Optional[int] = None,
    ) -> Document:
        """Persist a new PENDING document without processing it."""
        document = Document(
            document_id=None,
            file_name=file_name,
            content=content,
            path=path,
            content_type=content_type,
            size=size if size is not None else len(content.encode("utf-8")),
            notes=notes,
            details=details,
        )
        document = self.store.create_document(document)
        logger.info(f"Created document {document.document_id}: {file_name}")
        return document

    async def add_document(
        self,
        file_name: str,
        content: str,
        path: Optional[str] = None,
        content_type: Optional[str] = None,
        notes: Optional[str] = None,
        details: Optional[str] = None,
        size: Optional[int] = None,
    ) -> IngestionReport:
        """Create a document and ingest it immediately."""
        document = self.create_document(file_name, content, path, content_type, notes, details, size)
        return await self.ingest_document(document.document_id)

    async def add_file(
        self,
        file_path: Union[str, Path],
        path: Optional[str] = None,
        content_type: Optional[str] = None,
        notes: Optional[str] = None,
        details: Optional[str] = None,
    ) -> IngestionReport:
        """
        Extract text from a file on disk and ingest it.

        Args:
            file_path: File to read
            path: Logical location to record (defaults to the file path)
            content_type: MIME type (guessed from the extension if not given)
            notes: Notes copied to every chunk
            details: Details copied to every chunk

        Returns:
            IngestionReport for the run

        Raises:
            UnsupportedContentTypeError: If the file type has no extractor
            ExtractionError: If the file cannot be read or parsed
        """
        file_path = Path(file_path)
        extracted = read_document(file_path, content_type)
        return await self.add_document(
            file_name=file_path.name,
            content=extracted.text,
            path=path or str(file_path),
            content_type=extracted.content_type,
            notes=notes,
            details=details,
            size=extracted.size,
        )

    async def ingest_document(self, document_id: int) -> IngestionReport:
        """
        Chunk and embed a stored document.

        Failures of individual field embeddings do not fail the document;
        they are counted in the report. A failure before every chunk was
        attempted marks the document FAILED.

        Args:
            document_id: Document to process

        Returns:
            IngestionReport for the run

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.store.get_document(document_id)
        start_time = time.time()
        report = IngestionReport(document_id=document_id, status=DocumentStatus.PROCESSING)

        with CorrelationContext(document_id=document_id):
            logger.info(f"Ingesting document {document_id} ({document.file_name})")
            self.store.update_document_status(document_id, DocumentStatus.PROCESSING)

            try:
                text = normalize_text(document.content) if self.normalize else document.content
                records = self.chunker.chunk(text, notes=document.notes, details=document.details)
                if not records:
                    logger.warning(f"Document {document_id} produced no chunks")

                chunks = self.store.create_chunks(
                    document_id, [record.to_chunk(document_id) for record in records]
                )
                report.chunks_created = len(chunks)

                semaphore = asyncio.Semaphore(self.embed_concurrency)
                chunk_reports = await asyncio.gather(*(
                    self.embeddings.embed_chunk(chunk, semaphore) for chunk in chunks
                ))
            except RagError as e:
                logger.error(f"Ingestion of document {document_id} failed: {e}")
                self.store.update_document_status(document_id, DocumentStatus.FAILED)
                report.status = DocumentStatus.FAILED
                report.errors.append(str(e))
                report.duration_seconds = round(time.time() - start_time, 2)
                return report
            except Exception:
                logger.exception(f"Unexpected error ingesting document {document_id}")
                self.store.update_document_status(document_id, DocumentStatus.FAILED)
                raise

            report.chunk_reports = list(chunk_reports)
            report.embeddings_created = sum(len(r.succeeded) for r in chunk_reports)
            report.embeddings_failed = sum(len(r.failed) for r in chunk_reports)

            self.store.update_document_status(
                document_id, DocumentStatus.COMPLETED, processed_at=utc_now()
            )
            report.status = DocumentStatus.COMPLETED
            report.duration_seconds = round(time.time() - start_time, 2)

            logger.info(
                f"Document {document_id} complete: "
                f"{report.chunks_created} chunks, "
                f"{report.embeddings_created} embeddings, "
                f"{report.embeddings_failed} failed fields"
            )

        return report

    def schedule(self, document_id: int) -> asyncio.Task:
        """
        Start ingestion as a background task on the running loop.

        Returns:
            The task; its result is the IngestionReport
        """
        task = asyncio.create_task(
            self.ingest_document(document_id),
            name=f"ingest-document-{document_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_pending(self) -> List[IngestionReport]:
        """Await every scheduled ingestion still running."""
        if not self._tasks:
            return []
        return list(await asyncio.gather(*list(self._tasks)))

    async def reindex_document(
        self,
        document_id: int,
        content: Optional[str] = None,
        notes: Optional[str] = None,
        details: Optional[str] = None,
    ) -> IngestionReport:
        """
        Rebuild a document's chunks and embeddings.

        Args:
            document_id: Document to rebuild
            content: Replacement text (keeps the current text if None)
            notes: Replacement notes (keeps the current notes if None)
            details: Replacement details (keeps the current details if None)

        Returns:
            IngestionReport for the new run

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.store.get_document(document_id)
        removed = self.store.replace_document_content(
            document_id,
            content if content is not None else document.content,
            notes=notes if notes is not None else document.notes,
            details=details if details is not None else document.details,
        )
        logger.info(f"Re-indexing document {document_id}, removed {removed} chunks")
        return await self.ingest_document(document_id)

    async def repair_document(self, document_id: int) -> IngestionReport:
        """
        Retry field embeddings that failed during an earlier ingestion.

        Chunks are left untouched; only fields with text but no stored
        vector are embedded again.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.store.get_document(document_id)
        start_time = time.time()

        with CorrelationContext(document_id=document_id):
            semaphore = asyncio.Semaphore(self.embed_concurrency)
            chunk_reports = await self.embeddings.embed_missing_fields(document_id, semaphore)

        return IngestionReport(
            document_id=document_id,
            status=document.status,
            chunks_created=0,
            embeddings_created=sum(len(r.succeeded) for r in chunk_reports),
            embeddings_failed=sum(len(r.failed) for r in chunk_reports),
            chunk_reports=chunk_reports,
            duration_seconds=round(time.time() - start_time, 2),
        )

    def delete_document(self, document_id: int) -> None:
        """
        Delete a document with its chunks and embeddings.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        self.store.delete_document(document_id)
