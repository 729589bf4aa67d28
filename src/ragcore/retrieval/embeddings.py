"""
Chunk Embedding Store - Per-field embedding lifecycle for chunks.

Every populated field of a chunk (content, header context, notes, details)
gets its own vector. Fields are embedded concurrently and independently: a
failure on one field is recorded in the report and never touches the
others.
"""

import asyncio
import logging
from typing import List, Optional

from ..core.exceptions import RagError
from ..core.logging import CorrelationContext
from ..core.types import (
    Chunk,
    ChunkEmbeddingReport,
    FieldEmbedding,
    FieldKind,
    FieldOutcome,
    TaskType,
)
from ..providers.gateway import EmbeddingProviderGateway
from ..storage.sqlite_store import RagStore

logger = logging.getLogger(__name__)


class ChunkEmbeddingStore:
    """
    Generates, regenerates and removes field embeddings of stored chunks.

    Example:
        >>> embeddings = ChunkEmbeddingStore(store, gateway)
        >>> report = await embeddings.embed_chunk(chunk)
        >>> report.failed
        []
    """

    def __init__(self, store: RagStore, gateway: EmbeddingProviderGateway):
        """
        Initialize the embedding store.

        Args:
            store: Persistence for chunks and vectors
            gateway: Embedding backend access
        """
        self.store = store
        self.gateway = gateway

    async def embed_chunk(
        self,
        chunk: Chunk,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> ChunkEmbeddingReport:
        """
        Embed every populated field of a persisted chunk.

        Args:
            chunk: Chunk with an assigned chunk_id
            semaphore: Optional limit on concurrent backend calls

        Returns:
            ChunkEmbeddingReport with one outcome per attempted field
        """
        fields = chunk.populated_fields()
        outcomes: List[FieldOutcome] = []

        if FieldKind.CONTENT not in fields:
            outcomes.append(FieldOutcome(
                field=FieldKind.CONTENT,
                success=False,
                error_kind="ValueError",
                message="Chunk content is empty",
            ))

        outcomes.extend(await asyncio.gather(*(
            self._embed_field(chunk, kind, semaphore) for kind in fields
        )))
        outcomes.sort(key=lambda o: list(FieldKind).index(o.field))

        report = ChunkEmbeddingReport(chunk_id=chunk.chunk_id, outcomes=outcomes)
        if report.failed:
            logger.warning(
                f"Chunk {chunk.chunk_id}: embedded {len(report.succeeded)} fields, "
                f"failed {[f.value for f in report.failed]}"
            )
        else:
            logger.debug(f"Chunk {chunk.chunk_id}: embedded {len(report.succeeded)} fields")
        return report

    async def _embed_field(
        self,
        chunk: Chunk,
        kind: FieldKind,
        semaphore: Optional[asyncio.Semaphore],
    ) -> FieldOutcome:
        text = chunk.field_text(kind)

        with CorrelationContext(chunk_id=chunk.chunk_id, field=kind.value):
            try:
                if semaphore is not None:
                    async with semaphore:
                        result = await self.gateway.embed(text, TaskType.EMBEDDING)
                else:
                    result = await self.gateway.embed(text, TaskType.EMBEDDING)

                self.store.upsert_embedding(FieldEmbedding(
                    chunk_id=chunk.chunk_id,
                    field=kind,
                    vector=result.vector,
                    model=result.model,
                    provider=result.provider,
                    synthetic=result.synthetic,
                ))
            except RagError as e:
                logger.warning(f"Failed to embed {kind.value} of chunk {chunk.chunk_id}: {e}")
                return FieldOutcome(
                    field=kind,
                    success=False,
                    error_kind=type(e).__name__,
                    message=str(e),
                )

        return FieldOutcome(field=kind, success=True, synthetic=result.synthetic)

    async def update_chunk_field(
        self,
        chunk_id: int,
        kind: FieldKind,
        text: Optional[str],
    ) -> FieldOutcome:
        """
        Replace one field's text and regenerate only that field's embedding.

        Blank text on an optional field (header context, notes, details)
        removes the field and its embedding. When regeneration fails the
        previous vector is removed so it cannot match text it no longer
        describes.

        Args:
            chunk_id: Chunk to update
            kind: Field to replace
            text: New text

        Returns:
            FieldOutcome for the field

        Raises:
            ValueError: If the content field would become blank
            ChunkNotFoundError: If the chunk does not exist
        """
        blank = not text or not text.strip()
        if kind == FieldKind.CONTENT and blank:
            raise ValueError("Chunk content cannot be blank")

        chunk = self.store.update_chunk_field(chunk_id, kind, None if blank else text)

        if blank:
            removed = self.store.delete_embedding(chunk_id, kind)
            logger.info(f"Cleared {kind.value} of chunk {chunk_id}")
            return FieldOutcome(field=kind, success=True, removed=removed)

        outcome = await self._embed_field(chunk, kind, None)
        if not outcome.success:
            self.store.delete_embedding(chunk_id, kind)
        return outcome

    def delete_chunk(self, chunk_id: int) -> None:
        """
        Delete a chunk together with all its field embeddings.

        Raises:
            ChunkNotFoundError: If the chunk does not exist
        """
        self.store.delete_chunk(chunk_id)
        logger.info(f"Deleted chunk {chunk_id}")

    async def embed_missing_fields(
        self,
        document_id: int,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> List[ChunkEmbeddingReport]:
        """
        Re-attempt fields that have text but no stored embedding.

        Args:
            document_id: Document whose chunks to repair
            semaphore: Optional limit on concurrent backend calls

        Returns:
            Reports for chunks that had missing fields
        """
        reports = []
        for chunk in self.store.list_chunks(document_id):
            existing = self.store.get_embeddings(chunk.chunk_id)
            missing = [k for k in chunk.populated_fields() if k not in existing]
            if not missing:
                continue

            outcomes = await asyncio.gather(*(
                self._embed_field(chunk, kind, semaphore) for kind in missing
            ))
            reports.append(ChunkEmbeddingReport(chunk_id=chunk.chunk_id, outcomes=list(outcomes)))

        logger.info(f"Repaired embeddings for {len(reports)} chunks of document {document_id}")
        return reports
