"""
SQLite-based store for documents, chunks, field embeddings, and cached results.

Vectors are stored as packed little-endian float32 BLOBs with an explicit
dimension column. Deleting a document cascades to its chunks and their
embeddings through foreign keys.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

from ..core.exceptions import ChunkNotFoundError, DocumentNotFoundError, StorageError
from ..core.types import (
    CacheEntry,
    CandidateChunk,
    Chunk,
    Document,
    DocumentStatus,
    FieldEmbedding,
    FieldKind,
    utc_now,
)
from ..core.utils import decode_vector, encode_vector


logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class RagStore:
    """
    SQLite persistence for the retrieval engine.

    One connection is shared by all callers; each public write runs in its
    own transaction.

    Example:
        >>> store = RagStore(":memory:")
        >>> doc = store.create_document(Document(None, "a.txt", "text"))
        >>> store.get_document(doc.document_id).status
        <DocumentStatus.PENDING: 'pending'>
    """

    def __init__(self, db_path: Union[str, Path] = MEMORY_DB, auto_init: bool = True):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
            auto_init: Whether to create tables automatically
        """
        self.db_path = str(db_path)
        self.conn: Optional[sqlite3.Connection] = None
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != MEMORY_DB:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.debug(f"Connected to SQLite store: {self.db_path}")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                document_id INTEGER PRIMARY KEY AUTOINCREMENT,
                file_name TEXT NOT NULL,
                path TEXT,
                content TEXT NOT NULL,
                content_type TEXT,
                size INTEGER NOT NULL DEFAULT 0,
                notes TEXT,
                details TEXT,
                status TEXT NOT NULL,
                uploaded_at TEXT NOT NULL,
                processed_at TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS document_chunks (
                chunk_id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id INTEGER NOT NULL
                    REFERENCES documents (document_id) ON DELETE CASCADE,
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                header_context TEXT,
                notes TEXT,
                details TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (document_id, chunk_index)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunk_embeddings (
                chunk_id INTEGER NOT NULL
                    REFERENCES document_chunks (chunk_id) ON DELETE CASCADE,
                field_kind TEXT NOT NULL,
                vector BLOB NOT NULL,
                dimensions INTEGER NOT NULL,
                model TEXT NOT NULL,
                provider TEXT NOT NULL,
                synthetic INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                PRIMARY KEY (chunk_id, field_kind)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS semantic_cache (
                cache_id INTEGER PRIMARY KEY AUTOINCREMENT,
                query_text TEXT NOT NULL,
                result_content TEXT NOT NULL,
                result_embedding BLOB,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS ix_documents_status
            ON documents (status)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS ix_semantic_cache_query
            ON semantic_cache (query_text, created_at)
        """)

        self.conn.commit()
        logger.debug("Initialized store schema")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Run a block of statements atomically."""
        cursor = self.conn.cursor()
        try:
            yield cursor
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StorageError(f"Store operation failed: {e}") from e
        except Exception:
            self.conn.rollback()
            raise

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(self, document: Document) -> Document:
        """
        Insert a document.

        Args:
            document: Document to insert (its document_id is ignored)

        Returns:
            The document with its assigned document_id
        """
        with self.transaction() as cursor:
            cursor.execute("""
                INSERT INTO documents (
                    file_name, path, content, content_type, size, notes, details,
                    status, uploaded_at, processed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                document.file_name,
                document.path,
                document.content,
                document.content_type,
                document.size,
                document.notes,
                document.details,
                document.status.value,
                _to_iso(document.uploaded_at),
                _to_iso(document.processed_at),
            ))
            document.document_id = cursor.lastrowid

        logger.debug(f"Created document {document.document_id}: {document.file_name}")
        return document

    def get_document(self, document_id: int) -> Document:
        """
        Fetch a document.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        row = self.conn.execute(
            "SELECT * FROM documents WHERE document_id = ?", (document_id,)
        ).fetchone()
        if row is None:
            raise DocumentNotFoundError(document_id)
        return self._row_to_document(row)

    def list_documents(self, status: Optional[DocumentStatus] = None) -> List[Document]:
        """List documents, newest upload first."""
        if status is None:
            rows = self.conn.execute(
                "SELECT * FROM documents ORDER BY uploaded_at DESC, document_id DESC"
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM documents WHERE status = ? "
                "ORDER BY uploaded_at DESC, document_id DESC",
                (status.value,),
            ).fetchall()
        return [self._row_to_document(row) for row in rows]

    def update_document_status(
        self,
        document_id: int,
        status: DocumentStatus,
        processed_at: Optional[datetime] = None,
    ) -> None:
        """
        Set a document's processing status.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        with self.transaction() as cursor:
            if processed_at is not None:
                cursor.execute(
                    "UPDATE documents SET status = ?, processed_at = ? WHERE document_id = ?",
                    (status.value, _to_iso(processed_at), document_id),
                )
            else:
                cursor.execute(
                    "UPDATE documents SET status = ? WHERE document_id = ?",
                    (status.value, document_id),
                )
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(document_id)

        logger.debug(f"Document {document_id} status -> {status.value}")

    def replace_document_content(
        self,
        document_id: int,
        content: str,
        notes: Optional[str] = None,
        details: Optional[str] = None,
    ) -> int:
        """
        Replace a document's text and drop its chunks for re-processing.

        The document is reset to PENDING. Embeddings of the removed chunks
        are deleted by cascade.

        Returns:
            Number of chunks removed

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        with self.transaction() as cursor:
            cursor.execute(
                """
                UPDATE documents
                SET content = ?, size = ?, notes = ?, details = ?,
                    status = ?, processed_at = NULL
                WHERE document_id = ?
                """,
                (
                    content,
                    len(content.encode("utf-8")),
                    notes,
                    details,
                    DocumentStatus.PENDING.value,
                    document_id,
                ),
            )
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(document_id)

            cursor.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            removed = cursor.rowcount

        logger.debug(f"Replaced content of document {document_id}, removed {removed} chunks")
        return removed

    def delete_document(self, document_id: int) -> None:
        """
        Delete a document with all its chunks and embeddings.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        with self.transaction() as cursor:
            cursor.execute("DELETE FROM documents WHERE document_id = ?", (document_id,))
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(document_id)

        logger.info(f"Deleted document {document_id}")

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def create_chunks(self, document_id: int, chunks: Sequence[Chunk]) -> List[Chunk]:
        """
        Insert all chunks of a document in one transaction.

        Args:
            document_id: Owning document
            chunks: Chunks to insert (their chunk_id is ignored)

        Returns:
            The chunks with assigned chunk_ids

        Raises:
            StorageError: If an ordinal collides with an existing chunk
        """
        created = []
        with self.transaction() as cursor:
            for chunk in chunks:
                cursor.execute("""
                    INSERT INTO document_chunks (
                        document_id, chunk_index, content, header_context, notes,
                        details, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    document_id,
                    chunk.chunk_index,
                    chunk.content,
                    chunk.header_context,
                    chunk.notes,
                    chunk.details,
                    _to_iso(chunk.created_at),
                    _to_iso(chunk.updated_at),
                ))
                chunk.chunk_id = cursor.lastrowid
                chunk.document_id = document_id
                created.append(chunk)

        logger.debug(f"Created {len(created)} chunks for document {document_id}")
        return created

    def get_chunk(self, chunk_id: int) -> Chunk:
        """
        Fetch a chunk.

        Raises:
            ChunkNotFoundError: If the chunk does not exist
        """
        row = self.conn.execute(
            "SELECT * FROM document_chunks WHERE chunk_id = ?", (chunk_id,)
        ).fetchone()
        if row is None:
            raise ChunkNotFoundError(chunk_id)
        return self._row_to_chunk(row)

    def list_chunks(self, document_id: int) -> List[Chunk]:
        """List a document's chunks in source order."""
        rows = self.conn.execute(
            "SELECT * FROM document_chunks WHERE document_id = ? ORDER BY chunk_index",
            (document_id,),
        ).fetchall()
        return [self._row_to_chunk(row) for row in rows]

    def update_chunk_field(self, chunk_id: int, kind: FieldKind, text: Optional[str]) -> Chunk:
        """
        Replace the text of one chunk field.

        Returns:
            The updated chunk

        Raises:
            ChunkNotFoundError: If the chunk does not exist
        """
        column = kind.value
        with self.transaction() as cursor:
            cursor.execute(
                f"UPDATE document_chunks SET {column} = ?, updated_at = ? WHERE chunk_id = ?",
                (text, _to_iso(utc_now()), chunk_id),
            )
            if cursor.rowcount == 0:
                raise ChunkNotFoundError(chunk_id)
        return self.get_chunk(chunk_id)

    def delete_chunk(self, chunk_id: int) -> None:
        """
        Delete a chunk and its embeddings.

        Raises:
            ChunkNotFoundError: If the chunk does not exist
        """
        with self.transaction() as cursor:
            cursor.execute("DELETE FROM document_chunks WHERE chunk_id = ?", (chunk_id,))
            if cursor.rowcount == 0:
                raise ChunkNotFoundError(chunk_id)

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def upsert_embedding(self, embedding: FieldEmbedding) -> None:
        """Store a field embedding, overwriting any previous one for that field."""
        blob = encode_vector(embedding.vector)
        with self.transaction() as cursor:
            cursor.execute("""
                INSERT INTO chunk_embeddings (
                    chunk_id, field_kind, vector, dimensions, model, provider,
                    synthetic, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (chunk_id, field_kind) DO UPDATE SET
                    vector = excluded.vector,
                    dimensions = excluded.dimensions,
                    model = excluded.model,
                    provider = excluded.provider,
                    synthetic = excluded.synthetic,
                    created_at = excluded.created_at
            """, (
                embedding.chunk_id,
                embedding.field.value,
                blob,
                embedding.dimensions,
                embedding.model,
                embedding.provider,
                1 if embedding.synthetic else 0,
                _to_iso(embedding.created_at),
            ))

    def delete_embedding(self, chunk_id: int, kind: FieldKind) -> bool:
        """Remove one field embedding. Returns True if a row was removed."""
        with self.transaction() as cursor:
            cursor.execute(
                "DELETE FROM chunk_embeddings WHERE chunk_id = ? AND field_kind = ?",
                (chunk_id, kind.value),
            )
            return cursor.rowcount > 0

    def get_embeddings(self, chunk_id: int) -> Dict[FieldKind, FieldEmbedding]:
        """All stored embeddings of a chunk keyed by field."""
        rows = self.conn.execute(
            "SELECT * FROM chunk_embeddings WHERE chunk_id = ?", (chunk_id,)
        ).fetchall()
        return {FieldKind(row["field_kind"]): self._row_to_embedding(row) for row in rows}

    def count_embeddings(self, document_id: Optional[int] = None) -> int:
        """Number of stored field embeddings, optionally for one document."""
        if document_id is None:
            row = self.conn.execute("SELECT COUNT(*) FROM chunk_embeddings").fetchone()
        else:
            row = self.conn.execute(
                """
                SELECT COUNT(*) FROM chunk_embeddings e
                JOIN document_chunks c ON c.chunk_id = e.chunk_id
                WHERE c.document_id = ?
                """,
                (document_id,),
            ).fetchone()
        return row[0]

    def scan_candidates(self, only_completed: bool = True) -> List[CandidateChunk]:
        """
        Load every chunk with its field vectors for ranking.

        Vectors whose stored bytes cannot be decoded are left out of the
        candidate and logged; the rest of the chunk is still returned.

        Args:
            only_completed: Restrict to documents whose status is COMPLETED

        Returns:
            Candidates ordered by document_id, chunk_index
        """
        status_clause = "WHERE d.status = ?" if only_completed else ""
        params = (DocumentStatus.COMPLETED.value,) if only_completed else ()

        rows = self.conn.execute(f"""
            SELECT c.*, d.file_name AS doc_file_name, d.path AS doc_path,
                   e.field_kind, e.vector, e.synthetic
            FROM document_chunks c
            JOIN documents d ON d.document_id = c.document_id
            LEFT JOIN chunk_embeddings e ON e.chunk_id = c.chunk_id
            {status_clause}
            ORDER BY c.document_id, c.chunk_index
        """, params).fetchall()

        candidates: Dict[int, CandidateChunk] = {}
        for row in rows:
            chunk_id = row["chunk_id"]
            candidate = candidates.get(chunk_id)
            if candidate is None:
                candidate = CandidateChunk(
                    chunk=self._row_to_chunk(row),
                    file_name=row["doc_file_name"],
                    path=row["doc_path"],
                )
                candidates[chunk_id] = candidate

            if row["field_kind"] is None:
                continue

            kind = FieldKind(row["field_kind"])
            try:
                candidate.embeddings[kind] = decode_vector(row["vector"])
            except ValueError as e:
                logger.warning(f"Skipping stored {kind.value} vector of chunk {chunk_id}: {e}")
                continue
            if row["synthetic"]:
                candidate.synthetic = True

        return list(candidates.values())

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def insert_cache_entry(self, entry: CacheEntry) -> CacheEntry:
        """Insert a cache entry and return it with its assigned cache_id."""
        blob = encode_vector(entry.result_embedding) if entry.result_embedding else None
        with self.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO semantic_cache (query_text, result_content, result_embedding, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (entry.query_text, entry.result_content, blob, _to_iso(entry.created_at)),
            )
            entry.cache_id = cursor.lastrowid
        return entry

    def find_cache_entry(self, query_text: str) -> Optional[CacheEntry]:
        """Most recent entry for an exact query text."""
        row = self.conn.execute(
            """
            SELECT * FROM semantic_cache
            WHERE query_text = ?
            ORDER BY created_at DESC, cache_id DESC
            LIMIT 1
            """,
            (query_text,),
        ).fetchone()
        return self._row_to_cache_entry(row) if row else None

    def delete_cache_entries_before(self, cutoff: datetime) -> int:
        """Delete cache entries created at or before ``cutoff``."""
        with self.transaction() as cursor:
            cursor.execute(
                "DELETE FROM semantic_cache WHERE created_at <= ?", (_to_iso(cutoff),)
            )
            return cursor.rowcount

    def clear_cache(self) -> int:
        """Delete every cache entry."""
        with self.transaction() as cursor:
            cursor.execute("DELETE FROM semantic_cache")
            return cursor.rowcount

    def list_cache_entries(self) -> List[CacheEntry]:
        """All cache entries, newest first."""
        rows = self.conn.execute(
            "SELECT * FROM semantic_cache ORDER BY created_at DESC, cache_id DESC"
        ).fetchall()
        return [self._row_to_cache_entry(row) for row in rows]

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        return Document(
            document_id=row["document_id"],
            file_name=row["file_name"],
            path=row["path"],
            content=row["content"],
            content_type=row["content_type"],
            size=row["size"],
            notes=row["notes"],
            details=row["details"],
            status=DocumentStatus(row["status"]),
            uploaded_at=_from_iso(row["uploaded_at"]),
            processed_at=_from_iso(row["processed_at"]),
        )

    def _row_to_chunk(self, row: sqlite3.Row) -> Chunk:
        return Chunk(
            chunk_id=row["chunk_id"],
            document_id=row["document_id"],
            chunk_index=row["chunk_index"],
            content=row["content"],
            header_context=row["header_context"],
            notes=row["notes"],
            details=row["details"],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    def _row_to_embedding(self, row: sqlite3.Row) -> FieldEmbedding:
        return FieldEmbedding(
            chunk_id=row["chunk_id"],
            field=FieldKind(row["field_kind"]),
            vector=decode_vector(row["vector"]),
            model=row["model"],
            provider=row["provider"],
            synthetic=bool(row["synthetic"]),
            created_at=_from_iso(row["created_at"]),
        )

    def _row_to_cache_entry(self, row: sqlite3.Row) -> CacheEntry:
        blob = row["result_embedding"]
        return CacheEntry(
            cache_id=row["cache_id"],
            query_text=row["query_text"],
            result_content=row["result_content"],
            result_embedding=decode_vector(blob) if blob else None,
            created_at=_from_iso(row["created_at"]),
        )

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite store")
