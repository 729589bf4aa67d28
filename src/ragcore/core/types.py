"""
Core type definitions for the ragcore retrieval engine.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class FieldKind(str, Enum):
    """Text fields of a chunk that carry their own embedding."""
    CONTENT = "content"
    HEADER_CONTEXT = "header_context"
    NOTES = "notes"
    DETAILS = "details"

    @property
    def is_optional(self) -> bool:
        """Notes and details are caller-supplied annotations."""
        return self in (FieldKind.NOTES, FieldKind.DETAILS)


class TaskType(str, Enum):
    """Kind of work requested from a backend; selects the model."""
    EMBEDDING = "embedding"
    CHAT = "chat"


class ProviderType(str, Enum):
    """Supported embedding/completion backends."""
    OPENAI = "openai"
    AZURE_OPENAI = "azure_openai"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    SYNTHETIC = "synthetic"


class DocumentStatus(str, Enum):
    """Processing status of an ingested document."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Document:
    """
    A source document and its processing state.

    Attributes:
        document_id: Store-assigned identifier
        file_name: Original file name
        content: Raw extracted text
        path: Logical location of the file
        content_type: MIME type of the upload
        size: Size of the upload in bytes
        notes: Caller-supplied notes propagated to every chunk
        details: Caller-supplied structured details propagated to every chunk
        status: Processing status
        uploaded_at: When the document was created
        processed_at: When processing last completed
    """
    document_id: Optional[int]
    file_name: str
    content: str
    path: Optional[str] = None
    content_type: Optional[str] = None
    size: int = 0
    notes: Optional[str] = None
    details: Optional[str] = None
    status: DocumentStatus = DocumentStatus.PENDING
    uploaded_at: datetime = field(default_factory=utc_now)
    processed_at: Optional[datetime] = None

    def to_dict(self, include_content: bool = False) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "document_id": self.document_id,
            "file_name": self.file_name,
            "path": self.path,
            "content_type": self.content_type,
            "size": self.size,
            "notes": self.notes,
            "details": self.details,
            "status": self.status.value,
            "uploaded_at": self.uploaded_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
        if include_content:
            data["content"] = self.content
        return data


@dataclass
class Chunk:
    """
    A persisted passage of a document.

    Attributes:
        chunk_id: Store-assigned identifier
        document_id: Owning document
        chunk_index: Zero-based position within the document
        content: Passage text
        header_context: Nearest enclosing section header, if any
        notes: Caller-supplied notes
        details: Caller-supplied details
    """
    chunk_id: Optional[int]
    document_id: int
    chunk_index: int
    content: str
    header_context: Optional[str] = None
    notes: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def field_text(self, kind: FieldKind) -> Optional[str]:
        """Return the text stored for a field kind."""
        return getattr(self, kind.value)

    def populated_fields(self) -> List[FieldKind]:
        """Field kinds that carry non-blank text, in declaration order."""
        return [
            kind for kind in FieldKind
            if (self.field_text(kind) or "").strip()
        ]


@dataclass
class FieldEmbedding:
    """
    Embedding of one chunk field.

    Attributes:
        chunk_id: Chunk the embedding belongs to
        field: Which field was embedded
        vector: Embedding values
        model: Model that produced the vector
        provider: Backend that produced the vector
        synthetic: True when produced by the deterministic fallback
    """
    chunk_id: int
    field: FieldKind
    vector: List[float]
    model: str
    provider: str
    synthetic: bool = False
    created_at: datetime = field(default_factory=utc_now)

    @property
    def dimensions(self) -> int:
        return len(self.vector)


@dataclass
class EmbeddingResult:
    """Vector returned by the gateway together with its provenance."""
    vector: List[float]
    model: str
    provider: str
    synthetic: bool = False


@dataclass
class ChatMessage:
    """A single chat turn passed to a completion backend."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class FieldOutcome:
    """
    Result of embedding one chunk field.

    Attributes:
        field: Field that was attempted
        success: Whether an embedding was stored
        error_kind: Exception class name when the attempt failed
        message: Error message when the attempt failed
        synthetic: Whether the stored vector came from the fallback
        removed: True when a blank optional field had its embedding removed
    """
    field: FieldKind
    success: bool
    error_kind: Optional[str] = None
    message: Optional[str] = None
    synthetic: bool = False
    removed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field.value,
            "success": self.success,
            "error_kind": self.error_kind,
            "message": self.message,
            "synthetic": self.synthetic,
            "removed": self.removed,
        }


@dataclass
class ChunkEmbeddingReport:
    """Per-field outcomes for one chunk."""
    chunk_id: int
    outcomes: List[FieldOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[FieldKind]:
        return [o.field for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[FieldKind]:
        return [o.field for o in self.outcomes if not o.success]

    def outcome_for(self, kind: FieldKind) -> Optional[FieldOutcome]:
        for outcome in self.outcomes:
            if outcome.field == kind:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class IngestionReport:
    """
    Summary of a document ingestion.

    Attributes:
        document_id: Ingested document
        status: Final document status
        chunks_created: Number of chunk rows written
        embeddings_created: Number of field embeddings stored
        embeddings_failed: Number of field embedding attempts that failed
        chunk_reports: Per-chunk field outcomes
        errors: Messages for failures that aborted ingestion
        duration_seconds: Wall-clock time of the ingestion
    """
    document_id: int
    status: DocumentStatus
    chunks_created: int = 0
    embeddings_created: int = 0
    embeddings_failed: int = 0
    chunk_reports: List[ChunkEmbeddingReport] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "status": self.status.value,
            "chunks_created": self.chunks_created,
            "embeddings_created": self.embeddings_created,
            "embeddings_failed": self.embeddings_failed,
            "errors": list(self.errors),
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class CandidateChunk:
    """
    A chunk with its stored field embeddings, as scanned for ranking.

    Attributes:
        chunk: The chunk row
        file_name: Owning document's file name
        path: Owning document's path
        embeddings: Stored vectors keyed by field
        synthetic: True if any stored vector came from the fallback
    """
    chunk: Chunk
    file_name: str
    path: Optional[str] = None
    embeddings: Dict[FieldKind, List[float]] = field(default_factory=dict)
    synthetic: bool = False


@dataclass
class SearchHit:
    """
    A ranked chunk returned by search.

    Attributes:
        chunk_id: Matched chunk
        document_id: Owning document
        file_name: Owning document's file name
        path: Owning document's path
        chunk_index: Position within the document
        content: Chunk text
        header_context: Section header, if any
        notes: Chunk notes (omitted when optional fields are excluded)
        details: Chunk details (omitted when optional fields are excluded)
        score: Best field similarity
        matched_fields: Fields that achieved the best similarity
        field_scores: Similarity of every scored field
    """
    chunk_id: int
    document_id: int
    file_name: str
    chunk_index: int
    content: str
    score: float
    path: Optional[str] = None
    header_context: Optional[str] = None
    notes: Optional[str] = None
    details: Optional[str] = None
    matched_fields: List[FieldKind] = field(default_factory=list)
    field_scores: Dict[FieldKind, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "file_name": self.file_name,
            "path": self.path,
            "chunk_index": self.chunk_index,
            "content": self.content,
            "header_context": self.header_context,
            "notes": self.notes,
            "details": self.details,
            "score": self.score,
            "matched_fields": [f.value for f in self.matched_fields],
            "field_scores": {f.value: s for f, s in self.field_scores.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchHit":
        """Create from dictionary."""
        return cls(
            chunk_id=data["chunk_id"],
            document_id=data["document_id"],
            file_name=data["file_name"],
            path=data.get("path"),
            chunk_index=data["chunk_index"],
            content=data["content"],
            header_context=data.get("header_context"),
            notes=data.get("notes"),
            details=data.get("details"),
            score=data["score"],
            matched_fields=[FieldKind(f) for f in data.get("matched_fields", [])],
            field_scores={
                FieldKind(f): s for f, s in data.get("field_scores", {}).items()
            },
        )


@dataclass
class SearchResponse:
    """
    Result of a query against the retrieval service.

    Attributes:
        query_text: The query as submitted
        hits: Ranked hits, best first
        from_cache: True when served from the response cache
        synthetic: True when the query or any hit used fallback embeddings
        total_candidates: Chunks scanned
        skipped_candidates: Chunks excluded because of incompatible vectors
        execution_ms: Time spent serving the query
    """
    query_text: str
    hits: List[SearchHit] = field(default_factory=list)
    from_cache: bool = False
    synthetic: bool = False
    total_candidates: int = 0
    skipped_candidates: int = 0
    execution_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_text": self.query_text,
            "hits": [h.to_dict() for h in self.hits],
            "from_cache": self.from_cache,
            "synthetic": self.synthetic,
            "total_candidates": self.total_candidates,
            "skipped_candidates": self.skipped_candidates,
            "execution_ms": self.execution_ms,
        }


@dataclass
class CacheEntry:
    """
    A cached query result.

    Attributes:
        cache_id: Store-assigned identifier
        query_text: Exact query text the result was produced for
        result_content: Serialized result payload
        result_embedding: Embedding of the query
        created_at: When the entry was written
    """
    cache_id: Optional[int]
    query_text: str
    result_content: str
    result_embedding: Optional[List[float]] = None
    created_at: datetime = field(default_factory=utc_now)

    def is_expired(self, now: datetime, ttl_seconds: float) -> bool:
        """An entry is valid while its age is strictly below the TTL."""
        return (now - self.created_at).total_seconds() >= ttl_seconds


@dataclass
class CacheStats:
    """Snapshot of the response cache."""
    total_entries: int = 0
    entries_last_hour: int = 0
    distinct_queries: int = 0
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "entries_last_hour": self.entries_last_hour,
            "distinct_queries": self.distinct_queries,
            "oldest_entry": self.oldest_entry.isoformat() if self.oldest_entry else None,
            "newest_entry": self.newest_entry.isoformat() if self.newest_entry else None,
        }
