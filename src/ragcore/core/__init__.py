"""
Core components for the ragcore retrieval engine.
"""

from .exceptions import (
    RagError,
    BackendUnavailableError,
    BackendRequestError,
    InvalidEmbeddingError,
    DimensionMismatchError,
    ConfigError,
    StorageError,
    DocumentNotFoundError,
    ChunkNotFoundError,
    ExtractionError,
    UnsupportedContentTypeError,
)
from .types import (
    FieldKind,
    TaskType,
    ProviderType,
    DocumentStatus,
    Document,
    Chunk,
    FieldEmbedding,
    EmbeddingResult,
    ChatMessage,
)

__all__ = [
    "RagError",
    "BackendUnavailableError",
    "BackendRequestError",
    "InvalidEmbeddingError",
    "DimensionMismatchError",
    "ConfigError",
    "StorageError",
    "DocumentNotFoundError",
    "ChunkNotFoundError",
    "ExtractionError",
    "UnsupportedContentTypeError",
    "FieldKind",
    "TaskType",
    "ProviderType",
    "DocumentStatus",
    "Document",
    "Chunk",
    "FieldEmbedding",
    "EmbeddingResult",
    "ChatMessage",
]
