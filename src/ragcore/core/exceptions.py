"""
Custom exceptions for the ragcore retrieval engine.
"""

from typing import Optional


class RagError(Exception):
    """Base exception for all ragcore errors."""
    pass


class BackendUnavailableError(RagError):
    """
    An embedding or completion backend could not serve the request.

    Raised when:
    - Backend is unreachable or the connection drops
    - Request times out
    - Credentials are rejected (401/403)
    - Backend is throttling (429) or failing (5xx)
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class BackendRequestError(RagError):
    """
    The backend rejected the request or answered with something unusable.

    Raised when:
    - Backend returns a 4xx other than auth/throttling
    - Response body is not valid JSON
    - Response does not contain the expected fields
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class InvalidEmbeddingError(RagError, ValueError):
    """
    An embedding vector is unusable.

    Raised when:
    - Vector is empty
    - Vector contains NaN or infinite components
    - Stored vector bytes are not a whole number of float32 values
    """
    pass


class DimensionMismatchError(RagError, ValueError):
    """Two vectors compared for similarity have different lengths."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector dimensions must match: {expected} != {actual}")
        self.expected = expected
        self.actual = actual


class ConfigError(RagError):
    """
    Error in ragcore configuration.

    Raised when:
    - Configuration file is missing or invalid
    - Configuration values are out of valid range
    - An unknown provider is requested
    """
    pass


class StorageError(RagError):
    """Error persisting or reading documents, chunks, embeddings, or cache rows."""
    pass


class DocumentNotFoundError(StorageError):
    """Referenced document does not exist."""

    def __init__(self, document_id: int):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class ChunkNotFoundError(StorageError):
    """Referenced chunk does not exist."""

    def __init__(self, chunk_id: int):
        super().__init__(f"Chunk {chunk_id} not found")
        self.chunk_id = chunk_id


class ExtractionError(RagError):
    """
    Text could not be extracted from an uploaded file.

    Raised when:
    - File type is not one of the supported formats
    - Text file is not valid UTF-8
    - PDF or Word file is corrupt or unreadable
    """

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(message)
        self.file_name = file_name


class UnsupportedContentTypeError(ExtractionError):
    """The file's content type has no text extractor."""

    def __init__(self, content_type: Optional[str], file_name: Optional[str] = None):
        super().__init__(f"File type {content_type or 'unknown'} is not supported", file_name)
        self.content_type = content_type
