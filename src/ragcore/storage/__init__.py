"""
Persistence for documents, chunks, field embeddings, and cached results.
"""

from .sqlite_store import RagStore

__all__ = ["RagStore"]
