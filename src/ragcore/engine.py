"""
Engine - Wires store, gateway, chunker, cache, indexer and search together.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from .config.settings import RagSettings
from .core.types import utc_now
from .providers.gateway import EmbeddingProviderGateway
from .retrieval.cache import SemanticResponseCache
from .retrieval.chunker import ChunkingPolicy, DocumentChunker
from .retrieval.embeddings import ChunkEmbeddingStore
from .retrieval.indexer import DocumentIndexer
from .retrieval.search import SimilaritySearchEngine
from .retrieval.service import RetrievalService
from .storage.sqlite_store import RagStore

logger = logging.getLogger(__name__)


class RagEngine:
    """
    One in-process retrieval engine built from settings.

    Attributes:
        store: SQLite persistence
        gateway: Embedding/completion backend access
        chunker: Document chunker
        embeddings: Per-field embedding lifecycle
        cache: Response cache
        indexer: Ingestion flow
        service: Query flow
    """

    def __init__(
        self,
        settings: RagSettings,
        store: Optional[RagStore] = None,
        gateway: Optional[EmbeddingProviderGateway] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Build the engine.

        Args:
            settings: Resolved settings
            store: Store to use (opens settings.db_path if not provided)
            gateway: Gateway to use (built from settings if not provided)
            clock: Time source for the response cache
        """
        self.settings = settings
        self.store = store or RagStore(settings.db_path)
        self.gateway = gateway or EmbeddingProviderGateway(settings)
        self.chunker = DocumentChunker(ChunkingPolicy(
            max_chunk_size=settings.chunking.max_chunk_size,
            overlap=settings.chunking.overlap,
        ))
        self.embeddings = ChunkEmbeddingStore(self.store, self.gateway)
        self.cache = SemanticResponseCache(
            self.store,
            ttl_seconds=settings.cache.ttl_seconds,
            clock=clock,
            enabled=settings.cache.enabled,
        )
        self.indexer = DocumentIndexer(
            self.store,
            self.embeddings,
            self.chunker,
            embed_concurrency=settings.ingestion.embed_concurrency,
            normalize=settings.ingestion.normalize_text,
        )
        self.service = RetrievalService(
            self.store,
            self.gateway,
            cache=self.cache,
            engine=SimilaritySearchEngine(max_top_k=settings.retrieval.max_top_k),
            settings=settings.retrieval,
        )
        logger.debug(
            f"Engine ready: provider={self.gateway.provider_type.value}, db={self.store.db_path}"
        )

    async def aclose(self) -> None:
        """Release HTTP clients and the database connection."""
        await self.gateway.aclose()
        self.store.close()

    async def __aenter__(self) -> "RagEngine":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
