"""
Retrieval Service - Query flow from text to ranked passages.

query text → cache lookup → (miss) embed query → rank stored chunks →
cache the result → SearchResponse

The cache is keyed on the exact query text. A cached result is reused only
when it was produced with settings that contain the requested answer: the
same optional-field mode, a threshold no higher and a top-K no smaller than
requested. Otherwise the full pipeline runs and a fresh entry is stored.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config.settings import RetrievalSettings
from ..core.exceptions import StorageError
from ..core.logging import CorrelationContext
from ..core.types import ChatMessage, SearchHit, SearchResponse, TaskType
from ..providers.gateway import EmbeddingProviderGateway
from ..storage.sqlite_store import RagStore
from .cache import SemanticResponseCache
from .search import SimilaritySearchEngine

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions using the provided "
    "document excerpts. Base your answer only on the excerpts. If they do not "
    "contain the answer, say so. Cite excerpts by their number in brackets."
)


@dataclass
class AnswerResult:
    """
    A generated answer with the passages it was grounded on.

    Attributes:
        answer: Text returned by the completion backend
        sources: Hits used as context
        synthetic: True if retrieval or generation used the synthetic backend
        from_cache: True if the passages came from the response cache
    """
    answer: str
    sources: List[SearchHit] = field(default_factory=list)
    synthetic: bool = False
    from_cache: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [h.to_dict() for h in self.sources],
            "synthetic": self.synthetic,
            "from_cache": self.from_cache,
        }


class RetrievalService:
    """
    Caller-facing search over ingested documents.

    Example:
        >>> service = RetrievalService(store, gateway, cache)
        >>> response = await service.search("system requirements", top_k=5)
        >>> [hit.file_name for hit in response.hits]
    """

    def __init__(
        self,
        store: RagStore,
        gateway: EmbeddingProviderGateway,
        cache: Optional[SemanticResponseCache] = None,
        engine: Optional[SimilaritySearchEngine] = None,
        settings: Optional[RetrievalSettings] = None,
    ):
        """
        Initialize the service.

        Args:
            store: Source of candidate chunks
            gateway: Embedding backend access
            cache: Optional response cache
            engine: Ranking engine (built from settings if not provided)
            settings: Default top_k, threshold and optional-field mode
        """
        self.store = store
        self.gateway = gateway
        self.cache = cache
        self.settings = settings or RetrievalSettings()
        self.engine = engine or SimilaritySearchEngine(max_top_k=self.settings.max_top_k)

    async def search(
        self,
        query_text: str,
        top_k: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
        include_optional_fields: Optional[bool] = None,
    ) -> SearchResponse:
        """
        Find the passages most similar to a query.

        Args:
            query_text: Natural-language query
            top_k: Number of hits (defaults to settings, capped at max_top_k)
            similarity_threshold: Minimum score (defaults to settings)
            include_optional_fields: Score and return notes/details

        Returns:
            SearchResponse with hits ordered by score

        Raises:
            ValueError: If the query is blank or top_k is not positive
            BackendUnavailableError: If the query cannot be embedded
            BackendRequestError: If the backend rejects the query
            InvalidEmbeddingError: If the backend returns an unusable vector
        """
        if not isinstance(query_text, str) or not query_text.strip():
            raise ValueError("Query text cannot be empty")

        start_time = time.time()
        top_k = self.engine.effective_top_k(top_k if top_k is not None else self.settings.top_k)
        threshold = (
            similarity_threshold if similarity_threshold is not None
            else self.settings.similarity_threshold
        )
        include_optional = (
            include_optional_fields if include_optional_fields is not None
            else self.settings.include_optional_fields
        )

        with CorrelationContext(query_id=uuid.uuid4().hex[:8]):
            cached = self._from_cache(query_text, top_k, threshold, include_optional)
            if cached is not None:
                cached.execution_ms = int((time.time() - start_time) * 1000)
                return cached

            embedding = await self.gateway.embed(query_text, TaskType.EMBEDDING)
            candidates = self.store.scan_candidates(only_completed=True)
            ranking = self.engine.rank(
                embedding.vector,
                candidates,
                top_k=top_k,
                similarity_threshold=threshold,
                include_optional_fields=include_optional,
            )

            response = SearchResponse(
                query_text=query_text,
                hits=ranking.hits,
                from_cache=False,
                synthetic=embedding.synthetic or ranking.synthetic,
                total_candidates=ranking.total_candidates,
                skipped_candidates=ranking.skipped_candidates,
            )

            self._to_cache(query_text, response, embedding.vector, embedding.model,
                           top_k, threshold, include_optional)

            response.execution_ms = int((time.time() - start_time) * 1000)
            logger.info(
                f"Search returned {len(response.hits)} hits in {response.execution_ms}ms "
                f"(query: {query_text[:50]})"
            )
            return response

    def _from_cache(
        self,
        query_text: str,
        top_k: int,
        threshold: float,
        include_optional: bool,
    ) -> Optional[SearchResponse]:
        if self.cache is None:
            return None

        try:
            entry = self.cache.lookup(query_text)
        except StorageError as e:
            logger.warning(f"Cache lookup failed, continuing without cache: {e}")
            return None
        if entry is None:
            return None

        try:
            payload = json.loads(entry.result_content)
            if (
                payload["include_optional_fields"] != include_optional
                or payload["similarity_threshold"] > threshold
                or payload["top_k"] < top_k
            ):
                logger.debug("Cached result does not cover the requested parameters")
                return None
            hits = [SearchHit.from_dict(h) for h in payload["hits"]]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable cache entry {entry.cache_id}: {e}")
            return None

        hits = [h for h in hits if h.score >= threshold][:top_k]
        return SearchResponse(
            query_text=query_text,
            hits=hits,
            from_cache=True,
            synthetic=bool(payload.get("synthetic", False)),
            total_candidates=int(payload.get("total_candidates", 0)),
            skipped_candidates=int(payload.get("skipped_candidates", 0)),
        )

    def _to_cache(
        self,
        query_text: str,
        response: SearchResponse,
        query_vector: List[float],
        model: str,
        top_k: int,
        threshold: float,
        include_optional: bool,
    ) -> None:
        if self.cache is None:
            return

        payload = {
            "hits": [h.to_dict() for h in response.hits],
            "top_k": top_k,
            "similarity_threshold": threshold,
            "include_optional_fields": include_optional,
            "synthetic": response.synthetic,
            "model": model,
            "total_candidates": response.total_candidates,
            "skipped_candidates": response.skipped_candidates,
        }
        try:
            self.cache.store(query_text, json.dumps(payload), query_vector)
        except StorageError as e:
            logger.warning(f"Could not cache search result: {e}")

    async def answer(
        self,
        question: str,
        top_k: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
        include_optional_fields: Optional[bool] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.1,
    ) -> AnswerResult:
        """
        Retrieve passages for a question and ask the completion backend.

        Raises:
            ValueError: If the question is blank
            BackendUnavailableError: If embedding or completion fails
            BackendRequestError: If the backend rejects a request
        """
        response = await self.search(
            question,
            top_k=top_k,
            similarity_threshold=similarity_threshold,
            include_optional_fields=include_optional_fields,
        )

        messages = [
            ChatMessage(role="system", content=SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_prompt(question, response.hits)),
        ]
        text = await self.gateway.complete(
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
            task_type=TaskType.CHAT,
        )

        return AnswerResult(
            answer=text,
            sources=response.hits,
            synthetic=response.synthetic or self.gateway.is_synthetic,
            from_cache=response.from_cache,
        )


def format_context(hits: List[SearchHit]) -> str:
    """Render hits as numbered excerpts for a prompt."""
    blocks = []
    for number, hit in enumerate(hits, start=1):
        title = hit.file_name
        if hit.header_context:
            title = f"{title} - {hit.header_context}"
        lines = [f"[{number}] {title}", hit.content]
        if hit.notes:
            lines.append(f"Notes: {hit.notes}")
        if hit.details:
            lines.append(f"Details: {hit.details}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_prompt(question: str, hits: List[SearchHit]) -> str:
    """User message combining retrieved excerpts and the question."""
    if hits:
        context = format_context(hits)
    else:
        context = "No relevant excerpts were found."
    return f"Excerpts:\n{context}\n\nQuestion: {question.strip()}"
