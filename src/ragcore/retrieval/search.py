"""
Retrieval Search - Rank stored chunks against a query vector.

Implements:
- Cosine similarity scoring
- Multi-field scoring (a chunk scores its best field)
- Threshold filtering and top-K selection
- Deterministic ordering with (document_id, chunk_index) tie-breaks
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..core.exceptions import DimensionMismatchError, InvalidEmbeddingError
from ..core.types import CandidateChunk, FieldKind, SearchHit
from ..core.utils import validate_vector

logger = logging.getLogger(__name__)


DEFAULT_MAX_TOP_K = 50


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Cosine similarity clamped to [-1, 1]; 0.0 if either vector has zero
        magnitude

    Raises:
        InvalidEmbeddingError: If a vector is empty or has non-finite values
        DimensionMismatchError: If the vectors have different lengths
    """
    if not vec_a or not vec_b:
        raise InvalidEmbeddingError("Vectors cannot be empty")

    if len(vec_a) != len(vec_b):
        raise DimensionMismatchError(len(vec_a), len(vec_b))

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    if not all(math.isfinite(v) for v in (dot_product, magnitude_a, magnitude_b)):
        raise InvalidEmbeddingError("Vectors contain non-finite values")

    # Handle zero vectors
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    similarity = dot_product / (magnitude_a * magnitude_b)
    return max(-1.0, min(1.0, similarity))


@dataclass
class RankingResult:
    """
    Output of a ranking pass.

    Attributes:
        hits: Ranked hits, best first
        total_candidates: Chunks considered
        skipped_candidates: Chunks excluded for dimension mismatch
        synthetic: True if any returned hit was scored on synthetic vectors
        execution_ms: Time spent ranking
    """
    hits: List[SearchHit] = field(default_factory=list)
    total_candidates: int = 0
    skipped_candidates: int = 0
    synthetic: bool = False
    execution_ms: int = 0


class SimilaritySearchEngine:
    """
    Linear-scan cosine ranking over candidate chunks.

    Each chunk is scored by the maximum similarity of its stored field
    vectors. Candidates whose vectors have a different dimensionality than
    the query are skipped and logged; an unusable vector only removes that
    one field from scoring.

    Example:
        >>> engine = SimilaritySearchEngine()
        >>> result = engine.rank(query_vector, store.scan_candidates(), top_k=5,
        ...                      similarity_threshold=0.7)
    """

    def __init__(self, max_top_k: int = DEFAULT_MAX_TOP_K):
        """
        Initialize the engine.

        Args:
            max_top_k: Upper bound applied to any requested top_k
        """
        if max_top_k <= 0:
            raise ValueError("max_top_k must be positive")
        self.max_top_k = max_top_k

    def effective_top_k(self, top_k: int) -> int:
        """
        Clamp a requested top_k to max_top_k.

        Raises:
            ValueError: If top_k is not positive
        """
        if top_k <= 0:
            raise ValueError("top_k must be positive")
        if top_k > self.max_top_k:
            logger.debug(f"Requested top_k {top_k} capped to {self.max_top_k}")
            return self.max_top_k
        return top_k

    def score_candidate(
        self,
        query_vector: Sequence[float],
        candidate: CandidateChunk,
        include_optional_fields: bool = True,
    ) -> Dict[FieldKind, float]:
        """
        Similarity of each usable field vector of a candidate.

        Raises:
            DimensionMismatchError: If any field vector's length differs from
                the query's
        """
        scores: Dict[FieldKind, float] = {}
        for kind in FieldKind:
            vector = candidate.embeddings.get(kind)
            if vector is None:
                continue
            if kind.is_optional and not include_optional_fields:
                continue
            try:
                scores[kind] = cosine_similarity(query_vector, vector)
            except InvalidEmbeddingError as e:
                logger.warning(
                    f"Ignoring {kind.value} vector of chunk {candidate.chunk.chunk_id}: {e}"
                )
        return scores

    def rank(
        self,
        query_vector: Sequence[float],
        candidates: Sequence[CandidateChunk],
        top_k: int = 5,
        similarity_threshold: float = 0.7,
        include_optional_fields: bool = True,
    ) -> RankingResult:
        """
        Rank candidates against a query vector.

        Args:
            query_vector: Embedding of the query
            candidates: Chunks with their stored field vectors
            top_k: Number of hits to return (capped at max_top_k)
            similarity_threshold: Minimum score for a hit
            include_optional_fields: Whether notes/details take part in
                scoring and are returned

        Returns:
            RankingResult with hits sorted by score descending, then
            document_id and chunk_index ascending

        Raises:
            InvalidEmbeddingError: If the query vector is empty or non-finite
            ValueError: If top_k is not positive
        """
        start_time = time.time()
        query_vector = validate_vector(query_vector)
        top_k = self.effective_top_k(top_k)

        scored = []
        skipped = 0
        for candidate in candidates:
            try:
                scores = self.score_candidate(query_vector, candidate, include_optional_fields)
            except DimensionMismatchError as e:
                skipped += 1
                logger.warning(f"Skipping chunk {candidate.chunk.chunk_id}: {e}")
                continue

            if not scores:
                continue

            best = max(scores.values())
            if best < similarity_threshold:
                continue

            scored.append((best, candidate, scores))

        scored.sort(key=lambda x: (-x[0], x[1].chunk.document_id, x[1].chunk.chunk_index))

        hits = []
        synthetic = False
        for best, candidate, scores in scored[:top_k]:
            chunk = candidate.chunk
            synthetic = synthetic or candidate.synthetic
            hits.append(SearchHit(
                chunk_id=chunk.chunk_id,
                document_id=chunk.document_id,
                file_name=candidate.file_name,
                path=candidate.path,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                header_context=chunk.header_context,
                notes=chunk.notes if include_optional_fields else None,
                details=chunk.details if include_optional_fields else None,
                score=best,
                matched_fields=[kind for kind, score in scores.items() if score == best],
                field_scores=scores,
            ))

        execution_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"Ranked {len(hits)} hits from {len(candidates)} candidates "
            f"({skipped} skipped) in {execution_ms}ms"
        )

        return RankingResult(
            hits=hits,
            total_candidates=len(candidates),
            skipped_candidates=skipped,
            synthetic=synthetic,
            execution_ms=execution_ms,
        )
