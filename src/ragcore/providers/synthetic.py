"""
Deterministic synthetic backend.

Produces pseudo-embeddings seeded from a hash of the text, so the same text
always maps to the same vector. Used for mock mode and as a fallback when no
real backend is configured; results are always flagged ``synthetic``.
"""

import hashlib
import random
from typing import List, Optional, Sequence

from ..config.settings import ProviderSettings
from ..core.types import ChatMessage, EmbeddingResult, ProviderType, TaskType
from .base import EmbeddingProvider


SYNTHETIC_MODEL = "synthetic-hash"


def synthetic_embedding(text: str, dimensions: int) -> List[float]:
    """
    Deterministic vector for a text with components in [-1, 1].

    Args:
        text: Text to embed
        dimensions: Vector length

    Returns:
        List of floats
    """
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
    rng = random.Random(seed)
    return [rng.uniform(-1.0, 1.0) for _ in range(dimensions)]


class SyntheticProvider(EmbeddingProvider):
    """Offline provider returning hash-seeded vectors and canned completions."""

    provider_type = ProviderType.SYNTHETIC

    def __init__(self, settings: Optional[ProviderSettings] = None, dimensions: int = 1536):
        super().__init__(
            settings or ProviderSettings(
                provider=ProviderType.SYNTHETIC,
                embedding_model=SYNTHETIC_MODEL,
                chat_model=SYNTHETIC_MODEL,
            )
        )
        self.dimensions = dimensions

    def is_configured(self) -> bool:
        return True

    def model_for_task(self, task_type: TaskType) -> str:
        return super().model_for_task(task_type) or SYNTHETIC_MODEL

    async def embed(self, text: str, task_type: TaskType = TaskType.EMBEDDING) -> EmbeddingResult:
        return EmbeddingResult(
            vector=synthetic_embedding(text, self.dimensions),
            model=self.model_for_task(task_type),
            provider=self.name,
            synthetic=True,
        )

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        max_tokens: Optional[int] = None,
        temperature: float = 0.1,
        task_type: TaskType = TaskType.CHAT,
    ) -> str:
        question = next(
            (m.content for m in reversed(messages) if m.role == "user"),
            "",
        )
        return (
            "[synthetic response] No language model backend is configured. "
            f"Received question: {question.strip()[:200]}"
        )
