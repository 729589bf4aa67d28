"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ragcore.config.settings import ProviderSettings, RagSettings
from ragcore.core.types import ChatMessage, EmbeddingResult, ProviderType, TaskType
from ragcore.providers.base import EmbeddingProvider
from ragcore.providers.gateway import EmbeddingProviderGateway
from ragcore.providers.synthetic import synthetic_embedding
from ragcore.storage.sqlite_store import RagStore
from ragcore.utils.retry import RetryConfig


logger = logging.getLogger(__name__)


# ============================================================================
# Test doubles
# ============================================================================

class ScriptedProvider(EmbeddingProvider):
    """
    In-memory provider returning preset vectors per text.

    Texts without a preset vector get a deterministic 3-dimensional vector.
    Texts listed in ``failures`` raise the given exception.
    """

    provider_type = ProviderType.OLLAMA

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        dimensions: int = 3,
        answer: str = "scripted answer",
    ):
        super().__init__(ProviderSettings(
            provider=ProviderType.OLLAMA,
            base_url="http://scripted.invalid",
            embedding_model="scripted-embed",
            chat_model="scripted-chat",
            timeout_seconds=5,
        ))
        self.vectors = vectors or {}
        self.failures = failures or {}
        self.dimensions = dimensions
        self.answer = answer
        self.embed_calls: List[str] = []
        self.complete_calls: List[Sequence[ChatMessage]] = []

    def is_configured(self) -> bool:
        return True

    async def embed(self, text: str, task_type: TaskType = TaskType.EMBEDDING) -> EmbeddingResult:
        self.embed_calls.append(text)
        if text in self.failures:
            raise self.failures[text]
        vector = self.vectors.get(text)
        if vector is None:
            vector = synthetic_embedding(text, self.dimensions)
        return EmbeddingResult(vector=list(vector), model="scripted-embed", provider=self.name)

    async def complete(self, messages, max_tokens=None, temperature=0.1, task_type=TaskType.CHAT) -> str:
        self.complete_calls.append(list(messages))
        return self.answer


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


async def no_sleep(delay: float) -> None:
    return None


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires a live backend)")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings() -> RagSettings:
    """Settings routed to the scripted provider with fast retries."""
    return RagSettings(
        default_provider=ProviderType.OLLAMA,
        fallback_to_synthetic=False,
        retry=RetryConfig(max_attempts=2, initial_delay_ms=1, max_delay_ms=1, jitter=False),
    )


@pytest.fixture
def store():
    """In-memory store, closed after the test."""
    rag_store = RagStore(":memory:")
    yield rag_store
    rag_store.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider


@pytest.fixture
def make_gateway(settings):
    """Factory building a gateway around a scripted provider."""
    def _make(provider: Optional[ScriptedProvider] = None) -> EmbeddingProviderGateway:
        provider = provider or ScriptedProvider()
        return EmbeddingProviderGateway(
            settings,
            providers={ProviderType.OLLAMA: provider},
            sleep=no_sleep,
        )
    return _make
