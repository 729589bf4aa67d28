"""
Embedding Provider Gateway - One entry point for embeddings and completions.

Selects a backend implementation from configuration, applies a timeout and
retry-with-backoff to every call, and validates returned vectors. When mock
mode is on, or the configured backend is missing credentials and fallback is
allowed, the deterministic synthetic provider is used and every result is
flagged ``synthetic``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Type, TypeVar

import httpx

from ..config.settings import RagSettings
from ..core.exceptions import BackendRequestError, BackendUnavailableError
from ..core.types import ChatMessage, EmbeddingResult, ProviderType, TaskType
from ..core.utils import validate_vector
from ..utils.retry import retry_async
from .base import EmbeddingProvider
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai import AzureOpenAIProvider, OpenAIProvider
from .synthetic import SyntheticProvider


logger = logging.getLogger(__name__)

T = TypeVar("T")

PROVIDER_REGISTRY: Dict[ProviderType, Type[EmbeddingProvider]] = {
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.AZURE_OPENAI: AzureOpenAIProvider,
    ProviderType.GEMINI: GeminiProvider,
    ProviderType.OLLAMA: OllamaProvider,
}


class EmbeddingProviderGateway:
    """
    Provider-agnostic access to embedding and completion backends.

    Callers never branch on the backend: they call embed() and complete()
    and handle BackendUnavailableError / BackendRequestError /
    InvalidEmbeddingError.

    Example:
        >>> gateway = EmbeddingProviderGateway(RagConfig().settings)
        >>> result = await gateway.embed("How do I reset my password?")
        >>> result.synthetic
        False
    """

    def __init__(
        self,
        settings: RagSettings,
        providers: Optional[Dict[ProviderType, EmbeddingProvider]] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the gateway.

        Args:
            settings: Resolved settings (default provider, fallback, retry)
            providers: Pre-built provider instances keyed by type; missing
                ones are built from PROVIDER_REGISTRY on demand
            client: Optional HTTP client shared by built providers
            sleep: Awaitable sleep used between retries
        """
        self.settings = settings
        self._providers: Dict[ProviderType, EmbeddingProvider] = dict(providers or {})
        self._client = client
        self._sleep = sleep

        if ProviderType.SYNTHETIC not in self._providers:
            self._providers[ProviderType.SYNTHETIC] = SyntheticProvider(
                dimensions=settings.synthetic_dimensions
            )

        self.active = self._select_active()

    def get_provider(self, provider_type: ProviderType) -> EmbeddingProvider:
        """Return (building if needed) the provider for a backend type."""
        provider = self._providers.get(provider_type)
        if provider is None:
            provider_cls = PROVIDER_REGISTRY[provider_type]
            provider = provider_cls(
                self.settings.provider_settings(provider_type),
                client=self._client,
            )
            self._providers[provider_type] = provider
        return provider

    def _select_active(self) -> EmbeddingProvider:
        synthetic = self._providers[ProviderType.SYNTHETIC]

        if self.settings.mock_mode:
            logger.info("Mock mode enabled: using synthetic embeddings")
            return synthetic

        provider = self.get_provider(self.settings.default_provider)
        if provider.is_configured():
            logger.info(
                f"Using {provider.name} provider "
                f"(embedding model: {provider.model_for_task(TaskType.EMBEDDING)})"
            )
            return provider

        if self.settings.fallback_to_synthetic:
            logger.warning(
                f"Provider {provider.name} is not configured; "
                "falling back to synthetic embeddings"
            )
            return synthetic

        logger.warning(f"Provider {provider.name} is not configured")
        return provider

    @property
    def provider_type(self) -> ProviderType:
        return self.active.provider_type

    @property
    def is_synthetic(self) -> bool:
        return self.active.provider_type == ProviderType.SYNTHETIC

    def model_for_task(self, task_type: TaskType) -> str:
        return self.active.model_for_task(task_type)

    def is_provider_configured(self, provider_type: ProviderType) -> bool:
        """Whether a backend has the settings it needs."""
        return self.get_provider(provider_type).is_configured()

    def available_providers(self) -> List[ProviderType]:
        """Backends that are configured, in declaration order."""
        return [p for p in ProviderType if self.is_provider_configured(p)]

    async def embed(self, text: str, task_type: TaskType = TaskType.EMBEDDING) -> EmbeddingResult:
        """
        Embed a text with the active backend.

        Args:
            text: Text to embed (must be non-blank)
            task_type: Task type selecting the model

        Returns:
            EmbeddingResult with a validated vector

        Raises:
            BackendUnavailableError: Backend unreachable after retries
            BackendRequestError: Request rejected or response malformed
            InvalidEmbeddingError: Backend returned an empty or non-finite vector
        """
        if not isinstance(text, str) or not text.strip():
            raise BackendRequestError("Cannot embed empty text", provider=self.active.name)

        result = await self._call(
            lambda provider: provider.embed(text, task_type),
            operation_name="embed",
        )
        result.vector = validate_vector(result.vector)
        return result

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        max_tokens: Optional[int] = None,
        temperature: float = 0.1,
        task_type: TaskType = TaskType.CHAT,
    ) -> str:
        """
        Generate a completion with the active backend.

        Raises:
            BackendUnavailableError: Backend unreachable after retries
            BackendRequestError: Request rejected or response malformed
        """
        if not messages:
            raise BackendRequestError("Cannot complete an empty conversation", provider=self.active.name)

        return await self._call(
            lambda provider: provider.complete(messages, max_tokens, temperature, task_type),
            operation_name="complete",
        )

    async def _call(
        self,
        operation: Callable[[EmbeddingProvider], Awaitable[T]],
        operation_name: str,
    ) -> T:
        provider = self.active
        if not provider.is_configured():
            raise BackendUnavailableError(
                f"Provider {provider.name} is not configured",
                provider=provider.name,
                retryable=False,
            )

        async def attempt() -> T:
            try:
                return await asyncio.wait_for(operation(provider), timeout=provider.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise BackendUnavailableError(
                    f"{provider.name} {operation_name} timed out after {provider.timeout_seconds}s",
                    provider=provider.name,
                ) from e

        result = await retry_async(
            attempt,
            self.settings.retry,
            retry_on=(BackendUnavailableError,),
            should_retry=lambda e: getattr(e, "retryable", True),
            operation_name=f"{provider.name} {operation_name}",
            sleep=self._sleep,
        )
        if not result.success:
            raise result.error
        return result.result

    async def aclose(self) -> None:
        """Close every provider's HTTP resources."""
        for provider in self._providers.values():
            await provider.aclose()

    async def __aenter__(self) -> "EmbeddingProviderGateway":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
