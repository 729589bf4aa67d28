"""
Base class for embedding/completion backends.

Each backend is one EmbeddingProvider subclass registered under a
ProviderType. HTTP transport, timeout handling and mapping of transport or
status failures onto BackendUnavailableError / BackendRequestError live here
so that subclasses only build payloads and parse responses.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config.settings import ProviderSettings
from ..core.exceptions import BackendRequestError, BackendUnavailableError
from ..core.types import ChatMessage, EmbeddingResult, ProviderType, TaskType


logger = logging.getLogger(__name__)

ERROR_BODY_PREVIEW = 200


class EmbeddingProvider(ABC):
    """
    Capability interface of an embedding/completion backend.

    Subclasses set ``provider_type`` and implement embed() and complete().
    Instances hold no per-call state and may be shared across tasks.
    """

    provider_type: ProviderType

    def __init__(
        self,
        settings: ProviderSettings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the provider.

        Args:
            settings: Connection settings for this backend
            client: Optional shared HTTP client (created lazily if omitted)
        """
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return self.provider_type.value

    @property
    def timeout_seconds(self) -> float:
        return self.settings.timeout_seconds

    def is_configured(self) -> bool:
        """Whether the settings are complete enough to attempt a call."""
        return bool(self.settings.base_url and self.settings.api_key)

    def model_for_task(self, task_type: TaskType) -> str:
        """Model name used for a task type."""
        return self.settings.model_for_task(task_type)

    @abstractmethod
    async def embed(self, text: str, task_type: TaskType = TaskType.EMBEDDING) -> EmbeddingResult:
        """
        Embed a single text.

        Raises:
            BackendUnavailableError: Backend unreachable, timed out, or refused credentials
            BackendRequestError: Request rejected or response unparseable
        """

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[ChatMessage],
        max_tokens: Optional[int] = None,
        temperature: float = 0.1,
        task_type: TaskType = TaskType.CHAT,
    ) -> str:
        """
        Generate a completion for a chat transcript.

        Raises:
            BackendUnavailableError: Backend unreachable, timed out, or refused credentials
            BackendRequestError: Request rejected or response unparseable
        """

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded JSON object.

        Raises:
            BackendUnavailableError: Transport failure, timeout, 401/403, 429 or 5xx
            BackendRequestError: Other 4xx, or a body that is not a JSON object
        """
        client = self._get_client()
        logger.debug(f"Making request to {self.name}: {url}")

        try:
            response = await client.post(
                url,
                json=payload,
                headers=headers,
                params=params,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Request to {self.name} timed out after {self.timeout_seconds}s")
            raise BackendUnavailableError(
                f"{self.name} request timed out after {self.timeout_seconds}s",
                provider=self.name,
            ) from e
        except httpx.TransportError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            raise BackendUnavailableError(
                f"Failed to connect to {self.name}: {e}",
                provider=self.name,
            ) from e

        status = response.status_code
        if status >= 400:
            body = response.text[:ERROR_BODY_PREVIEW]
            logger.error(f"HTTP error from {self.name}: {status} - {body}")
            if status in (401, 403):
                raise BackendUnavailableError(
                    f"{self.name} rejected credentials: {status}",
                    provider=self.name,
                    status_code=status,
                    retryable=False,
                )
            if status == 429 or status >= 500:
                raise BackendUnavailableError(
                    f"{self.name} unavailable: {status} - {body}",
                    provider=self.name,
                    status_code=status,
                )
            raise BackendRequestError(
                f"{self.name} API error: {status} - {body}",
                provider=self.name,
                status_code=status,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise BackendRequestError(
                f"Invalid JSON response from {self.name}: {e}",
                provider=self.name,
                status_code=status,
            ) from e

        if not isinstance(data, dict):
            raise BackendRequestError(
                f"Unexpected response shape from {self.name}: {type(data).__name__}",
                provider=self.name,
                status_code=status,
            )
        return data

    def _malformed(self, what: str) -> BackendRequestError:
        return BackendRequestError(
            f"Malformed response from {self.name}: missing {what}",
            provider=self.name,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def messages_to_dicts(messages: Sequence[ChatMessage]) -> List[Dict[str, str]]:
    return [m.to_dict() for m in messages]
