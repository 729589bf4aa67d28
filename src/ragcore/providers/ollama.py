"""
Ollama backend.

Thin client for Ollama's native REST API (/api/embed, /api/chat). Requests
are always non-streaming.
"""

import logging
from typing import Optional, Sequence

from ..core.types import ChatMessage, EmbeddingResult, ProviderType, TaskType
from .base import EmbeddingProvider, messages_to_dicts


logger = logging.getLogger(__name__)


class OllamaProvider(EmbeddingProvider):
    """
    HTTP client for a local or remote Ollama server.

    Example:
        >>> provider = OllamaProvider(ProviderSettings(
        ...     provider=ProviderType.OLLAMA,
        ...     base_url="http://localhost:11434",
        ...     embedding_model="nomic-embed-text",
        ... ))
        >>> result = await provider.embed("What is 2+2?")
    """

    provider_type = ProviderType.OLLAMA

    def is_configured(self) -> bool:
        # Ollama does not use API keys
        return bool(self.settings.base_url)

    @property
    def base_url(self) -> str:
        return self.settings.base_url.rstrip("/")

    async def embed(self, text: str, task_type: TaskType = TaskType.EMBEDDING) -> EmbeddingResult:
        model = self.model_for_task(task_type)
        data = await self._post_json(
            f"{self.base_url}/api/embed",
            {"model": model, "input": text},
        )

        # /api/embed returns "embeddings"; the legacy /api/embeddings shape is "embedding"
        embeddings = data.get("embeddings")
        if isinstance(embeddings, list) and embeddings:
            vector = embeddings[0]
        elif isinstance(data.get("embedding"), list):
            vector = data["embedding"]
        else:
            raise self._malformed("embeddings")

        return EmbeddingResult(
            vector=vector,
            model=data.get("model") or model,
            provider=self.name,
        )

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        max_tokens: Optional[int] = None,
        temperature: float = 0.1,
        task_type: TaskType = TaskType.CHAT,
    ) -> str:
        payload = {
            "model": self.model_for_task(task_type),
            "messages": messages_to_dicts(messages),
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens or self.settings.max_tokens,
            },
        }
        data = await self._post_json(f"{self.base_url}/api/chat", payload)

        message = data.get("message")
        if not isinstance(message, dict) or "content" not in message:
            raise self._malformed("message.content")

        logger.debug(
            f"Ollama completion: prompt_eval_count={data.get('prompt_eval_count')}, "
            f"eval_count={data.get('eval_count')}"
        )
        return message["content"] or ""
