"""
OpenAI and Azure OpenAI backends.

Both speak the same request/response format; Azure differs in URL layout
(deployments instead of model names), the api-version query parameter and
the api-key header.
"""

import logging
from typing import Any, Dict, Optional, Sequence

from ..core.types import ChatMessage, EmbeddingResult, ProviderType, TaskType
from .base import EmbeddingProvider, messages_to_dicts


logger = logging.getLogger(__name__)


class OpenAIProvider(EmbeddingProvider):
    """
    Client for the OpenAI REST API.

    Endpoints:
    - POST {base_url}/embeddings
    - POST {base_url}/chat/completions
    """

    provider_type = ProviderType.OPENAI

    def _headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.settings.api_key}"}
        if self.settings.organization:
            headers["OpenAI-Organization"] = self.settings.organization
        return headers

    def _url(self, operation: str, model: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{operation}"

    def _params(self) -> Optional[Dict[str, str]]:
        return None

    def _embedding_payload(self, text: str, model: str) -> Dict[str, Any]:
        return {"input": text, "model": model}

    def _chat_payload(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": messages_to_dicts(messages),
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

    async def embed(self, text: str, task_type: TaskType = TaskType.EMBEDDING) -> EmbeddingResult:
        model = self.model_for_task(task_type)
        data = await self._post_json(
            self._url("embeddings", model),
            self._embedding_payload(text, model),
            headers=self._headers(),
            params=self._params(),
        )

        try:
            vector = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed("data[0].embedding")

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
        model = self.model_for_task(task_type)
        data = await self._post_json(
            self._url("chat/completions", model),
            self._chat_payload(
                messages,
                model,
                max_tokens or self.settings.max_tokens,
                temperature,
            ),
            headers=self._headers(),
            params=self._params(),
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed("choices[0].message.content")

        usage = data.get("usage") or {}
        logger.debug(
            f"{self.name} completion used {usage.get('total_tokens', 'unknown')} tokens"
        )
        return content or ""


class AzureOpenAIProvider(OpenAIProvider):
    """
    Client for Azure OpenAI deployments.

    ``base_url`` is the resource endpoint; model names are deployment names.
    """

    provider_type = ProviderType.AZURE_OPENAI

    def _headers(self) -> Dict[str, str]:
        return {"api-key": self.settings.api_key}

    def _url(self, operation: str, model: str) -> str:
        endpoint = self.settings.base_url.rstrip("/")
        return f"{endpoint}/openai/deployments/{model}/{operation}"

    def _params(self) -> Optional[Dict[str, str]]:
        return {"api-version": self.settings.api_version or "2024-02-15-preview"}

    def _embedding_payload(self, text: str, model: str) -> Dict[str, Any]:
        return {"input": text}

    def _chat_payload(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> Dict[str, Any]:
        payload = super()._chat_payload(messages, model, max_tokens, temperature)
        payload.pop("model")
        return payload
