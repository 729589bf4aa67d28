"""
Google Gemini backend.

Uses the generativelanguage REST API with the key passed as a query
parameter. System messages become ``systemInstruction`` and assistant turns
are sent with the ``model`` role.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..core.types import ChatMessage, EmbeddingResult, ProviderType, TaskType
from .base import EmbeddingProvider


logger = logging.getLogger(__name__)


class GeminiProvider(EmbeddingProvider):
    """
    Client for the Gemini API.

    Endpoints:
    - POST {base_url}/{model}:embedContent?key=...
    - POST {base_url}/{model}:generateContent?key=...
    """

    provider_type = ProviderType.GEMINI

    top_p = 0.95
    top_k = 40

    @staticmethod
    def _qualified(model: str) -> str:
        return model if model.startswith("models/") else f"models/{model}"

    def _url(self, model: str, operation: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{self._qualified(model)}:{operation}"

    def _params(self) -> Dict[str, str]:
        return {"key": self.settings.api_key}

    async def embed(self, text: str, task_type: TaskType = TaskType.EMBEDDING) -> EmbeddingResult:
        model = self.model_for_task(task_type)
        payload = {
            "model": self._qualified(model),
            "content": {"parts": [{"text": text}]},
        }
        data = await self._post_json(self._url(model, "embedContent"), payload, params=self._params())

        try:
            vector = data["embedding"]["values"]
        except (KeyError, TypeError):
            raise self._malformed("embedding.values")

        return EmbeddingResult(vector=vector, model=model, provider=self.name)

    def _contents(self, messages: Sequence[ChatMessage]) -> Dict[str, Any]:
        system_parts: List[Dict[str, str]] = []
        contents: List[Dict[str, Any]] = []

        for message in messages:
            if message.role == "system":
                system_parts.append({"text": message.content})
                continue
            role = "model" if message.role == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": message.content}]})

        payload: Dict[str, Any] = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        return payload

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        max_tokens: Optional[int] = None,
        temperature: float = 0.1,
        task_type: TaskType = TaskType.CHAT,
    ) -> str:
        model = self.model_for_task(task_type)
        payload = self._contents(messages)
        payload["generationConfig"] = {
            "temperature": temperature,
            "topP": self.top_p,
            "topK": self.top_k,
            "maxOutputTokens": max_tokens or self.settings.max_tokens,
        }

        data = await self._post_json(self._url(model, "generateContent"), payload, params=self._params())

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed("candidates[0].content.parts")

        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
