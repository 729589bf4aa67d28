"""
Embedding and completion backends.

Available providers:
- OpenAIProvider / AzureOpenAIProvider: OpenAI-format REST APIs
- GeminiProvider: Google Gemini
- OllamaProvider: Local Ollama server
- SyntheticProvider: Deterministic offline vectors
"""

from .base import EmbeddingProvider
from .gateway import EmbeddingProviderGateway, PROVIDER_REGISTRY
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai import AzureOpenAIProvider, OpenAIProvider
from .synthetic import SyntheticProvider, synthetic_embedding

__all__ = [
    "EmbeddingProvider",
    "EmbeddingProviderGateway",
    "PROVIDER_REGISTRY",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "AzureOpenAIProvider",
    "SyntheticProvider",
    "synthetic_embedding",
]
