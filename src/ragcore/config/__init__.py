"""
Configuration for ragcore.
"""

from .settings import (
    RagConfig,
    RagSettings,
    ProviderSettings,
    ChunkingSettings,
    RetrievalSettings,
    CacheSettings,
    IngestionSettings,
    load_settings,
)

__all__ = [
    "RagConfig",
    "RagSettings",
    "ProviderSettings",
    "ChunkingSettings",
    "RetrievalSettings",
    "CacheSettings",
    "IngestionSettings",
    "load_settings",
]
