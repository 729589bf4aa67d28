"""
Configuration loader for the ragcore retrieval engine.

Settings are resolved in three layers:
1. Built-in defaults
2. Optional YAML file (deep-merged over the defaults)
3. Environment variables (a ``.env`` file is loaded first when present)
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from ..core.exceptions import ConfigError
from ..core.types import ProviderType, TaskType
from ..utils.retry import RetryConfig


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "chunking": {
        "max_chunk_size": 1000,
        "overlap": 100,
    },
    "retrieval": {
        "top_k": 5,
        "similarity_threshold": 0.7,
        "max_top_k": 50,
        "include_optional_fields": True,
    },
    "cache": {
        "enabled": True,
        "ttl_seconds": 3600,
    },
    "ingestion": {
        "embed_concurrency": 4,
        "normalize_text": True,
    },
    "storage": {
        "db_path": "data/ragcore.db",
    },
    "logging": {
        "level": "INFO",
        "structured": False,
    },
    "providers": {
        "default_provider": "openai",
        "mock_mode": False,
        "fallback_to_synthetic": True,
        "synthetic_dimensions": 1536,
        "retry": {
            "max_attempts": 3,
            "initial_delay_ms": 250,
            "max_delay_ms": 4000,
            "backoff_multiplier": 2.0,
            "jitter": True,
        },
        "openai": {
            "base_url": "https://api.openai.com/v1",
            "api_key": None,
            "organization": None,
            "embedding_model": "text-embedding-3-small",
            "chat_model": "gpt-4o-mini",
            "timeout_seconds": 30,
            "max_tokens": 4096,
        },
        "azure_openai": {
            "base_url": None,
            "api_key": None,
            "api_version": "2024-02-15-preview",
            "embedding_model": "text-embedding-3-small",
            "chat_model": "gpt-4o-mini",
            "timeout_seconds": 30,
            "max_tokens": 4096,
        },
        "gemini": {
            "base_url": "https://generativelanguage.googleapis.com/v1beta",
            "api_key": None,
            "embedding_model": "models/embedding-001",
            "chat_model": "models/gemini-1.5-pro-latest",
            "timeout_seconds": 30,
            "max_tokens": 8192,
        },
        "ollama": {
            "base_url": "http://localhost:11434",
            "embedding_model": "nomic-embed-text",
            "chat_model": "llama3.2",
            "timeout_seconds": 120,
            "max_tokens": 4096,
        },
    },
}

# (environment variable, dotted config key, converter)
ENV_OVERRIDES = [
    ("RAG_DEFAULT_PROVIDER", "providers.default_provider", str),
    ("RAG_MOCK_MODE", "providers.mock_mode", "bool"),
    ("RAG_DB_PATH", "storage.db_path", str),
    ("RAG_MAX_CHUNK_SIZE", "chunking.max_chunk_size", int),
    ("RAG_CHUNK_OVERLAP", "chunking.overlap", int),
    ("RAG_CACHE_TTL_SECONDS", "cache.ttl_seconds", float),
    ("RAG_TOP_K", "retrieval.top_k", int),
    ("RAG_SIMILARITY_THRESHOLD", "retrieval.similarity_threshold", float),
    ("RAG_EMBED_CONCURRENCY", "ingestion.embed_concurrency", int),
    ("RAG_LOG_LEVEL", "logging.level", str),
    ("OPENAI_API_KEY", "providers.openai.api_key", str),
    ("OPENAI_ORGANIZATION", "providers.openai.organization", str),
    ("AZURE_OPENAI_API_KEY", "providers.azure_openai.api_key", str),
    ("AZURE_OPENAI_ENDPOINT", "providers.azure_openai.base_url", str),
    ("GEMINI_API_KEY", "providers.gemini.api_key", str),
    ("OLLAMA_BASE_URL", "providers.ollama.base_url", str),
    ("OLLAMA_EMBED_MODEL", "providers.ollama.embedding_model", str),
    ("OLLAMA_CHAT_MODEL", "providers.ollama.chat_model", str),
]

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass
class ProviderSettings:
    """
    Connection settings for one embedding/completion backend.

    Attributes:
        provider: Backend this block configures
        base_url: API root (Azure: resource endpoint)
        api_key: Credential, if the backend needs one
        embedding_model: Model (Azure: deployment) used for embeddings
        chat_model: Model (Azure: deployment) used for completions
        timeout_seconds: Per-request timeout
        max_tokens: Default completion length
        api_version: Azure API version
        organization: OpenAI organization header
    """
    provider: ProviderType
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    embedding_model: str = ""
    chat_model: str = ""
    timeout_seconds: float = 30.0
    max_tokens: int = 4096
    api_version: Optional[str] = None
    organization: Optional[str] = None

    def model_for_task(self, task_type: TaskType) -> str:
        """Return the model name configured for a task type."""
        if task_type == TaskType.CHAT:
            return self.chat_model
        return self.embedding_model

    @classmethod
    def from_dict(cls, provider: ProviderType, data: Dict[str, Any]) -> "ProviderSettings":
        """Create from dictionary."""
        return cls(
            provider=provider,
            base_url=data.get("base_url"),
            api_key=data.get("api_key"),
            embedding_model=data.get("embedding_model") or "",
            chat_model=data.get("chat_model") or "",
            timeout_seconds=float(data.get("timeout_seconds", 30)),
            max_tokens=int(data.get("max_tokens", 4096)),
            api_version=data.get("api_version"),
            organization=data.get("organization"),
        )


@dataclass
class ChunkingSettings:
    max_chunk_size: int = 1000
    overlap: int = 100


@dataclass
class RetrievalSettings:
    top_k: int = 5
    similarity_threshold: float = 0.7
    max_top_k: int = 50
    include_optional_fields: bool = True


@dataclass
class CacheSettings:
    enabled: bool = True
    ttl_seconds: float = 3600.0


@dataclass
class IngestionSettings:
    embed_concurrency: int = 4
    normalize_text: bool = True


@dataclass
class RagSettings:
    """
    Fully resolved, validated ragcore settings.

    Attributes:
        chunking: Chunk size and overlap
        retrieval: Default ranking parameters
        cache: Response cache switch and TTL
        ingestion: Embedding concurrency and text normalization
        db_path: SQLite database location
        default_provider: Backend used by the gateway
        mock_mode: Force deterministic synthetic embeddings
        fallback_to_synthetic: Use synthetic embeddings when the default
            backend is not configured
        synthetic_dimensions: Dimensionality of synthetic vectors
        retry: Backoff settings for transient backend failures
        providers: Per-backend connection settings
        log_level: Logging level name
        structured_logging: Emit JSON log lines
    """
    chunking: ChunkingSettings = field(default_factory=ChunkingSettings)
    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    ingestion: IngestionSettings = field(default_factory=IngestionSettings)
    db_path: str = "data/ragcore.db"
    default_provider: ProviderType = ProviderType.OPENAI
    mock_mode: bool = False
    fallback_to_synthetic: bool = True
    synthetic_dimensions: int = 1536
    retry: RetryConfig = field(default_factory=RetryConfig)
    providers: Dict[ProviderType, ProviderSettings] = field(default_factory=dict)
    log_level: str = "INFO"
    structured_logging: bool = False

    def provider_settings(self, provider: ProviderType) -> ProviderSettings:
        """Settings for a backend, falling back to an empty block."""
        return self.providers.get(provider) or ProviderSettings(provider=provider)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RagSettings":
        """
        Build settings from a merged configuration dictionary.

        Raises:
            ConfigError: If a value is missing, malformed, or out of range
        """
        try:
            chunking = data.get("chunking", {})
            retrieval = data.get("retrieval", {})
            cache = data.get("cache", {})
            ingestion = data.get("ingestion", {})
            providers = data.get("providers", {})
            log_cfg = data.get("logging", {})

            try:
                default_provider = ProviderType(
                    str(providers.get("default_provider", "openai")).lower()
                )
            except ValueError:
                raise ConfigError(
                    f"Unknown provider: {providers.get('default_provider')!r}"
                )

            provider_blocks = {}
            for provider in ProviderType:
                block = providers.get(provider.value)
                if isinstance(block, dict):
                    provider_blocks[provider] = ProviderSettings.from_dict(provider, block)

            settings = cls(
                chunking=ChunkingSettings(
                    max_chunk_size=int(chunking.get("max_chunk_size", 1000)),
                    overlap=int(chunking.get("overlap", 100)),
                ),
                retrieval=RetrievalSettings(
                    top_k=int(retrieval.get("top_k", 5)),
                    similarity_threshold=float(retrieval.get("similarity_threshold", 0.7)),
                    max_top_k=int(retrieval.get("max_top_k", 50)),
                    include_optional_fields=bool(retrieval.get("include_optional_fields", True)),
                ),
                cache=CacheSettings(
                    enabled=bool(cache.get("enabled", True)),
                    ttl_seconds=float(cache.get("ttl_seconds", 3600)),
                ),
                ingestion=IngestionSettings(
                    embed_concurrency=int(ingestion.get("embed_concurrency", 4)),
                    normalize_text=bool(ingestion.get("normalize_text", True)),
                ),
                db_path=str(data.get("storage", {}).get("db_path", "data/ragcore.db")),
                default_provider=default_provider,
                mock_mode=bool(providers.get("mock_mode", False)),
                fallback_to_synthetic=bool(providers.get("fallback_to_synthetic", True)),
                synthetic_dimensions=int(providers.get("synthetic_dimensions", 1536)),
                retry=RetryConfig.from_dict(providers.get("retry", {})),
                providers=provider_blocks,
                log_level=str(log_cfg.get("level", "INFO")).upper(),
                structured_logging=bool(log_cfg.get("structured", False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

        settings.validate()
        return settings

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: If any setting is out of range
        """
        if self.chunking.max_chunk_size <= 0:
            raise ConfigError("chunking.max_chunk_size must be positive")
        if self.chunking.overlap < 0:
            raise ConfigError("chunking.overlap must be non-negative")
        if self.chunking.overlap >= self.chunking.max_chunk_size:
            raise ConfigError("chunking.overlap must be less than max_chunk_size")
        if self.retrieval.max_top_k <= 0:
            raise ConfigError("retrieval.max_top_k must be positive")
        if not 0 < self.retrieval.top_k <= self.retrieval.max_top_k:
            raise ConfigError(
                f"retrieval.top_k must be between 1 and {self.retrieval.max_top_k}"
            )
        if not -1.0 <= self.retrieval.similarity_threshold <= 1.0:
            raise ConfigError("retrieval.similarity_threshold must be within [-1, 1]")
        if self.cache.ttl_seconds <= 0:
            raise ConfigError("cache.ttl_seconds must be positive")
        if self.ingestion.embed_concurrency <= 0:
            raise ConfigError("ingestion.embed_concurrency must be positive")
        if self.synthetic_dimensions <= 0:
            raise ConfigError("providers.synthetic_dimensions must be positive")
        if self.retry.max_attempts <= 0:
            raise ConfigError("providers.retry.max_attempts must be positive")


class RagConfig:
    """
    Configuration for the ragcore engine.

    Loads an optional YAML file over the built-in defaults and applies
    environment variable overrides.

    Example:
        >>> config = RagConfig(Path("config/ragcore.yaml"))
        >>> config.get("retrieval.top_k")
        5
        >>> settings = config.settings
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        environ: Optional[Dict[str, str]] = None,
        load_env_file: bool = True,
    ):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional; RAG_CONFIG is
                consulted when omitted)
            environ: Environment mapping (defaults to os.environ)
            load_env_file: Whether to load a ``.env`` file into the environment
        """
        if load_env_file and environ is None:
            load_dotenv()

        self.environ = os.environ if environ is None else environ

        if config_path is None and self.environ.get("RAG_CONFIG"):
            config_path = Path(self.environ["RAG_CONFIG"])

        self.config_path = Path(config_path) if config_path else None
        self.config = _deep_merge(DEFAULT_CONFIG, self._load_config()) if self.config_path \
            else copy.deepcopy(DEFAULT_CONFIG)
        self._apply_env_overrides()
        self._settings: Optional[RagSettings] = None

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigError(f"Config file must contain a mapping: {self.config_path}")
        return config

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, key, converter in ENV_OVERRIDES:
            raw = self.environ.get(env_name)
            if raw is None or raw == "":
                continue

            try:
                value = _parse_bool(raw) if converter == "bool" else converter(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {env_name}: {e}") from e

            self._set(key, value)
            logger.debug(f"Applied environment override {env_name} -> {key}")

    def _set(self, key: str, value: Any) -> None:
        node = self.config
        parts = key.split(".")
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value

    @property
    def settings(self) -> RagSettings:
        """Validated, typed settings (built on first access)."""
        if self._settings is None:
            self._settings = RagSettings.from_dict(self.config)
        return self._settings

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


def load_settings(config_path: Optional[Path] = None) -> RagSettings:
    """Load settings from defaults, an optional YAML file, and the environment."""
    return RagConfig(config_path).settings
