
"""Settings for the chain engine and its HTTP binding."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from expertchain.core.chain.schemas import RetryOptions

_ENV_PREFIX = "EXPERTCHAIN_"


class CacheSettings(BaseModel):
    enabled: bool = True
    ttl_s: int = Field(default=3600, ge=1)
    max_size: int = Field(default=1000, ge=1)


class BreakerSettings(BaseModel):
    enabled: bool = True
    failure_threshold: int = Field(default=5, ge=1)
    open_seconds: int = Field(default=30, ge=1)
    half_open_max_trials: int = Field(default=1, ge=1)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    to_file: bool = False
    log_dir: Optional[str] = None
    max_bytes: int = 5_000_000
    backup_count: int = 5


class LLMSettings(BaseModel):
    provider: str = "off"
    url: str = "http://127.0.0.1:8001/v1/chat/completions"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    timeout_s: float = 45.0


class RetrievalSettings(BaseModel):
    provider: str = "memory"
    collection: str = "sample_documents"
    qdrant_location: str = "http://127.0.0.1:6333"
    qdrant_api_key: Optional[str] = None
    qdrant_timeout_s: int = Field(default=30, ge=1)
    embedding_url: str = "http://127.0.0.1:8001/v1/embeddings"
    embedding_model: str = "text-embedding-3-small"
    embedding_api_key: Optional[str] = None


class EvaluationSettings(BaseModel):
    enabled: bool = False
    model: Optional[str] = None
    temperature: float = Field(default=0.2, ge=0, le=2)


class ChainSettings(BaseModel):
    default_retry: RetryOptions = Field(default_factory=RetryOptions)
    max_concurrency: Optional[int] = Field(default=None, ge=1)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)


# (section, field) -> environment variable suffix
_ENV_FIELDS: dict[tuple[str, str], str] = {
    ("default_retry", "max_attempts"): "RETRY_MAX_ATTEMPTS",
    ("default_retry", "base_delay_s"): "RETRY_BASE_DELAY_S",
    ("default_retry", "backoff_multiplier"): "RETRY_BACKOFF_MULTIPLIER",
    ("default_retry", "jitter"): "RETRY_JITTER",
    ("cache", "enabled"): "CACHE_ENABLED",
    ("cache", "ttl_s"): "CACHE_TTL_S",
    ("cache", "max_size"): "CACHE_MAX_SIZE",
    ("breaker", "enabled"): "BREAKERS_ENABLED",
    ("breaker", "failure_threshold"): "BREAKER_FAILURE_THRESHOLD",
    ("breaker", "open_seconds"): "BREAKER_OPEN_SECONDS",
    ("breaker", "half_open_max_trials"): "BREAKER_HALFOPEN_MAX_TRIALS",
    ("logging", "level"): "LOG_LEVEL",
    ("logging", "to_file"): "LOG_TO_FILE",
    ("logging", "log_dir"): "LOG_DIR",
    ("logging", "max_bytes"): "LOG_MAX_BYTES",
    ("logging", "backup_count"): "LOG_BACKUP_COUNT",
    ("llm", "provider"): "LLM_PROVIDER",
    ("llm", "url"): "LLM_URL",
    ("llm", "model"): "LLM_MODEL",
    ("llm", "api_key"): "LLM_API_KEY",
    ("llm", "timeout_s"): "LLM_TIMEOUT_S",
    ("retrieval", "provider"): "VECTOR_PROVIDER",
    ("retrieval", "collection"): "VECTOR_COLLECTION",
    ("retrieval", "qdrant_location"): "QDRANT_LOCATION",
    ("retrieval", "qdrant_api_key"): "QDRANT_API_KEY",
    ("retrieval", "qdrant_timeout_s"): "QDRANT_TIMEOUT_S",
    ("retrieval", "embedding_url"): "EMBEDDING_URL",
    ("retrieval", "embedding_model"): "EMBEDDING_MODEL",
    ("retrieval", "embedding_api_key"): "EMBEDDING_API_KEY",
    ("evaluation", "enabled"): "EVALUATION_ENABLED",
    ("evaluation", "model"): "EVALUATION_MODEL",
}

_BOOL_VALUES = {"on": True, "true": True, "1": True, "yes": True, "off": False, "false": False, "0": False, "no": False}


def _env_value(raw: str) -> Any:
    normalized = raw.strip().casefold()
    if normalized in _BOOL_VALUES:
        return _BOOL_VALUES[normalized]
    return raw.strip()


def _read_file(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def _apply_env(data: dict[str, Any]) -> dict[str, Any]:
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in data.items()}
    for (section, field_name), suffix in _ENV_FIELDS.items():
        raw = os.getenv(f"{_ENV_PREFIX}{suffix}")
        if raw is None:
            continue
        section_data = merged.setdefault(section, {})
        section_data[field_name] = _env_value(raw) if field_name in {"jitter", "enabled", "to_file"} else raw.strip()

    raw_concurrency = os.getenv(f"{_ENV_PREFIX}MAX_CONCURRENCY")
    if raw_concurrency:
        merged["max_concurrency"] = raw_concurrency.strip()
    return merged


def load_settings(path: Optional[str] = None) -> ChainSettings:
    """Load settings from an optional YAML file, then apply environment overrides."""
    cfg_path = path or os.getenv(f"{_ENV_PREFIX}CONFIG_FILE")
    data = _read_file(Path(cfg_path).expanduser()) if cfg_path else {}
    return ChainSettings.model_validate(_apply_env(data))
