"""
Frame Narrator Configuration
============================

This module handles configuration loading for the frame narrator service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    NARRATOR_BACKEND          -> annotation.backend
    NARRATOR_SUMMARY_BACKEND  -> summary.backend
    NARRATOR_SUMMARY_ENABLED  -> summary.enabled
    NARRATOR_SAMPLE_INTERVAL  -> sampling.interval_seconds
    NARRATOR_QUEUE_DEPTH      -> annotation.queue_depth
    NARRATOR_JOB_TIMEOUT      -> annotation.job_timeout_seconds
    NARRATOR_MAX_RETRIES      -> annotation.max_retries
    NARRATOR_FAILURE_POLICY   -> annotation.failure_policy
    NARRATOR_DATA_DIR         -> storage.directory
    NARRATOR_RAG_ENABLED      -> rag.enabled
    NARRATOR_RAG_STORE        -> rag.store
    NARRATOR_EMBEDDER         -> rag.embedder
    GEMINI_TEXT_MODEL         -> rag.answer_model
    NARRATOR_LOG_LEVEL        -> logging.level
    LLM_MAX_CONCURRENCY       -> annotation.max_concurrency
    GEMINI_MODEL              -> annotation.model
    GOOGLE_API_KEY            -> annotation.api_key
    PORT / NARRATOR_PORT      -> server.port (Cloud Run uses PORT)

Example:
    from frame_narrator.config import settings

    print(settings.sampling.interval_seconds)
    print(settings.annotation.max_concurrency)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


DEFAULT_MAX_CONCURRENCY = 100


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="frame-narrator", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class SamplingConfig(BaseModel):
    """Sampling clock and feature configuration."""

    interval_seconds: float = Field(
        default=0.25,
        gt=0,
        description="Sampling clock interval in seconds",
    )
    grid_size: int = Field(
        default=64,
        ge=1,
        le=512,
        description="Edge length of the luminance feature grid",
    )
    epsilon: float = Field(
        default=1e-6,
        ge=0,
        description="Tolerance when matching timestamps to ticks",
    )


class VisionBackendConfig(BaseModel):
    """Google Cloud Vision backend configuration."""

    credentials_path: Optional[str] = Field(
        default=None,
        description="Service account JSON (None = default credentials)",
    )
    confidence_threshold: float = Field(default=0.6, ge=0, le=1.0)
    max_labels: int = Field(default=10, ge=1)


class MockBackendConfig(BaseModel):
    """Mock backend configuration."""

    fixed_text: str = Field(
        default="",
        description="Fixed description; empty = content-derived text",
    )


class AnnotationConfig(BaseModel):
    """Frame description and dispatch configuration."""

    backend: str = Field(
        default="mock",
        description="Description backend: 'mock', 'gemini' or 'vision'",
    )
    model: Optional[str] = Field(
        default=None,
        description="Gemini model id or alias (None = gemini-2.5-flash-lite)",
    )
    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    max_concurrency: int = Field(
        default=DEFAULT_MAX_CONCURRENCY,
        ge=1,
        description="Maximum description calls in flight",
    )
    queue_depth: int = Field(
        default=8,
        ge=1,
        description="Selected frames buffered ahead of the workers",
    )
    job_timeout_seconds: Optional[float] = Field(
        default=120.0,
        gt=0,
        description="Timeout per description call (None = no limit)",
    )
    max_retries: int = Field(default=2, ge=0, description="Retries per job")
    retry_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Base retry delay, doubled per attempt",
    )
    failure_policy: str = Field(
        default="fail_fast",
        pattern="^(fail_fast|partial)$",
        description="'fail_fast' or 'partial'",
    )
    jpeg_quality: int = Field(default=85, ge=1, le=100)
    vision: VisionBackendConfig = Field(default_factory=VisionBackendConfig)
    mock: MockBackendConfig = Field(default_factory=MockBackendConfig)


class SummaryConfig(BaseModel):
    """Video summary configuration."""

    enabled: bool = Field(default=True, description="Produce a video summary")
    backend: Optional[str] = Field(
        default=None,
        description="Summary backend: 'mock' or 'gemini' (None = annotation backend)",
    )
    timeout_seconds: Optional[float] = Field(default=60.0, gt=0)


class StorageConfig(BaseModel):
    """Frame and upload storage configuration."""

    backend: str = Field(
        default="filesystem",
        description="Frame sink: 'filesystem', 'memory' or 'none'",
    )
    directory: str = Field(default="data", description="Storage directory")
    max_upload_mb: int = Field(default=500, ge=1, description="Upload size limit")


class RagConfig(BaseModel):
    """Frame index (retrieval and question answering) configuration."""

    enabled: bool = Field(default=True, description="Serve the /rag endpoints")
    auto_ingest: bool = Field(
        default=True,
        description="Index records after every successful /process-video",
    )
    embedder: Optional[str] = Field(
        default=None,
        description="Embedder: 'mock' or 'gemini' (None = follow annotation backend)",
    )
    embedding_model: str = Field(default="gemini-embedding-001")
    embedding_dimension: int = Field(
        default=3072,
        ge=1,
        description="Output dimensionality (gemini-embedding-001: 768, 1536 or 3072)",
    )
    store: str = Field(
        default="filesystem",
        description="Vector store: 'memory' or 'filesystem'",
    )
    directory: Optional[str] = Field(
        default=None,
        description="Index directory (None = <storage.directory>/index)",
    )
    answer_model: Optional[str] = Field(
        default=None,
        description="Gemini model for answers (None = annotation.model)",
    )
    query_top_k: int = Field(default=3, ge=1)
    answer_top_k: int = Field(default=10, ge=1)
    max_top_k: int = Field(default=50, ge=1)


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the frame narrator.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    annotation: AnnotationConfig = Field(default_factory=AnnotationConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    rag: RagConfig = Field(default_factory=RagConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration

    Raises:
        pydantic.ValidationError: If a value violates its constraints
    """
    if config_path is None:
        if env_path := os.environ.get("NARRATOR_CONFIG"):
            config_path = env_path
        else:
            search_paths = [
                Path("config.yaml"),
                Path("config.yml"),
                Path("/app/config.yaml"),
                Path(__file__).parent.parent.parent / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = str(path)
                    break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _parse_max_concurrency(raw: str) -> int:
    """Parse LLM_MAX_CONCURRENCY; invalid values fall back to the default."""
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        logger.warning(
            f"Invalid LLM_MAX_CONCURRENCY '{raw}'; "
            f"using default {DEFAULT_MAX_CONCURRENCY}"
        )
        return DEFAULT_MAX_CONCURRENCY
    return value


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Sampling settings
    if env_interval := os.environ.get("NARRATOR_SAMPLE_INTERVAL"):
        config_data.setdefault("sampling", {})["interval_seconds"] = float(env_interval)

    # Annotation settings
    annotation = config_data.setdefault("annotation", {})
    if env_backend := os.environ.get("NARRATOR_BACKEND"):
        annotation["backend"] = env_backend
    if env_model := os.environ.get("GEMINI_MODEL"):
        annotation["model"] = env_model
    if env_key := os.environ.get("GOOGLE_API_KEY"):
        annotation["api_key"] = env_key
    if env_conc := os.environ.get("LLM_MAX_CONCURRENCY"):
        annotation["max_concurrency"] = _parse_max_concurrency(env_conc)
    if env_depth := os.environ.get("NARRATOR_QUEUE_DEPTH"):
        annotation["queue_depth"] = int(env_depth)
    if env_timeout := os.environ.get("NARRATOR_JOB_TIMEOUT"):
        annotation["job_timeout_seconds"] = float(env_timeout)
    if env_retries := os.environ.get("NARRATOR_MAX_RETRIES"):
        annotation["max_retries"] = int(env_retries)
    if env_policy := os.environ.get("NARRATOR_FAILURE_POLICY"):
        annotation["failure_policy"] = env_policy

    # Summary settings
    if env_summary := os.environ.get("NARRATOR_SUMMARY_ENABLED"):
        config_data.setdefault("summary", {})["enabled"] = _parse_bool(env_summary)
    if env_sbackend := os.environ.get("NARRATOR_SUMMARY_BACKEND"):
        config_data.setdefault("summary", {})["backend"] = env_sbackend

    # Storage settings
    if env_dir := os.environ.get("NARRATOR_DATA_DIR"):
        config_data.setdefault("storage", {})["directory"] = env_dir

    # Retrieval settings
    rag = config_data.setdefault("rag", {})
    if env_rag := os.environ.get("NARRATOR_RAG_ENABLED"):
        rag["enabled"] = _parse_bool(env_rag)
    if env_store := os.environ.get("NARRATOR_RAG_STORE"):
        rag["store"] = env_store
    if env_embedder := os.environ.get("NARRATOR_EMBEDDER"):
        rag["embedder"] = env_embedder
    if env_text_model := os.environ.get("GEMINI_TEXT_MODEL"):
        rag["answer_model"] = env_text_model

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("NARRATOR_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("NARRATOR_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
