"""
LiveSignals Configuration System
================================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

from pathlib import Path
from typing import List, Optional
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from .feed_config import DEFAULT_BLOG_FEEDS, DEFAULT_GITHUB_REPOS
from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FeedSettings(BaseModel):
    """Feed sources and relay configuration."""
    github_repos: List[str] = Field(default_factory=lambda: list(DEFAULT_GITHUB_REPOS), description="GitHub repositories (owner/name) to watch")
    blog_feeds: List[str] = Field(default_factory=lambda: list(DEFAULT_BLOG_FEEDS), description="RSS/Atom feed URLs")
    relay_base_url: Optional[str] = Field(default=None, description="Relay worker base URL; unset means direct mode")
    cors_proxy_url: str = Field(default="https://corsproxy.io/?", description="Proxy prefix for direct-mode feed fetches; empty fetches feeds directly")
    max_items: int = Field(default=10, ge=1, le=100, description="Items returned to the presentation layer")
    fetch_headroom: int = Field(default=4, ge=0, le=50, description="Extra items requested from the fetcher before selection")
    items_per_feed: int = Field(default=4, ge=1, le=50, description="Items kept from each RSS/Atom feed")

    @field_validator('relay_base_url')
    @classmethod
    def validate_relay_url(cls, v):
        """Treat blank relay URLs as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class RetrySettings(BaseModel):
    """Retry/backoff policy for one side of the system."""
    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempt cap per request")
    status_base_delay: float = Field(default=1.5, ge=0.0, description="Base delay after a 5xx/429 response (seconds)")
    status_max_delay: float = Field(default=7.0, ge=0.0, description="Delay ceiling after a 5xx/429 response (seconds)")
    transport_base_delay: float = Field(default=0.9, ge=0.0, description="Base delay after a transport error (seconds)")
    transport_max_delay: float = Field(default=5.0, ge=0.0, description="Delay ceiling after a transport error (seconds)")
    max_retry_after: float = Field(default=60.0, ge=0.0, description="Upper bound honored for Retry-After headers (seconds)")


def _client_retry() -> RetrySettings:
    return RetrySettings()


def _worker_retry() -> RetrySettings:
    return RetrySettings(status_base_delay=1.2, status_max_delay=5.0, transport_max_delay=4.5)


class RetryProfiles(BaseModel):
    """Retry presets for the pipeline (client) and the relay worker."""
    client: RetrySettings = Field(default_factory=_client_retry)
    worker: RetrySettings = Field(default_factory=_worker_retry)


class SummarizationSettings(BaseModel):
    """Summarization chain configuration."""
    concurrency: int = Field(default=2, ge=1, le=8, description="Concurrent summarization workers")
    prompt_content_limit: int = Field(default=5000, ge=500, le=20000, description="Max content characters placed in prompts")
    local_model_url: Optional[str] = Field(default=None, description="Local Ollama-compatible runtime URL (on-device provider)")
    local_model_name: str = Field(default="llama3.2", description="Model served by the local runtime")
    summarize_endpoint: Optional[str] = Field(default=None, description="Explicit edge summarize endpoint; defaults to {relay}/summarize")


class CacheSettings(BaseModel):
    """Client cache and upstream cache configuration."""
    store_path: Optional[str] = Field(default="data/livesignals.db", description="SQLite key-value store path; unset keeps caches in memory")
    client_cache_key: str = Field(default="livesignals:hybrid-feed-cache:v3", description="Namespaced client cache key")
    client_ttl_seconds: int = Field(default=60 * 60, ge=1, description="Client result cache TTL")
    response_ttl_seconds: int = Field(default=60 * 60, ge=1, description="Worker listing response cache TTL")
    conditional_ttl_seconds: int = Field(default=60 * 60 * 6, ge=1, description="Per-URL conditional record TTL")


class WorkerSettings(BaseModel):
    """Relay worker configuration and secrets."""
    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8787, ge=1, le=65535, description="Bind port")
    allowed_origin: Optional[str] = Field(default=None, description="CORS allowed origin; unset or '*' is permissive")
    github_token: Optional[str] = Field(default=None, description="GitHub token enabling the GraphQL fast path")
    cloudflare_account_id: Optional[str] = Field(default=None, description="Cloudflare account for Workers AI")
    cloudflare_api_token: Optional[str] = Field(default=None, description="Cloudflare API token for Workers AI")
    models: List[str] = Field(
        default=[
            "@cf/meta/llama-3.3-70b-instruct-awq",
            "@cf/meta/llama-3.3-70b-instruct-fp8-fast",
            "@cf/meta/llama-3.1-8b-instruct-fast",
        ],
        description="Workers AI models in priority order",
    )
    max_repos: int = Field(default=10, ge=1, le=50, description="Max repos accepted by /github-releases")
    max_feeds: int = Field(default=12, ge=1, le=50, description="Max feeds accepted by /rss-feed")
    content_limit: int = Field(default=2500, ge=100, le=20000, description="Content truncation for normalized items")
    summarize_content_limit: int = Field(default=6000, ge=100, le=50000, description="Content truncation for default summarize prompts")

    def has_inference_binding(self) -> bool:
        """Check whether Workers AI credentials are configured."""
        return bool(self.cloudflare_account_id and self.cloudflare_api_token)


class LimitsSettings(BaseModel):
    """Request limits."""
    request_timeout: int = Field(default=30, ge=5, le=300, description="Request timeout in seconds")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/livesignals.log", description="Log file path")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class LiveSignalsSettings(BaseSettings):
    """Main application settings."""

    feeds: FeedSettings = Field(default_factory=FeedSettings)
    retry: RetryProfiles = Field(default_factory=RetryProfiles)
    summarization: SummarizationSettings = Field(default_factory=SummarizationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="LiveSignals", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "LIVESIGNALS_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        for label, url in (
            ("feeds.relay_base_url", self.feeds.relay_base_url),
            ("summarization.local_model_url", self.summarization.local_model_url),
            ("summarization.summarize_endpoint", self.summarization.summarize_endpoint),
        ):
            if url and urlparse(url).scheme not in ("http", "https"):
                errors.append(f"{label} must be an http(s) URL: {url}")

        if not self.feeds.github_repos and not self.feeds.blog_feeds:
            errors.append("At least one GitHub repo or blog feed is required")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_summarize_endpoint(self) -> str:
        """Resolve the edge summarize endpoint, empty when edge inference is off."""
        if self.summarization.summarize_endpoint:
            return self.summarization.summarize_endpoint
        if self.feeds.relay_base_url:
            return f"{self.feeds.relay_base_url.rstrip('/')}/summarize"
        return ""

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> LiveSignalsSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = LiveSignalsSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


# Global settings instance
_settings: Optional[LiveSignalsSettings] = None


def get_settings(reload: bool = False) -> LiveSignalsSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
