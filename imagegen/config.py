from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices, field_validator
from typing import Optional, List, Union, Any

from imagegen.constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_DOWNLOAD_CONCURRENCY,
    DEFAULT_DOWNLOAD_MAX_RETRIES,
    DEFAULT_DOWNLOAD_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_OUTPUT_ROOT,
    DEFAULT_REPLICATE_BASE_URL,
    DEFAULT_REPLICATE_MODEL,
)
from imagegen.domain.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Required
    replicate_api_token: str = Field(
        default="",
        validation_alias=AliasChoices("REPLICATE_API_TOKEN"),
    )

    # Optional with defaults
    replicate_model: str = Field(
        default=DEFAULT_REPLICATE_MODEL,
        validation_alias=AliasChoices("REPLICATE_MODEL"),
    )
    replicate_base_url: str = Field(
        default=DEFAULT_REPLICATE_BASE_URL,
        validation_alias=AliasChoices("REPLICATE_BASE_URL"),
    )
    output_root: str = Field(
        default=DEFAULT_OUTPUT_ROOT, validation_alias=AliasChoices("OUTPUT_DIR")
    )
    app_name: str = "image-generator"
    app_version: str = "1.0.0"
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_file_path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LOG_FILE_PATH")
    )
    error_log_file_path: Optional[str] = Field(
        default="error.jsonl", validation_alias=AliasChoices("ERROR_LOG_FILE_PATH")
    )
    log_pretty_console: bool = Field(
        default=False, validation_alias=AliasChoices("LOG_PRETTY_CONSOLE")
    )
    redact_log_fields: Union[List[str], str] = Field(
        default_factory=lambda: ["replicate_api_token", "authorization"],
        validation_alias=AliasChoices("REDACT_LOG_FIELDS"),
    )

    # Response cache
    cache_ttl_seconds: float = Field(
        default=DEFAULT_CACHE_TTL_SECONDS,
        validation_alias=AliasChoices("CACHE_TTL_SECONDS"),
    )
    cache_sweep_interval_seconds: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("CACHE_SWEEP_INTERVAL_SECONDS")
    )

    # Asset downloads
    download_max_retries: int = Field(
        default=DEFAULT_DOWNLOAD_MAX_RETRIES,
        validation_alias=AliasChoices("DOWNLOAD_MAX_RETRIES"),
    )
    download_retry_base_delay: float = Field(
        default=DEFAULT_DOWNLOAD_RETRY_BASE_DELAY_SECONDS,
        validation_alias=AliasChoices("DOWNLOAD_RETRY_BASE_DELAY"),
    )
    download_concurrency: int = Field(
        default=DEFAULT_DOWNLOAD_CONCURRENCY,
        validation_alias=AliasChoices("DOWNLOAD_CONCURRENCY"),
    )

    # Provider polling
    provider_poll_interval_seconds: float = Field(
        default=1.0, validation_alias=AliasChoices("PROVIDER_POLL_INTERVAL_SECONDS")
    )
    provider_timeout_seconds: float = Field(
        default=300.0, validation_alias=AliasChoices("PROVIDER_TIMEOUT_SECONDS")
    )

    # Connection pool configuration
    pool_max_keepalive_connections: int = Field(
        default=10, validation_alias=AliasChoices("POOL_MAX_KEEPALIVE_CONNECTIONS")
    )
    pool_max_connections: int = Field(
        default=20, validation_alias=AliasChoices("POOL_MAX_CONNECTIONS")
    )
    pool_keepalive_expiry: float = Field(
        default=30.0, validation_alias=AliasChoices("POOL_KEEPALIVE_EXPIRY")
    )

    # HTTP timeout configuration
    http_connect_timeout: float = Field(
        default=10.0, validation_alias=AliasChoices("HTTP_CONNECT_TIMEOUT")
    )
    http_read_timeout: float = Field(
        default=120.0, validation_alias=AliasChoices("HTTP_READ_TIMEOUT")
    )
    http_write_timeout: float = Field(
        default=30.0, validation_alias=AliasChoices("HTTP_WRITE_TIMEOUT")
    )
    http_pool_timeout: float = Field(
        default=10.0, validation_alias=AliasChoices("HTTP_POOL_TIMEOUT")
    )

    @field_validator("redact_log_fields")
    @classmethod
    def parse_comma_separated(cls, v: Union[List[str], str]) -> List[str]:
        """Parse comma-separated string values into lists.

        Args:
            v: Input value which can be a string or list

        Returns:
            List of stripped, non-empty items
        """
        if isinstance(v, str):
            if v.strip() == "":
                return []
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    def __init__(self, **kwargs: Any) -> None:
        """Initialize settings object and perform validation.

        Raises:
            ConfigurationError: If required settings are missing or a tuning
                value is out of range
        """
        super().__init__(**kwargs)
        self._validate_required()
        self._validate_tuning()

    @property
    def effective_sweep_interval(self) -> float:
        """Sweep period; defaults to the TTL itself."""
        return self.cache_sweep_interval_seconds or self.cache_ttl_seconds

    def _validate_required(self) -> None:
        """Validate that the provider credential is configured."""
        if not (self.replicate_api_token and self.replicate_api_token.strip()):
            raise ConfigurationError(
                "API token is required. Set REPLICATE_API_TOKEN in your environment or .env.",
                config_key="REPLICATE_API_TOKEN",
            )

    def _validate_tuning(self) -> None:
        errors = []
        if self.cache_ttl_seconds <= 0:
            errors.append("CACHE_TTL_SECONDS must be positive.")
        if (
            self.cache_sweep_interval_seconds is not None
            and self.cache_sweep_interval_seconds <= 0
        ):
            errors.append("CACHE_SWEEP_INTERVAL_SECONDS must be positive.")
        if self.download_max_retries < 1:
            errors.append("DOWNLOAD_MAX_RETRIES must be at least 1.")
        if self.download_retry_base_delay < 0:
            errors.append("DOWNLOAD_RETRY_BASE_DELAY must be non-negative.")
        if self.download_concurrency < 1:
            errors.append("DOWNLOAD_CONCURRENCY must be at least 1.")
        if errors:
            raise ConfigurationError("\n".join(errors))
