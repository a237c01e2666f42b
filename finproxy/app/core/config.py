import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return [str(v).strip() for v in raw if str(v).strip()]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # JSON lists are the documented format; comma or space separated values
    # are accepted so a hand-edited .env doesn't take the proxy down.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(v).strip() for v in parsed if str(v).strip()]

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if part not in origins:
            origins.append(part)
    return origins


class Settings(BaseSettings):
    """Proxy settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Provider credentials use the same variable names the dashboard deployment
    already exports (ALPHA_VANTAGE_KEY, FINNHUB_TOKEN, ...).
    """

    # Debug mode - enables exception messages in 500 responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 30.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Upstream call settings
    upstream_timeout: float = 30.0  # Hard deadline for one upstream GET
    upstream_user_agent: str = "FinDashboard/1.0"

    # Response cache settings
    cache_default_ttl: float = 10.0
    cache_max_size: int = 1000
    cache_cleanup_interval: float = 30.0

    # Rate limiting settings (defaults apply to scopes missing from the host registry)
    rate_limit_default_capacity: float = 60.0
    rate_limit_default_refill_per_second: float = 1.0
    rate_limit_max_buckets: int = 1000
    rate_limit_cleanup_interval: float = 300.0

    # Share one upstream call between concurrent misses for the same URL
    proxy_single_flight: bool = False

    # Server-held provider credentials
    alpha_vantage_key: str = ""
    finnhub_token: str = ""
    polygon_api_key: str = ""
    twelve_data_api_key: str = ""

    @field_validator(
        "upstream_timeout",
        "cache_default_ttl",
        "cache_cleanup_interval",
        "rate_limit_cleanup_interval",
        "httpx_connect_timeout",
        "httpx_read_timeout",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("Durations must be positive")
        return v

    @field_validator("cache_max_size", "rate_limit_max_buckets")
    @classmethod
    def validate_size_positive(cls, v: int) -> int:
        """Validate table sizes are at least 1."""
        if v < 1:
            raise ValueError("Table sizes must be at least 1")
        return v

    @field_validator(
        "rate_limit_default_capacity", "rate_limit_default_refill_per_second"
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: float) -> float:
        """Validate rate limit values are positive."""
        if v <= 0:
            raise ValueError("Rate limit values must be positive")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
