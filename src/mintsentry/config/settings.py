"""Application settings using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """mintsentry configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Application
    app_name: str = Field(default="mintsentry", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Minimum log level"
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")

    # Solana RPC (comma-separated list, one picked at random per request)
    solana_rpc_urls: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Comma-separated Solana RPC endpoint URLs",
    )
    solana_rpc_api_key: SecretStr = Field(
        default=SecretStr(""), description="API key appended to RPC requests"
    )
    solana_ws_url: str = Field(
        default="wss://api.mainnet-beta.solana.com",
        description="Solana RPC websocket URL for program subscriptions",
    )

    # Market data providers
    dexscreener_base_url: str = Field(
        default="https://api.dexscreener.com", description="DexScreener API base URL"
    )
    raydium_pools_url: str = Field(
        default="https://api.raydium.io/v2/sdk/liquidity/mainnet.json",
        description="Raydium liquidity pool listing",
    )
    provider_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Per-request HTTP timeout"
    )

    # Rate limiter
    rate_limit_capacity: int = Field(default=200, ge=1, description="Requests per refill")
    rate_limit_refill_seconds: float = Field(
        default=60.0, gt=0, description="Seconds between budget refills"
    )
    rate_limit_max_concurrent: int = Field(
        default=10, ge=1, description="Maximum outstanding requests"
    )
    rate_limit_min_spacing_ms: int = Field(
        default=100, ge=0, description="Minimum milliseconds between dispatches"
    )

    # Retry policy
    retry_max_retries: int = Field(default=5, ge=0, description="Retries for transient errors")
    retry_base_delay_ms: int = Field(default=500, ge=1, description="Backoff base delay")
    retry_max_delay_ms: int = Field(default=60_000, ge=1, description="Backoff cap")

    # Cache
    cache_max_size: int = Field(default=5000, ge=1, description="Maximum cached entries")
    cache_fetch_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Global per-key fetch deadline"
    )

    # Detection
    candidate_source: Literal["boosted_feed", "mint_subscription"] = Field(
        default="boosted_feed", description="Where token candidates come from"
    )
    poll_interval_seconds: float = Field(
        default=1.2, gt=0, description="Boosted feed poll interval"
    )
    processed_ttl_seconds: int = Field(
        default=3600, ge=1, description="How long a processed mint is remembered"
    )
    processed_max_size: int = Field(
        default=50_000, ge=1, description="Maximum remembered processed mints"
    )
    top_holders_count: int = Field(
        default=10, ge=1, description="Accounts counted for holder concentration"
    )
    liquidity_source: Literal["dexscreener", "raydium"] = Field(
        default="dexscreener", description="Provider used for liquidity"
    )

    # Default criteria for users without stored settings
    default_liquidity_threshold: float | None = Field(default=None, ge=0)
    default_require_mint_authority: bool | None = Field(default=None)
    default_top_holders_threshold: float | None = Field(default=None, ge=0, le=100)
    default_min_boost_amount: float | None = Field(default=None, ge=0)
    default_max_token_age_minutes: int | None = Field(default=None, ge=0)
    default_buy_amount_sol: float | None = Field(default=None, gt=0)

    # Trading mode
    trading_mode: Literal["simulation", "live"] = Field(
        default="simulation", description="Trading mode: simulation or live"
    )

    @field_validator("solana_rpc_urls")
    @classmethod
    def validate_rpc_urls(cls, v: str) -> str:
        """Validate every RPC URL in the list."""
        urls = [u.strip() for u in v.split(",") if u.strip()]
        if not urls:
            raise ValueError("At least one Solana RPC URL is required")
        for url in urls:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"RPC URL must start with http:// or https://: {url}")
        return ",".join(urls)

    @field_validator("solana_ws_url")
    @classmethod
    def validate_ws_url(cls, v: str) -> str:
        """Validate websocket URL format."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("Websocket URL must start with ws:// or wss://")
        return v

    @field_validator("dexscreener_base_url", "raydium_pools_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """Validate provider URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Provider URL must start with http:// or https://")
        return v.rstrip("/")

    @property
    def rpc_url_list(self) -> list[str]:
        """RPC URLs as a list."""
        return self.solana_rpc_urls.split(",")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
