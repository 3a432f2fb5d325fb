from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Database (SQLite by default, Postgres via postgresql+asyncpg://...)
    database_url: str = "sqlite+aiosqlite:///data/monitor.db"

    # Helius (discovery feed)
    helius_api_key: str = ""
    helius_api_url: str = "https://api-mainnet.helius-rpc.com/v0"
    helius_page_size: int = 100
    helius_page_delay_sec: float = 0.11
    helius_max_rps: float = 9.0  # shared by every program scan; free tier is 10

    # Token programs to scan
    spl_token_program: str = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
    token2022_program: str = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

    # DexScreener (market data)
    dexscreener_api_url: str = "https://api.dexscreener.com"
    dexscreener_chain_id: str = "solana"
    dexscreener_batch_size: int = Field(default=30, ge=1, le=30)  # API accepts at most 30
    dexscreener_max_rps: float = 5.0

    # Shared HTTP retry policy
    http_max_retries: int = 2  # additional attempts after the first
    http_backoff_base_sec: float = 2.0
    http_timeout_sec: float = 15.0
    http_max_retry_after_sec: float = 60.0

    # Qualification thresholds
    min_liquidity_usd: float = 5000.0
    min_market_cap_usd: float = 10000.0

    # Discovery window
    overlap_minutes: int = 30
    bootstrap_lookback_hours: int = 24

    # Enrichment lifecycle
    max_retries_no_pool: int = 3
    reenrich_stale_hours: float = 4.0

    # Scheduler (0 disables periodic runs)
    fetch_interval_hours: float = 8.0
    fetch_on_start: bool = False

    # Dashboard API
    dashboard_enabled: bool = True
    dashboard_host: str = "0.0.0.0"
    dashboard_port: int = 3001
    api_max_page_size: int = 200
    api_trigger_rate_limit: str = "6/minute"


settings = Settings()
