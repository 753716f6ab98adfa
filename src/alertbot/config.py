"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketDataSettings(BaseSettings):
    """Finnhub quote/candle provider settings."""

    model_config = SettingsConfigDict(env_prefix="FINNHUB_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://finnhub.io/api/v1"
    min_interval_seconds: float = 1.3  # spacing between outbound call starts
    provider_cooldown_seconds: float = 65.0  # global cooldown after a 429
    endpoint_cooldown_seconds: float = 3600.0  # per-path cooldown after a plain 403
    rate_limit_retries: int = 1
    request_timeout_seconds: float = 15.0
    fail_fast_forbidden: bool = True
    candle_lookback_days: int = 260


class AISettings(BaseSettings):
    """Optional AI reviewer that confirms or vetoes candidate signals."""

    model_config = SettingsConfigDict(env_prefix="AI_")

    enabled: bool = False
    api_key: SecretStr = SecretStr("")
    base_url: str = "https://api.anthropic.com/v1/messages"
    model: str = "claude-3-5-haiku-latest"
    timeout_seconds: float = 9.5
    max_tokens: int = 700
    temperature: float = 0.2


class AlertSettings(BaseSettings):
    """Alert policy: duplicate window, daily cap, rejection cooldown.

    All fields configurable via ALERTS_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="ALERTS_")

    duplicate_window_hours: float = 4.0
    max_alerts_per_day: int = 10
    rejection_threshold: int = 3  # AI rejections before a timed cooldown opens
    cooldown_hours: float = 24.0
    watchlist_limit: int = 50
    synthetic_fallback_enabled: bool = True
    discovery_symbols: list[str] = []
    user_concurrency: int = 1  # users scanned in parallel by a global cycle


class OutcomeSettings(BaseSettings):
    """Outcome evaluation thresholds."""

    model_config = SettingsConfigDict(env_prefix="OUTCOME_")

    move_threshold_pct: float = 5.0  # win/loss move when no stop/target is stored


class DatabaseSettings(BaseSettings):
    """SQLite persistence location."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    path: str = "data/alerts.db"


class ServerSettings(BaseSettings):
    """Live alert WebSocket server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class ServiceSettings(BaseSettings):
    """Background loop intervals."""

    model_config = SettingsConfigDict(env_prefix="SERVICE_")

    scan_interval: int = 900  # seconds between global alert cycles
    outcome_interval: int = 3600  # seconds between outcome evaluation cycles


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str | None = None
    market: MarketDataSettings = MarketDataSettings()
    ai: AISettings = AISettings()
    alerts: AlertSettings = AlertSettings()
    outcome: OutcomeSettings = OutcomeSettings()
    database: DatabaseSettings = DatabaseSettings()
    server: ServerSettings = ServerSettings()
    service: ServiceSettings = ServiceSettings()
