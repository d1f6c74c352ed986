from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    DATABASE_URL: str = "sqlite:///dockday.db"
    RISK_RULES_CONFIG: str = "config/risk_rules.yaml"
    LOG_LEVEL: str = "INFO"
    # Connection pool (ignored for SQLite)
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    # Shipxy GetETAShips feed
    SHIPXY_API_KEY: str | None = None
    SHIPXY_BASE_URL: str = "https://api.shipxy.com/apicall/v3"
    SHIPXY_TIMEOUT: float = 30.0
    PORT_CODE: str = "CNNJG"
    # Fetch window around "now" (seconds)
    FUTURE_WINDOW_SECONDS: int = 7 * 24 * 3600
    HISTORY_WINDOW_SECONDS: int = 30 * 24 * 3600
    # Event rules
    DRAUGHT_SPIKE_THRESHOLD: float = 1.5
    ARRIVAL_WINDOW_HOURS: float = 6.0
    # ETA within this many hours in the past counts as arrived
    ARRIVED_WINDOW_HOURS: float = 24.0
    # Scheduler
    FETCH_INTERVAL_MINUTES: float = 30.0
    SCHEDULER_ENABLED: bool = True
    # CORS origins (comma-separated string for env var support)
    CORS_ORIGINS: str = "http://localhost:5173"


settings = Settings()
