from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    VERSION: str = "0.1.0"
    # SQLite for local use; point at postgresql+psycopg2://... in deployment
    DATABASE_URL: str = "sqlite:///./convoytrack.db"
    LOG_LEVEL: str = "INFO"
    # Connection pool (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    # Create missing tables at application start-up
    AUTO_CREATE_TABLES: bool = True
    # Bearer token for API access (unset: all requests pass, local dev mode)
    CONVOYTRACK_API_TOKEN: str | None = None
    # CORS origins (comma-separated string for env var support)
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "60/minute"
    # Checkpoint / danger zone catalogue for map overlays
    OVERLAYS_CONFIG: str = "config/overlays.yaml"
    # Catalogue items farther than this from a convoy route are not drawn
    OVERLAY_RADIUS_KM: float = 25.0


settings = Settings()
