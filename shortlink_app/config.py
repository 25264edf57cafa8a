from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True

    # Application
    app_name: str = "Shortlink"
    app_version: str = "1.0.0"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Database (URL records and statistics live in two tables)
    database_url: str = "sqlite:///./shortlink.db"
    storage_backend: str = "sqlalchemy"  # Options: "sqlalchemy", "memory"

    # Shortener specific
    base_url: str = "http://127.0.0.1:8000"
    short_code_length: int = 6
    max_retries: int = 5  # Insert attempts before GenerationExhausted
    short_code_strategy: str = "nanoid"  # Options: "nanoid", "random"
    default_expiration_days: int = 7
    max_description_length: int = 500

    # Statistics
    click_cas_retries: int = 5  # Compare-and-swap attempts per click

    # Cache settings (redirect lookups)
    cache_backend: str = "memory"  # Options: "redis", "memory", "null"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl: int = 3600  # Upper bound; entries never outlive expires_at

    # Click dispatch
    click_dispatch: str = "task"  # Options: "task", "queue"
    queue_backend: str = "memory"  # Options: "redis_streams", "memory"
    queue_name: str = "url_clicks"
    queue_consumer_group: str = "click_workers"
    queue_batch_size: int = 100
    queue_block_ms: int = 1000
    queue_max_length: int = 10000  # In-memory backend only; oldest clicks dropped beyond it

    # Request metadata
    identity_header: str = "X-User-Id"
    country_header: str = "CF-IPCountry"

    # Quotas (None means unmetered)
    default_plan: str = "free"
    plan_limits: Dict[str, Optional[int]] = {"free": 100, "premium": None}

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
