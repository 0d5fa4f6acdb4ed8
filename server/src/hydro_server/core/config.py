"""Server configuration."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server configuration loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="HYDRO_",
        env_file=".env",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # API settings
    api_key: Optional[str] = None  # If set, require for device and producer auth

    # Database settings
    database_url: Optional[str] = None  # Default: sqlite+aiosqlite:///./data/hydro_relay.db
    database_echo: bool = False  # Enable SQL query logging for debugging

    # Claim protocol
    claim_default_limit: int = 5  # Commands handed out per poll cycle
    claim_max_limit: int = 50
    lock_timeout_seconds: int = 60  # Claim is reclaimable after this

    # Timeout recovery
    max_attempts: int = 3  # Claims before a timed-out command is failed
    sweep_enabled: bool = True
    sweep_interval_seconds: int = 30

    # Claim/complete calls give up after this
    request_timeout_seconds: float = 10.0

    # Command validation
    master_relay_count: int = 16  # Relays 0-15 on the controller itself
    slave_relay_count: int = 8  # Relays 0-7 on remote relay boxes
    max_duration_seconds: int = 86400
    default_priority: int = 50

    # History
    history_default_limit: int = 50
    history_max_limit: int = 500


settings = Settings()
