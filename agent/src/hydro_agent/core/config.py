"""Configuration management using Pydantic Settings."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceConfig(BaseModel):
    """Controller identification settings."""

    id: str = "ESP32_MASTER_001"
    name: str = "Hydro Controller"


class ServerConfig(BaseModel):
    """Server connection settings."""

    url: str = "http://localhost:8000"
    api_key: str = ""
    timeout: int = 10


class PollingConfig(BaseModel):
    """Command polling settings."""

    interval: int = 5
    limit: int = 5
    lock_timeout_seconds: int = 60
    partitions: list[str] = Field(default_factory=lambda: ["master", "slave"])


class RelayConfig(BaseModel):
    """Simulated relay hardware."""

    master_count: int = 16
    slave_count: int = 8
    # Relays that fail when switched, for exercising failure reports
    faulty: list[int] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_output: bool = False


class Settings(BaseSettings):
    """Main settings container."""

    model_config = SettingsConfigDict(
        env_prefix="HYDRO_",
        env_nested_delimiter="__",
    )

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    relays: RelayConfig = Field(default_factory=RelayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from a YAML file."""
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls(**data) if data else cls()
