from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Transaction Replay Engine"
    app_version: str = "1.0.0"

    # Logging settings
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Processing settings
    shard_count: int = Field(1, ge=1)  # 1 processes every operation on a single router
    queue_size: int = Field(1000, ge=1)  # operations buffered per shard

    # Feature flags
    enable_detailed_logging: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Environment-specific configurations
class DevelopmentSettings(Settings):
    log_level: str = "DEBUG"
    log_format: Literal["json", "text"] = "text"
    enable_detailed_logging: bool = True


class ProductionSettings(Settings):
    log_level: str = "INFO"
    enable_detailed_logging: bool = False


class TestingSettings(Settings):
    log_level: str = "WARNING"  # Reduce noise in tests
    shard_count: int = 1


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()
