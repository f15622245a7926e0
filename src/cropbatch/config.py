"""cropbatch configuration using pydantic-settings.

All configuration is strongly typed and supports environment variables
and .env files. Engines take explicit parameters and only fall back to
these values as defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # "console" or "json"

    # Region effects
    MAX_SOFTEN_RADIUS: float = Field(default=40.0, gt=0)  # blur radius at intensity 1
    MOSAIC_BLOCK_DIVISOR: float = Field(default=20.0, gt=0)  # max(w, h) / divisor

    # Crop policy (caller side; the crop engine only requires positive area)
    MIN_CROP_DIMENSION: int = Field(default=10, ge=1)

    # Export
    DEFAULT_QUALITY: int = Field(default=90, ge=1, le=100)
    DEFAULT_SUFFIX: str = "_cropped"

    # Batch
    MAX_WORKERS: int = Field(default=4, ge=1)


# Singleton instance for import convenience
settings = Settings()
