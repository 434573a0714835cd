from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from typing import List, Optional
import uuid


DEFAULT_COLOR_PALETTE: List[str] = ["#00f2ff", "#00ff9d", "#ff0055", "#ffee00", "#7a00ff"]
SHARED_LOG_BACKENDS = ("redis", "memory")


class Settings(BaseSettings):
    APP_NAME: str = "Community Grid"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Grid geometry, in degrees
    GRID_SIZE: float = Field(default=0.0002, description="Edge length of a grid cell in degrees.")
    COLOR_PALETTE: List[str] = Field(default_factory=lambda: list(DEFAULT_COLOR_PALETTE))

    # Map view handed to clients
    MAP_CENTER_LNG: float = 85.3072
    MAP_CENTER_LAT: float = 27.7042
    MAP_ZOOM: float = 17
    MAP_STYLE_URL: str = "https://tiles.openfreemap.org/styles/liberty"

    # Identifies this replica on the shared log (informational only)
    REPLICA_ID: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])

    SHARED_LOG_BACKEND: str = Field(default="redis", description="'redis' or 'memory'.")
    REPLAY_HISTORY_ON_SUBSCRIBE: bool = Field(default=True, description="Replay every past claim when subscribing to the shared log.")
    SHARED_LOG_STREAM_KEY: str = "community_grid"
    SHARED_LOG_READ_BLOCK_MS: int = 5000
    SHARED_LOG_READ_BATCH: int = 100
    SHARED_LOG_RETRY_SECONDS: float = 2.0

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    CORS_ALLOW_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])
    SHUTDOWN_DRAIN_TIMEOUT_SECONDS: float = 5.0

    @field_validator("GRID_SIZE")
    @classmethod
    def _grid_size_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("GRID_SIZE must be positive")
        return value

    @field_validator("COLOR_PALETTE")
    @classmethod
    def _palette_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("COLOR_PALETTE must contain at least one color")
        return value

    @field_validator("SHARED_LOG_BACKEND")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in SHARED_LOG_BACKENDS:
            raise ValueError(f"SHARED_LOG_BACKEND must be one of {SHARED_LOG_BACKENDS}")
        return value

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8"
    }

settings = Settings()
