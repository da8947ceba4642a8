"""Library configuration using Pydantic Settings."""

import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings."""

    model_config = SettingsConfigDict(
        env_prefix="NEIGHBORS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Index Configuration
    default_index_type: str = "linear"  # linear, kdtree, kdtree_single, kmeans, hierarchical, composite
    rebalance_budget: float = Field(
        default=sys.float_info.max,
        gt=0.0,
        description="Numerator of the rebalance factor handed to incremental inserts",
    )

    # Search Configuration
    default_checks: int = Field(default=32, ge=-1)
    default_eps: float = Field(default=0.0, ge=0.0)
    default_sorted: bool = True

    # Logging Configuration
    log_level: str = "INFO"
    log_format_general: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Global settings instance
settings = Settings()  # type: ignore[call-arg]
