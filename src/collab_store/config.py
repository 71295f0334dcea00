"""
Configuration for the collab-store service.

Uses pydantic-settings for environment variable loading.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service configuration loaded from environment."""

    # Storage backend
    backend: Literal["memory", "postgres"] = Field(default="memory", description="Document store backend")
    database_url: Optional[str] = Field(default=None, description="PostgreSQL conninfo string")
    create_schema: bool = Field(default=True, description="Create tables on startup if missing")

    # Connection pool
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    pool_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for a pooled connection")
    pool_max_waiting: int = Field(default=100, ge=0)

    log_level: str = Field(default="INFO")

    model_config = {"env_prefix": "COLLAB_STORE_"}
