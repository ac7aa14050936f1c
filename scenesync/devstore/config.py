"""
Configuration for the SceneSync dev store.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Dev store configuration loaded from environment."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=9000, description="Bind port")
    log_level: str = Field(default="info", description="uvicorn log level")

    # Largest limitToLast accepted by the changes query
    max_query_limit: int = Field(default=1000, description="Maximum limitToLast value")

    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    model_config = {"env_prefix": "SCENESYNC_DEVSTORE_"}

    @property
    def base_url(self) -> str:
        """Base URL workers should be configured with."""
        return f"http://{self.host}:{self.port}"
