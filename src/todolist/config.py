"""Configuration for the todolist service."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration, read from ``TODOLIST_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="TODOLIST_")

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".todolist")
    local_filename: str = Field(default="todos.json")
    cloud_dir: Path | None = Field(default=None)  # Synced folder; local only when unset
    timezone: str = Field(default="UTC")
    locale: str = Field(default="")  # "en..." forces English quick-add rules
    persist_delay_seconds: float = Field(default=0.22, ge=0)
    watch_cloud: bool = Field(default=True)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    log_level: str = Field(default="info")

    @property
    def local_path(self) -> Path:
        return self.data_dir / self.local_filename
