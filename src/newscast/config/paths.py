"""Filesystem paths configuration."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PathsConfig(BaseSettings):
    """Filesystem paths for the newscast pipeline.

    All paths can be overridden via environment variables with NEWSCAST_ prefix.

    Environment variables:
        NEWSCAST_BASE_PATH: Base directory (default: /srv/newscast)
    """

    model_config = SettingsConfigDict(
        env_prefix="NEWSCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    base_path: Path = Field(default=Path("/srv/newscast"))

    # Derived paths as properties
    @property
    def public_path(self) -> Path:
        return self.base_path / "public"

    @property
    def audio_path(self) -> Path:
        return self.public_path / "audio"

    @property
    def private_audio_path(self) -> Path:
        return self.base_path / "private" / "audio"

    @property
    def tmp_path(self) -> Path:
        return self.base_path / "tmp"

    @property
    def state_path(self) -> Path:
        return self.base_path / "state"

    @property
    def locks_path(self) -> Path:
        return self.state_path / "locks"

    @property
    def db_path(self) -> Path:
        return self.base_path / "db" / "newscast.sqlite3"
