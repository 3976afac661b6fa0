from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]
TagBackend = Literal["file", "http", "memory"]
TagBinding = Literal["latest", "run"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CD_PIPELINE_",
        env_file=".env",
        extra="ignore",
    )

    run_root: Path = Field(default=Path("_runs"))
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    tag_backend: TagBackend = Field(default="file")
    tag_store_path: Path = Field(default=Path("_state/tags.json"))
    tag_store_url: Optional[str] = Field(default=None)
    tag_store_token: Optional[str] = Field(default=None)
    tag_binding: TagBinding = Field(default="latest")

    allow_privileged: bool = Field(default=True)
    keep_workspaces: bool = Field(default=False)
    outbox_dir: Path = Field(default=Path("_state/outbox"))
    credential_ttl_s: int = Field(default=3600, ge=1)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
