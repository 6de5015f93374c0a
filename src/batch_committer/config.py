from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueImplementation(str, Enum):
    """Durable queue strategies a committer can be configured with."""

    FS = "fs"
    MEMORY = "memory"


class CommitterSettings(BaseSettings):
    """Committer settings, read from ``COMMITTER_*`` environment variables."""

    max_batch_size: int = Field(default=20, gt=0)
    queue_implementation: QueueImplementation = QueueImplementation.FS
    count_deletes_toward_threshold: bool = True
    work_dir: Optional[Path] = None
    max_per_folder: int = Field(default=500, gt=1)
    commit_leftovers_on_init: bool = False

    model_config = SettingsConfigDict(
        env_prefix="COMMITTER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> CommitterSettings:
    return CommitterSettings()
