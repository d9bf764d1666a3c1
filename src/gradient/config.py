"""
Runtime configuration.

Settings come from ``GRADIENT_*`` environment variables, optionally seeded
from a ``.env`` file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaValidationError

from gradient.exceptions import ValidationError
from gradient.media import MediaPipeline, Thumbnailer
from gradient.notifications import LocalReminderService
from gradient.storage import BaseStore, LocalBlobStore, MemoryStore, PocketBaseStore, SQLiteStore
from gradient.sync import SyncManager

logger = logging.getLogger(__name__)

ENV_PREFIX = "GRADIENT_"

# Searched in order; the first existing file wins
ENV_LOCATIONS = [
    Path.cwd() / ".env",
    Path.home() / "gradient" / ".env",
]


class Settings(BaseModel):
    """Gradient runtime settings."""

    backend: Literal["memory", "sqlite", "pocketbase"] = "sqlite"
    database_path: Path = Path("~/gradient/data/gradient.db")

    pocketbase_url: str = "http://127.0.0.1:8090"
    pocketbase_identity: str | None = None
    pocketbase_password: str | None = None

    media_root: Path = Path("~/gradient/media")
    thumbnail_size: int = Field(default=320, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)
    log_level: str = "WARNING"


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Build Settings from the environment.

    Values already present in the environment take precedence over the
    ``.env`` file.
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        for env_path in ENV_LOCATIONS:
            if env_path.exists():
                load_dotenv(env_path)
                break

    values = {
        name: os.environ[f"{ENV_PREFIX}{name.upper()}"]
        for name in Settings.model_fields
        if f"{ENV_PREFIX}{name.upper()}" in os.environ
    }
    try:
        return Settings.model_validate(values)
    except SchemaValidationError as e:
        raise ValidationError(f"Invalid configuration: {e}") from e


def build_store(settings: Settings) -> BaseStore:
    if settings.backend == "memory":
        return MemoryStore()
    if settings.backend == "sqlite":
        return SQLiteStore(settings.database_path)
    return PocketBaseStore(
        settings.pocketbase_url,
        identity=settings.pocketbase_identity,
        password=settings.pocketbase_password,
        timeout=settings.request_timeout,
    )


def build_manager(settings: Settings, reminders: LocalReminderService | None = None) -> SyncManager:
    """Wire store, blob storage, media pipeline and reminders. The store is not yet initialized."""
    store = build_store(settings)
    pipeline = MediaPipeline(LocalBlobStore(settings.media_root), Thumbnailer(max_size=settings.thumbnail_size))
    logger.debug("Using %s backend", settings.backend)
    return SyncManager(store, pipeline, reminders or LocalReminderService())
