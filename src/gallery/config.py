# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

# Anchor default data paths to the project root (works well with editable installs).
BASE_DIR = Path(__file__).resolve().parents[2]
DEFAULT_DATA_DIR = BASE_DIR / "data"

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_AVATAR_FOLDER = "user-avatars"


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _split_csv(value: str | None) -> Tuple[str, ...]:
    return tuple(part.strip() for part in (value or "").split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    secret_key: str
    users_path: Path
    media_dir: Path
    previous_secret_keys: Tuple[str, ...] = ()
    environment: str = "development"
    media_url: str = "/media"
    avatar_folder: str = DEFAULT_AVATAR_FOLDER
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def cookie_secure(self) -> bool:
        return self.is_production


def load_settings() -> Settings:
    """Read the process configuration from the environment.

    The signing secret is mandatory: a process without one must not start.
    """
    secret = os.getenv("GALLERY_SECRET_KEY") or os.getenv("USER_PIN_SECRET")
    if not secret:
        raise RuntimeError("Falta GALLERY_SECRET_KEY (o USER_PIN_SECRET) en entorno")

    users_path = Path(os.getenv("GALLERY_USERS_PATH", str(DEFAULT_DATA_DIR / "users.yml"))).resolve()
    media_dir = Path(os.getenv("GALLERY_MEDIA_DIR", str(DEFAULT_DATA_DIR / "media"))).resolve()

    return Settings(
        secret_key=secret,
        users_path=users_path,
        media_dir=media_dir,
        previous_secret_keys=_split_csv(os.getenv("GALLERY_PREVIOUS_SECRET_KEYS")),
        environment=os.getenv("GALLERY_ENV", "development"),
        media_url=os.getenv("GALLERY_MEDIA_URL", "/media").rstrip("/") or "/media",
        avatar_folder=avatar_folder_from_env(),
        max_upload_bytes=int(os.getenv("GALLERY_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
    )


def runner_options() -> dict:
    return {
        "host": os.getenv("GALLERY_HOST", "0.0.0.0"),
        "port": int(os.getenv("GALLERY_PORT", "8000")),
        "reload": _get_bool(os.getenv("GALLERY_RELOAD"), default=False),
        "log_level": os.getenv("GALLERY_LOG_LEVEL", "INFO").upper(),
    }


def avatar_folder_from_env() -> str:
    """Media folder reserved for profile pictures (not usable as a user folder)."""
    return os.getenv("GALLERY_AVATAR_FOLDER", "").strip().strip("/") or DEFAULT_AVATAR_FOLDER
