import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from pathlib import Path

import pytest

from gallery.auth.pins import create_pin_hash
from gallery.auth.session import SessionCodec
from gallery.auth.users import YamlUserStore
from gallery.config import Settings
from gallery.infra.media_store import LocalMediaStore

SECRET = "test-secret-key"

# PNG signature plus filler; the media store never decodes images.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        secret_key=SECRET,
        users_path=tmp_path / "data" / "users.yml",
        media_dir=tmp_path / "data" / "media",
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture()
def media(settings: Settings) -> LocalMediaStore:
    return LocalMediaStore(settings.media_dir, base_url=settings.media_url, max_bytes=settings.max_upload_bytes)


@pytest.fixture()
def store(settings: Settings, media: LocalMediaStore) -> YamlUserStore:
    return YamlUserStore(settings.users_path, media=media)


@pytest.fixture()
def codec() -> SessionCodec:
    return SessionCodec(SECRET)


@pytest.fixture()
def make_user(store: YamlUserStore):
    """Insert a user straight into the store (bypassing the admin-only service)."""

    def _make(display_name: str, folder: str, pin: str = "1234", role: str = "member", **extra):
        doc = {
            "displayName": display_name,
            "folder": folder,
            "pinHash": create_pin_hash(pin),
            "role": role,
        }
        doc.update(extra)
        return store.insert_one(doc)

    return _make


@pytest.fixture()
def png_bytes() -> bytes:
    return PNG_BYTES
