#!/usr/bin/env python3
from __future__ import annotations

import os
from getpass import getpass
from pathlib import Path

from gallery.auth.pins import create_pin_hash, is_valid_pin
from gallery.auth.users import YamlUserStore
from gallery.config import DEFAULT_DATA_DIR, avatar_folder_from_env
from gallery.errors import Conflict, GalleryError
from gallery.services.user_service import validate_folder

USERS_PATH = Path(os.getenv("GALLERY_USERS_PATH", str(DEFAULT_DATA_DIR / "users.yml"))).resolve()


def check_folder(folder: str) -> str:
    """Same folder rules as the API, including the reserved avatar folder."""
    try:
        return validate_folder(folder, reserved=avatar_folder_from_env())
    except GalleryError as exc:
        raise SystemExit(exc.message) from None


def main() -> None:
    store = YamlUserStore(USERS_PATH)

    display_name = input("Display name: ").strip()
    folder = input("Folder: ").strip()
    role = (input("Role [member/admin]: ").strip().lower() or "member")
    pin_hint = input("PIN hint (optional): ").strip()

    if not display_name:
        raise SystemExit("El nombre no puede estar vacío")
    folder = check_folder(folder)
    if role not in ("member", "admin"):
        raise SystemExit("Rol no válido")

    pin1 = getpass("PIN (4-10 digits): ")
    pin2 = getpass("Repeat PIN: ")
    if pin1 != pin2:
        raise SystemExit("Los PIN no coinciden")
    if not is_valid_pin(pin1):
        raise SystemExit("El PIN debe tener entre 4 y 10 dígitos")

    if store.find_by_filter({"displayName": display_name, "folder": folder}) is not None:
        raise SystemExit(Conflict().message)

    user = store.insert_one(
        {
            "displayName": display_name,
            "folder": folder,
            "pinHash": create_pin_hash(pin1),
            "pinHint": pin_hint or None,
            "role": role,
        }
    )
    print(f"OK -> {USERS_PATH} (id={user.id})")


if __name__ == "__main__":
    main()
