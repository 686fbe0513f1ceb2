# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from gallery.auth.gate import require_admin
from gallery.auth.pins import create_pin_hash, is_valid_pin, verify_pin_hash
from gallery.auth.users import ROLES, UserRecord, YamlUserStore, is_valid_user_id
from gallery.errors import Conflict, InvalidInput, NotFound, Unauthorized
from gallery.infra.media_store import LocalMediaStore, normalize_public_id
from gallery.permissions import ensure_can_delete_user

logger = logging.getLogger(__name__)

FOLDER_RE = re.compile(r"^[A-Za-z0-9_-]+$")

MSG_AUTH_FAILED = "No se pudo verificar la identidad"
MSG_PIN_FORMAT = "Introduce un PIN válido (4 a 10 dígitos)"
MSG_USER_NOT_FOUND = "Usuario no encontrado"

# Sentinel for "field not sent" in partial updates.
UNSET: Any = object()


def _require_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(message)
    return value.strip()


def _optional_text(value: Any, message: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInput(message)
    return value.strip()


def validate_folder(value: Any, *, reserved: str = "") -> str:
    folder = _require_text(value, "Indica la carpeta del usuario")
    if not FOLDER_RE.fullmatch(folder):
        raise InvalidInput("La carpeta solo puede contener letras, números, '-' y '_'")
    if reserved and folder == reserved:
        raise Conflict(f"La carpeta '{folder}' está reservada")
    return folder


def _validate_role(value: Any) -> str:
    if value not in ROLES:
        raise InvalidInput("Rol de usuario no válido")
    return value


def _ensure_unique(store: YamlUserStore, *, display_name: Optional[str], folder: Optional[str], exclude_id: Optional[str] = None) -> None:
    criteria = {"displayName": display_name, "folder": folder}
    if store.find_by_filter(criteria, exclude_id=exclude_id) is not None:
        raise Conflict()


def _avatar_fields(media: Optional[LocalMediaStore], raw_public_id: str) -> Dict[str, Optional[str]]:
    public_id = normalize_public_id(raw_public_id)
    url = media.url_for(public_id) if (media is not None and public_id) else None
    return {"avatarPublicId": public_id or None, "avatarUrl": url}


# ------------------ queries ------------------


def list_users(store: YamlUserStore) -> List[UserRecord]:
    return store.list_users()


def get_user(store: YamlUserStore, user_id: str) -> UserRecord:
    if not is_valid_user_id(user_id):
        raise InvalidInput("Identificador de usuario no válido")
    user = store.find_by_id(user_id)
    if user is None:
        raise NotFound(MSG_USER_NOT_FOUND)
    return user


# ------------------ administration (admin only) ------------------


def register_user(
    *,
    store: YamlUserStore,
    actor: UserRecord,
    display_name: Any,
    folder: Any,
    pin: Any,
    pin_hint: Any = None,
    avatar_public_id: Any = None,
    role: Any = None,
    media: Optional[LocalMediaStore] = None,
    reserved_folder: str = "",
) -> UserRecord:
    require_admin(actor)

    name = _require_text(display_name, "Indica el nombre del usuario")
    folder_ok = validate_folder(folder, reserved=reserved_folder)
    if not is_valid_pin(pin):
        raise InvalidInput(MSG_PIN_FORMAT)
    hint = _optional_text(pin_hint, "La pista del PIN debe ser texto")
    avatar = _optional_text(avatar_public_id, "Identificador de avatar no válido")
    resolved_role = _validate_role(role) if role is not None else "member"

    _ensure_unique(store, display_name=name, folder=folder_ok)

    doc: Dict[str, Any] = {
        "displayName": name,
        "folder": folder_ok,
        "pinHash": create_pin_hash(pin),
        "pinHint": hint or None,
        "role": resolved_role,
    }
    if avatar:
        doc.update(_avatar_fields(media, avatar))

    user = store.insert_one(doc)
    logger.info("User %s registered by %s (role=%s)", user.id, actor.id, user.role)
    return user


def update_user(
    *,
    store: YamlUserStore,
    actor: UserRecord,
    user_id: str,
    fields: Mapping[str, Any],
    media: Optional[LocalMediaStore] = None,
    reserved_folder: str = "",
) -> UserRecord:
    """Partial update; only keys present in ``fields`` are touched.

    An empty ``pin`` removes the stored hash (the account can no longer log
    in), an empty ``pinHint``/``avatarPublicId`` removes that field.
    """
    require_admin(actor)
    if not is_valid_user_id(user_id):
        raise InvalidInput("Identificador de usuario no válido")

    set_fields: Dict[str, Any] = {}
    unset_fields: List[str] = []

    if "displayName" in fields:
        set_fields["displayName"] = _require_text(fields["displayName"], "Indica el nombre del usuario")

    if "folder" in fields:
        set_fields["folder"] = validate_folder(fields["folder"], reserved=reserved_folder)

    if "role" in fields:
        set_fields["role"] = _validate_role(fields["role"])

    if "pin" in fields:
        pin = fields["pin"]
        pin = pin.strip() if isinstance(pin, str) else pin
        if pin == "":
            unset_fields.append("pinHash")
        elif is_valid_pin(pin):
            set_fields["pinHash"] = create_pin_hash(pin)
        else:
            raise InvalidInput(MSG_PIN_FORMAT)

    if "pinHint" in fields:
        hint = _optional_text(fields["pinHint"], "La pista del PIN debe ser texto")
        if hint:
            set_fields["pinHint"] = hint
        else:
            unset_fields.append("pinHint")

    if "avatarPublicId" in fields:
        raw = _optional_text(fields["avatarPublicId"], "Identificador de avatar no válido")
        if raw is None:
            raise InvalidInput("Identificador de avatar no válido")
        avatar = _avatar_fields(media, raw)
        if not avatar["avatarPublicId"]:
            unset_fields.extend(["avatarPublicId", "avatarUrl"])
        else:
            set_fields["avatarPublicId"] = avatar["avatarPublicId"]
            if avatar["avatarUrl"]:
                set_fields["avatarUrl"] = avatar["avatarUrl"]
            else:
                unset_fields.append("avatarUrl")

    if not set_fields and not unset_fields:
        raise InvalidInput("No hay datos para actualizar")

    if "displayName" in set_fields or "folder" in set_fields:
        _ensure_unique(
            store,
            display_name=set_fields.get("displayName"),
            folder=set_fields.get("folder"),
            exclude_id=user_id,
        )

    user = store.update_one(user_id, set_fields, unset_fields)
    if user is None:
        raise NotFound(MSG_USER_NOT_FOUND)
    changed = sorted(set(set_fields) | set(unset_fields))
    logger.info("User %s updated by %s (%s)", user_id, actor.id, ", ".join(changed))
    return user


def delete_user(*, store: YamlUserStore, actor: UserRecord, user_id: str) -> None:
    if not is_valid_user_id(user_id):
        raise InvalidInput("Identificador de usuario no válido")
    ensure_can_delete_user(actor, user_id)
    if not store.delete_one(user_id):
        raise NotFound(MSG_USER_NOT_FOUND)
    logger.info("User %s deleted by %s", user_id, actor.id)


# ------------------ self service ------------------


def verify_pin(*, store: YamlUserStore, user_id: Any, pin: Any) -> UserRecord:
    """Check a login attempt.

    Unknown user, user without PIN and wrong PIN all fail with the same
    message so the response does not reveal which one it was.
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidInput("Selecciona un usuario")
    if not is_valid_user_id(user_id.strip()):
        raise InvalidInput("Selecciona un usuario válido")
    if not is_valid_pin(pin):
        raise InvalidInput(MSG_PIN_FORMAT)

    user = store.find_by_id(user_id.strip())
    if user is None or not user.can_authenticate or not verify_pin_hash(pin, user.pin_hash):
        logger.info("PIN verification failed for %s", user_id.strip())
        raise Unauthorized(MSG_AUTH_FAILED)

    logger.info("PIN verified for %s", user.id)
    return user


def reset_pin(
    *,
    store: YamlUserStore,
    user: UserRecord,
    current_pin: Any,
    new_pin: Any,
    pin_hint: Any = UNSET,
) -> UserRecord:
    if not is_valid_pin(current_pin):
        raise InvalidInput("Introduce correctamente tu PIN actual")
    if not is_valid_pin(new_pin):
        raise InvalidInput(MSG_PIN_FORMAT)
    if pin_hint is not UNSET and pin_hint is not None and not isinstance(pin_hint, str):
        raise InvalidInput("La pista del PIN debe ser texto")

    existing = store.find_by_id(user.id)
    if existing is None or not existing.can_authenticate:
        raise NotFound(MSG_USER_NOT_FOUND)
    if not verify_pin_hash(current_pin, existing.pin_hash):
        raise Unauthorized("El PIN actual no es correcto")

    set_fields: Dict[str, Any] = {"pinHash": create_pin_hash(new_pin)}
    unset_fields: List[str] = []
    if isinstance(pin_hint, str):
        if pin_hint.strip():
            set_fields["pinHint"] = pin_hint.strip()
        else:
            unset_fields.append("pinHint")

    updated = store.update_one(user.id, set_fields, unset_fields)
    if updated is None:
        raise NotFound(MSG_USER_NOT_FOUND)
    logger.info("PIN changed for %s", user.id)
    return updated


def update_avatar(
    *,
    store: YamlUserStore,
    media: LocalMediaStore,
    user: UserRecord,
    data: bytes,
    filename: str,
    avatar_folder: str,
) -> UserRecord:
    """Upload a new profile picture and drop the previous one."""
    previous = user.avatar_public_id
    own_folder = f"{avatar_folder}/{user.id}"
    res = media.upload(
        data,
        folder=own_folder,
        filename=filename,
        tags=(f"gallery-user:{user.id}", "profile-avatar"),
    )

    updated = store.update_one(user.id, {"avatarPublicId": res.public_id, "avatarUrl": res.url})
    if updated is None:
        media.destroy(res.public_id)
        raise NotFound(MSG_USER_NOT_FOUND)

    # Only the user's own uploads are removed; an avatar pointing elsewhere is left alone.
    if previous and previous != res.public_id and previous.startswith(own_folder + "/"):
        try:
            media.destroy(previous)
        except (OSError, InvalidInput):
            logger.warning("Failed to remove previous avatar %s", previous, exc_info=True)

    return updated
