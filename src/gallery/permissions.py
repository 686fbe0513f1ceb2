# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request, Response

from gallery.auth.gate import AuthGate, MappingCookies, require_admin
from gallery.auth.users import UserRecord
from gallery.errors import Forbidden

MSG_NOT_OWNER = "No tienes permiso sobre esta foto"
MSG_SELF_DELETE = "No puedes eliminar el usuario con el que has iniciado sesión"


# ------------------ ownership policy ------------------


def owns_resource(user: UserRecord, resource_path: str) -> bool:
    """True iff ``resource_path`` lives inside the user's folder."""
    if not user.folder or not isinstance(resource_path, str):
        return False
    return resource_path.startswith(user.folder + "/")


def can_manage_users(user: UserRecord) -> bool:
    return user.role == "admin"


def ensure_owns_resource(user: UserRecord, resource_path: str) -> None:
    # Admins are scoped to their own folder for photos too.
    if not owns_resource(user, resource_path):
        raise Forbidden(MSG_NOT_OWNER)


def ensure_can_delete_user(actor: UserRecord, target_id: str) -> None:
    require_admin(actor)
    if actor.id == target_id:
        raise Forbidden(MSG_SELF_DELETE)


# ------------------ FastAPI dependencies ------------------


def get_gate(request: Request) -> AuthGate:
    return request.app.state.gate


def load_user_from_request(request: Request) -> Optional[UserRecord]:
    return get_gate(request).resolve_current_user(MappingCookies(request.cookies))


def current_user_optional(request: Request) -> Optional[UserRecord]:
    u = getattr(request.state, "user", None)
    if u is not None:
        return u
    return load_user_from_request(request)


def require_user(request: Request, response: Response) -> UserRecord:
    u = current_user_optional(request)
    if u is not None:
        return u
    return get_gate(request).require_authenticated_user(MappingCookies(request.cookies), response)


def require_admin_user(user: UserRecord = Depends(require_user)) -> UserRecord:
    require_admin(user)
    return user
