# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from typing import Any, List, Optional

from gallery.auth.users import UserRecord
from gallery.core.metadata import build_context
from gallery.errors import GalleryError, InvalidInput, NotFound
from gallery.infra.media_store import LocalMediaStore, MediaResource, normalize_public_id
from gallery.permissions import ensure_owns_resource

logger = logging.getLogger(__name__)


def _public_id(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("Falta public_id")
    return normalize_public_id(value)


def list_photos(*, media: LocalMediaStore, folder: Optional[str] = None) -> List[MediaResource]:
    return media.search(folder=folder or None)


def upload_photo(
    *,
    media: LocalMediaStore,
    user: UserRecord,
    data: bytes,
    filename: str,
    image_name: str = "",
    album: str = "",
    description: str = "",
) -> MediaResource:
    """Store a photo in the caller's folder."""
    if not data:
        raise InvalidInput("No se ha recibido ningún archivo")
    context = build_context(image_name=image_name or filename, album=album, description=description)
    res = media.upload(
        data,
        folder=user.folder,
        filename=filename,
        context=context,
        tags=(f"gallery-user:{user.id}",),
    )
    logger.info("User %s uploaded %s", user.id, res.public_id)
    return res


def delete_photo(*, media: LocalMediaStore, user: UserRecord, public_id: Any) -> str:
    pid = _public_id(public_id)
    ensure_owns_resource(user, pid)
    result = media.destroy(pid)
    if result not in ("ok", "not found"):
        raise GalleryError("No se pudo eliminar la imagen")
    logger.info("User %s deleted %s (%s)", user.id, pid, result)
    return result


def update_photo_metadata(
    *,
    media: LocalMediaStore,
    user: UserRecord,
    public_id: Any,
    album: Any = "",
    description: Any = "",
) -> MediaResource:
    pid = _public_id(public_id)
    ensure_owns_resource(user, pid)
    context = build_context(
        album="" if album is None else album,
        description="" if description is None else description,
    )
    if not media.add_context(context, [pid]):
        raise NotFound("Imagen no encontrada")
    res = media.get(pid)
    if res is None:
        raise NotFound("Imagen no encontrada")
    return res
