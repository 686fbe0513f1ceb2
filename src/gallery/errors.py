# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Typed errors raised by the gallery services.

Each error carries the HTTP status the API answers with and a message that is
safe to show to the user.
"""

from __future__ import annotations


class GalleryError(Exception):
    status_code = 500
    default_message = "Error interno"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(GalleryError, ValueError):
    status_code = 400
    default_message = "Datos no válidos"


class Unauthorized(GalleryError):
    status_code = 401
    default_message = "No autorizado"

    def __init__(self, message: str = "", *, clear_session: bool = False) -> None:
        super().__init__(message)
        self.clear_session = clear_session


class Forbidden(GalleryError):
    status_code = 403
    default_message = "Acceso denegado"


class NotFound(GalleryError):
    status_code = 404
    default_message = "No encontrado"


class Conflict(GalleryError):
    status_code = 409
    default_message = "Ya existe un usuario o carpeta con ese nombre"
