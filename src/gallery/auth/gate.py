# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Resolve an inbound request into the authenticated user.

The gate only needs two capabilities from the web framework: reading a cookie
(``CookieSource``) and clearing one on the outbound response (``CookieSink``).
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol

from gallery.auth.session import COOKIE_NAME, CookieSink, SessionCodec, clear_session_cookie
from gallery.auth.users import UserRecord, YamlUserStore
from gallery.config import Settings
from gallery.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

MSG_UNAUTHORIZED = "Debes iniciar sesión para continuar"
MSG_ADMIN_ONLY = "Solo disponible para administradores"


class CookieSource(Protocol):
    def get_cookie(self, name: str) -> Optional[str]: ...


class MappingCookies:
    """CookieSource over any mapping of cookie name -> value (e.g. ``request.cookies``)."""

    def __init__(self, cookies: Optional[Mapping[str, str]]) -> None:
        self._cookies = cookies or {}

    def get_cookie(self, name: str) -> Optional[str]:
        return self._cookies.get(name)


class AuthGate:
    def __init__(self, codec: SessionCodec, users: YamlUserStore, settings: Settings) -> None:
        self.codec = codec
        self.users = users
        self.settings = settings

    def resolve_current_user(self, source: CookieSource) -> Optional[UserRecord]:
        """Return the session's user, or None when there is no usable session."""
        user_id = self.codec.verify(source.get_cookie(COOKIE_NAME))
        if not user_id:
            return None
        user = self.users.find_by_id(user_id)
        if user is None:
            logger.info("Session refers to a missing user %s", user_id)
        return user

    def require_authenticated_user(self, source: CookieSource, response: Optional[CookieSink] = None) -> UserRecord:
        user = self.resolve_current_user(source)
        if user is not None:
            return user
        if response is not None:
            clear_session_cookie(response, self.settings)
        raise Unauthorized(MSG_UNAUTHORIZED, clear_session=True)


def require_admin(user: UserRecord) -> None:
    if user.role != "admin":
        raise Forbidden(MSG_ADMIN_ONLY)
