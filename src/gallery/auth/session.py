# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from typing import Iterable, Optional, Protocol

from itsdangerous import Signer
from itsdangerous.encoding import want_bytes

from gallery.config import Settings
from gallery.errors import InvalidInput

logger = logging.getLogger(__name__)

COOKIE_NAME = "galleryAuth"
SESSION_MAX_AGE = 60 * 60 * 12  # 12 hours
SEPARATOR = "."
SIGNATURE_RE = re.compile(r"^[0-9a-f]{64}$")


class _HexSigner(Signer):
    """Plain HMAC-SHA256 over the value, hex encoded.

    Cookies look like ``<userId>.<hexHmac>``; the key is used as-is (no
    derivation) so any implementation holding the secret can check them.
    """

    def get_signature(self, value) -> bytes:
        value = want_bytes(value)
        key = self.derive_key()
        return self.algorithm.get_signature(key, value).hex().encode("ascii")

    def verify_signature(self, value, sig) -> bool:
        # Compare the hex text itself; decoding would accept upper-cased digits.
        sig = want_bytes(sig)
        value = want_bytes(value)
        for secret_key in reversed(self.secret_keys):
            key = self.derive_key(secret_key)
            expected = self.algorithm.get_signature(key, value).hex().encode("ascii")
            if hmac.compare_digest(sig, expected):
                return True
        return False


class SessionCodec:
    """Signs and verifies the session identifier carried in the cookie.

    ``previous_secret_keys`` are still accepted by :meth:`verify` but never
    used to sign, so the secret can be rotated without logging everyone out.
    """

    def __init__(self, secret_key: str, *, previous_secret_keys: Iterable[str] = ()) -> None:
        if not secret_key:
            raise RuntimeError("Falta la clave secreta para firmar sesiones")
        keys = [k for k in previous_secret_keys if k] + [secret_key]
        self._signer = _HexSigner(
            keys,
            sep=SEPARATOR,
            key_derivation="none",
            digest_method=hashlib.sha256,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionCodec":
        return cls(settings.secret_key, previous_secret_keys=settings.previous_secret_keys)

    def sign(self, user_id: str) -> str:
        if not user_id or SEPARATOR in user_id:
            raise InvalidInput("Identificador de usuario no válido")
        return self._signer.sign(user_id).decode("utf-8")

    def verify(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None

        user_id, _, signature = token.partition(SEPARATOR)
        if not user_id or not signature:
            return None
        if not SIGNATURE_RE.fullmatch(signature):
            return None

        try:
            valid = self._signer.verify_signature(user_id, signature)
        except (TypeError, ValueError, UnicodeError):
            logger.debug("Session cookie could not be checked", exc_info=True)
            return None
        if not valid:
            logger.debug("Session cookie signature mismatch")
            return None
        return user_id


class CookieSink(Protocol):
    def set_cookie(self, key: str, value: str = "", **kwargs) -> None: ...

    def delete_cookie(self, key: str, **kwargs) -> None: ...


def cookie_settings(settings: Settings) -> dict:
    return {"httponly": True, "samesite": "lax", "secure": settings.cookie_secure, "path": "/"}


def set_session_cookie(response: CookieSink, token: str, settings: Settings) -> None:
    response.set_cookie(COOKIE_NAME, token, max_age=SESSION_MAX_AGE, **cookie_settings(settings))


def clear_session_cookie(response: CookieSink, settings: Settings) -> None:
    response.delete_cookie(COOKIE_NAME, **cookie_settings(settings))
