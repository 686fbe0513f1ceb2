# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import hmac
import logging
import re
import secrets

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from argon2.profiles import RFC_9106_LOW_MEMORY

from gallery.errors import InvalidInput

logger = logging.getLogger(__name__)

KEY_LENGTH = 64
SALT_BYTES = 16
PIN_RE = re.compile(r"^[0-9]{4,10}$")

_PARAMS = RFC_9106_LOW_MEMORY


def is_valid_pin(value: object) -> bool:
    """PIN shape accepted by every handler: 4 to 10 digits."""
    return isinstance(value, str) and bool(PIN_RE.fullmatch(value))


def _derive(pin: str, salt: bytes) -> bytes:
    return hash_secret_raw(
        secret=pin.encode("utf-8"),
        salt=salt,
        time_cost=_PARAMS.time_cost,
        memory_cost=_PARAMS.memory_cost,
        parallelism=_PARAMS.parallelism,
        hash_len=KEY_LENGTH,
        type=Type.ID,
    )


def create_pin_hash(pin: str) -> str:
    if not pin or not isinstance(pin, str):
        raise InvalidInput("El PIN no puede estar vacío")
    salt = secrets.token_bytes(SALT_BYTES)
    return f"{salt.hex()}:{_derive(pin, salt).hex()}"


def verify_pin_hash(pin: str, stored_hash: str) -> bool:
    """Check ``pin`` against a ``salt:keyHex`` value.

    Never raises: a malformed stored value, a wrong PIN or a failing
    derivation all read as ``False``.
    """
    if not stored_hash or not isinstance(stored_hash, str) or not isinstance(pin, str):
        return False

    parts = stored_hash.split(":")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return False
    salt_hex, key_hex = parts

    try:
        salt = bytes.fromhex(salt_hex)
        stored_key = bytes.fromhex(key_hex)
        if len(stored_key) != KEY_LENGTH:
            return False
        derived = _derive(pin, salt)
    except (ValueError, TypeError, HashingError) as exc:
        logger.warning("Failed to verify PIN hash: %s", type(exc).__name__)
        return False

    return hmac.compare_digest(derived, stored_key)
