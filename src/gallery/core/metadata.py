# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Photo metadata (context) helpers.

Context values end up in ``key=value|key=value`` strings on the media host, so
the separators are never allowed inside a value.
"""

from __future__ import annotations

import re
from typing import Dict, Optional

CONTEXT_KEYS = ("imageName", "album", "description")
MAX_VALUE_LENGTH = 500

_SEPARATORS_RE = re.compile(r"[|=]")


def sanitize_context_value(value: str) -> str:
    return _SEPARATORS_RE.sub("-", value)


def build_context(
    *,
    image_name: Optional[str] = None,
    album: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, str]:
    """Return the sanitised context for the values given.

    ``None`` means "not provided" and the key is left out; anything else is
    converted to text, trimmed and sanitised.
    """
    raw = {"imageName": image_name, "album": album, "description": description}
    context: Dict[str, str] = {}
    for key in CONTEXT_KEYS:
        value = raw[key]
        if value is None:
            continue
        context[key] = sanitize_context_value(str(value).strip())[:MAX_VALUE_LENGTH]
    return context
