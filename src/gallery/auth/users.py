# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import re
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

ROLES = ("member", "admin")
USER_ID_RE = re.compile(r"^[0-9a-f]{24}$")

# Keys persisted in users.yml (camelCase, same as the JSON API).
DOC_FIELDS = ("displayName", "folder", "pinHash", "pinHint", "avatarPublicId", "avatarUrl", "role")


def resolve_role(role: Any) -> str:
    return "admin" if str(role or "").strip().lower() == "admin" else "member"


def is_valid_user_id(value: Any) -> bool:
    return isinstance(value, str) and bool(USER_ID_RE.fullmatch(value))


def new_user_id() -> str:
    return secrets.token_hex(12)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


@dataclass(frozen=True)
class UserRecord:
    id: str
    display_name: str
    folder: str
    role: str = "member"
    pin_hash: str = ""
    pin_hint: Optional[str] = None
    avatar_public_id: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def can_authenticate(self) -> bool:
        return bool(self.pin_hash)

    def to_public(self, *, include_hint: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "displayName": self.display_name,
            "folder": self.folder,
            "avatarPublicId": self.avatar_public_id,
            "avatarUrl": self.avatar_url,
            "role": self.role,
        }
        if include_hint:
            out["pinHint"] = self.pin_hint
        return out


def record_from_doc(user_id: str, doc: Mapping[str, Any], *, media=None) -> UserRecord:
    """Build a UserRecord from a stored document.

    Avatar fields complete each other: a missing public id is recovered from
    the URL and a missing URL is rebuilt from the public id (when a media
    store is available).
    """
    avatar_url = _clean(doc.get("avatarUrl"))
    avatar_public_id = _clean(doc.get("avatarPublicId")).strip("/")
    if media is not None:
        if not avatar_public_id and avatar_url:
            avatar_public_id = media.public_id_from_url(avatar_url) or ""
        if not avatar_url and avatar_public_id:
            avatar_url = media.url_for(avatar_public_id) or ""

    return UserRecord(
        id=str(user_id),
        display_name=_clean(doc.get("displayName")),
        folder=_clean(doc.get("folder")),
        role=resolve_role(doc.get("role")),
        pin_hash=_clean(doc.get("pinHash")),
        pin_hint=_clean(doc.get("pinHint")) or None,
        avatar_public_id=avatar_public_id or None,
        avatar_url=avatar_url or None,
        created_at=str(doc.get("createdAt") or ""),
        updated_at=str(doc.get("updatedAt") or ""),
    )


@dataclass
class YamlUserStore:
    """User documents kept in a YAML file (``{version: 1, users: {id: doc}}``).

    The file is re-read whenever its mtime changes, so manual edits and the
    create_user script are picked up without a restart.
    """

    path: Path
    media: Any = None
    _cache: Tuple[float, Dict[str, Dict[str, Any]]] = field(default_factory=lambda: (0.0, {}), init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    # ------------------ raw documents ------------------

    def _load_docs(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        users = (raw.get("users") or {}) if isinstance(raw, dict) else {}
        out: Dict[str, Dict[str, Any]] = {}
        for uid, udata in users.items():
            if not isinstance(udata, dict):
                continue
            user_id = str(uid).strip()
            if not user_id:
                continue
            out[user_id] = dict(udata)
        return out

    def _docs(self) -> Dict[str, Dict[str, Any]]:
        try:
            mtime = self.path.stat().st_mtime if self.path.exists() else 0.0
        except OSError:
            mtime = 0.0

        cached_mtime, cached_docs = self._cache
        if mtime and mtime == cached_mtime:
            return cached_docs

        docs = self._load_docs()
        self._cache = (mtime, docs)
        return docs

    def _save(self, docs: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": 1, "users": docs}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")
        tmp.replace(self.path)
        self._cache = (self.path.stat().st_mtime, docs)

    def _record(self, user_id: str, doc: Mapping[str, Any]) -> UserRecord:
        return record_from_doc(user_id, doc, media=self.media)

    # ------------------ queries ------------------

    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        uid = (user_id or "").strip()
        if not uid:
            return None
        doc = self._docs().get(uid)
        return self._record(uid, doc) if doc is not None else None

    def find_by_filter(self, criteria: Mapping[str, Any], *, exclude_id: Optional[str] = None) -> Optional[UserRecord]:
        """Return the first user matching ANY of the given field values."""
        wanted = {k: v for k, v in criteria.items() if v is not None}
        if not wanted:
            return None
        for uid, doc in self._docs().items():
            if exclude_id and uid == exclude_id:
                continue
            if any(_clean(doc.get(k)) == v for k, v in wanted.items()):
                return self._record(uid, doc)
        return None

    def list_users(self) -> List[UserRecord]:
        users = [self._record(uid, doc) for uid, doc in self._docs().items()]
        users.sort(key=lambda u: (u.display_name.lower(), u.id))
        return users

    # ------------------ writes ------------------

    def insert_one(self, doc: Mapping[str, Any]) -> UserRecord:
        with self._lock:
            docs = dict(self._docs())
            uid = new_user_id()
            while uid in docs:
                uid = new_user_id()
            now = _now()
            stored = {k: doc[k] for k in DOC_FIELDS if doc.get(k) not in (None, "")}
            stored["createdAt"] = now
            stored["updatedAt"] = now
            docs[uid] = stored
            self._save(docs)
            return self._record(uid, stored)

    def update_one(
        self,
        user_id: str,
        set_fields: Optional[Mapping[str, Any]] = None,
        unset_fields: Iterable[str] = (),
    ) -> Optional[UserRecord]:
        """Apply ``set_fields``/``unset_fields`` and return the updated user (None if missing)."""
        with self._lock:
            docs = dict(self._docs())
            current = docs.get(user_id)
            if current is None:
                return None
            updated = dict(current)
            for key, value in (set_fields or {}).items():
                updated[key] = value
            for key in unset_fields:
                updated.pop(key, None)
            updated["updatedAt"] = _now()
            docs[user_id] = updated
            self._save(docs)
            return self._record(user_id, updated)

    def delete_one(self, user_id: str) -> bool:
        with self._lock:
            docs = dict(self._docs())
            if user_id not in docs:
                return False
            del docs[user_id]
            self._save(docs)
            return True
