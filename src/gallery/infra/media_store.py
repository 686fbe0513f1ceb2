# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Local filesystem media store.

Mirrors the small part of the remote media host API the gallery uses
(upload / destroy / add_context / search). Public ids are ``folder/name``
without extension; the file lives at ``<root>/<public_id>.<ext>``. A YAML index
beside the root (``<root>.index.yml``, never inside the served directory)
keeps format, context and tags.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import re
import secrets
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from gallery.errors import InvalidInput

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
INDEX_SUFFIX = ".index.yml"

_slug_re = re.compile(r"[^a-zA-Z0-9_.-]+")


def _safe_name(original: str) -> Tuple[str, str]:
    """Return (stem, ext) for an uploaded filename, forcing an allowed extension."""
    base, ext = os.path.splitext(original or "upload.jpg")
    ext = ext.lower()
    if ext not in ALLOWED_EXTENSIONS:
        guessed = mimetypes.guess_extension(mimetypes.guess_type(original or "")[0] or "") or ""
        if guessed not in ALLOWED_EXTENSIONS:
            raise InvalidInput("Formato de imagen no soportado")
        ext = guessed
    base = _slug_re.sub("_", base).strip("._")[:60] or "upload"
    return base, ext


def normalize_public_id(value: Any) -> str:
    """Trim a public id and reject anything that could escape its folder."""
    pid = str(value or "").strip().strip("/")
    if not pid:
        return ""
    segments = pid.split("/")
    if any(seg in ("", ".", "..") for seg in segments):
        raise InvalidInput("Identificador de imagen no válido")
    return pid


@dataclass(frozen=True)
class MediaResource:
    public_id: str
    format: str
    url: str
    bytes: int = 0
    context: Dict[str, str] = field(default_factory=dict)
    tags: Tuple[str, ...] = ()
    created_at: int = 0

    @property
    def folder(self) -> str:
        return self.public_id.rsplit("/", 1)[0] if "/" in self.public_id else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "public_id": self.public_id,
            "format": self.format,
            "url": self.url,
            "folder": self.folder,
            "bytes": self.bytes,
            "imageName": self.context.get("imageName", ""),
            "album": self.context.get("album", ""),
            "description": self.context.get("description", ""),
            "tags": list(self.tags),
            "created_at": self.created_at,
        }


class LocalMediaStore:
    def __init__(
        self,
        root: Path,
        *,
        base_url: str = "/media",
        max_bytes: Optional[int] = None,
        index_path: Optional[Path] = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes
        # Kept outside root: everything under root is served as static files.
        default_index = self.root.with_name(self.root.name + INDEX_SUFFIX)
        self._index_path = Path(index_path).resolve() if index_path else default_index
        self._lock = threading.Lock()

    # ------------------ index ------------------

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        if not self._index_path.exists():
            return {}
        raw = yaml.safe_load(self._index_path.read_text(encoding="utf-8")) or {}
        items = raw.get("resources") if isinstance(raw, dict) else None
        return dict(items) if isinstance(items, dict) else {}

    def _save_index(self, index: Dict[str, Dict[str, Any]]) -> None:
        tmp = self._index_path.with_suffix(".tmp")
        tmp.write_text(
            yaml.safe_dump({"version": 1, "resources": index}, sort_keys=True, allow_unicode=True),
            encoding="utf-8",
        )
        tmp.replace(self._index_path)

    def _file_path(self, public_id: str, fmt: str) -> Path:
        p = (self.root / f"{public_id}.{fmt}").resolve()
        if self.root not in p.parents:
            raise InvalidInput("Identificador de imagen no válido")
        return p

    def _resource(self, public_id: str, entry: Dict[str, Any]) -> MediaResource:
        fmt = str(entry.get("format") or "")
        return MediaResource(
            public_id=public_id,
            format=fmt,
            url=self._url(public_id, fmt),
            bytes=int(entry.get("bytes") or 0),
            context={str(k): str(v) for k, v in (entry.get("context") or {}).items()},
            tags=tuple(str(t) for t in (entry.get("tags") or [])),
            created_at=int(entry.get("created_at") or 0),
        )

    def _url(self, public_id: str, fmt: str) -> str:
        return f"{self.base_url}/{public_id}.{fmt}" if fmt else f"{self.base_url}/{public_id}"

    # ------------------ API ------------------

    def upload(
        self,
        data: bytes,
        *,
        folder: str,
        filename: str,
        context: Optional[Dict[str, str]] = None,
        tags: Iterable[str] = (),
    ) -> MediaResource:
        if not data:
            raise InvalidInput("El archivo está vacío")
        if self.max_bytes is not None and len(data) > self.max_bytes:
            raise InvalidInput("El archivo es demasiado grande")

        folder = normalize_public_id(folder)
        if not folder:
            raise InvalidInput("Carpeta de destino no válida")
        stem, ext = _safe_name(filename)
        fmt = ext.lstrip(".")

        with self._lock:
            index = self._load_index()
            public_id = f"{folder}/{stem}-{secrets.token_hex(4)}"
            while public_id in index:
                public_id = f"{folder}/{stem}-{secrets.token_hex(4)}"

            path = self._file_path(public_id, fmt)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

            entry = {
                "format": fmt,
                "bytes": len(data),
                "context": dict(context or {}),
                "tags": sorted(set(tags)),
                "created_at": int(time.time() * 1000),
            }
            index[public_id] = entry
            self._save_index(index)

        logger.info("Stored %s (%d bytes)", public_id, len(data))
        return self._resource(public_id, entry)

    def destroy(self, public_id: str) -> str:
        """Delete a resource; returns ``"ok"`` or ``"not found"``."""
        public_id = normalize_public_id(public_id)
        if not public_id:
            return "not found"
        with self._lock:
            index = self._load_index()
            entry = index.pop(public_id, None)
            if entry is None:
                return "not found"
            path = self._file_path(public_id, str(entry.get("format") or ""))
            path.unlink(missing_ok=True)
            self._save_index(index)
        logger.info("Deleted %s", public_id)
        return "ok"

    def add_context(self, context: Dict[str, str], public_ids: Iterable[str]) -> List[str]:
        """Merge ``context`` into each resource; returns the ids actually updated."""
        updated: List[str] = []
        with self._lock:
            index = self._load_index()
            for raw_id in public_ids:
                pid = normalize_public_id(raw_id)
                entry = index.get(pid)
                if entry is None:
                    continue
                merged = dict(entry.get("context") or {})
                merged.update(context)
                entry["context"] = merged
                updated.append(pid)
            if updated:
                self._save_index(index)
        return updated

    def get(self, public_id: str) -> Optional[MediaResource]:
        pid = normalize_public_id(public_id)
        entry = self._load_index().get(pid) if pid else None
        return self._resource(pid, entry) if entry is not None else None

    def search(self, *, folder: Optional[str] = None, tag: Optional[str] = None) -> List[MediaResource]:
        """Resources under ``folder`` and/or carrying ``tag``, newest first."""
        prefix = normalize_public_id(folder) + "/" if folder else ""
        out = []
        for pid, entry in self._load_index().items():
            if prefix and not pid.startswith(prefix):
                continue
            if tag and tag not in (entry.get("tags") or []):
                continue
            out.append(self._resource(pid, entry))
        out.sort(key=lambda r: (r.created_at, r.public_id), reverse=True)
        return out

    def url_for(self, public_id: str) -> Optional[str]:
        res = self.get(public_id)
        return res.url if res else None

    def public_id_from_url(self, url: str) -> Optional[str]:
        """Recover the public id from a URL produced by this store."""
        u = str(url or "").strip()
        prefix = self.base_url + "/"
        if not u.startswith(prefix):
            return None
        tail = u[len(prefix):]
        stem, ext = os.path.splitext(tail)
        if ext.lower() not in ALLOWED_EXTENSIONS:
            stem = tail
        try:
            return normalize_public_id(stem) or None
        except InvalidInput:
            return None
