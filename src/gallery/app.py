# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from gallery.auth.gate import AuthGate
from gallery.auth.session import SessionCodec, clear_session_cookie, set_session_cookie
from gallery.auth.users import UserRecord, YamlUserStore
from gallery.config import Settings, load_settings
from gallery.errors import GalleryError, InvalidInput, Unauthorized
from gallery.infra.media_store import LocalMediaStore
from gallery.permissions import current_user_optional, require_admin_user, require_user
from gallery.services import photo_service, user_service

logger = logging.getLogger(__name__)


def _body(payload: Any) -> Dict[str, Any]:
    return payload if isinstance(payload, dict) else {}


async def _read_upload(file: UploadFile, settings: Settings) -> bytes:
    # Read one byte past the limit so oversized uploads are detected without buffering them whole.
    data = await file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise InvalidInput("El archivo es demasiado grande")
    return data


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Without explicit settings they are read from the environment."""
    settings = settings or load_settings()

    media = LocalMediaStore(settings.media_dir, base_url=settings.media_url, max_bytes=settings.max_upload_bytes)
    users = YamlUserStore(settings.users_path, media=media)
    codec = SessionCodec.from_settings(settings)

    app = FastAPI(title="Gallery API")
    app.state.settings = settings
    app.state.media = media
    app.state.users = users
    app.state.gate = AuthGate(codec, users, settings)

    @app.middleware("http")
    async def _auth_middleware(request: Request, call_next):
        request.state.user = current_user_optional(request)
        return await call_next(request)

    @app.exception_handler(GalleryError)
    async def _gallery_error(request: Request, exc: GalleryError):
        resp = JSONResponse({"error": exc.message}, status_code=exc.status_code)
        # The response a dependency mutated is discarded on error; clear the cookie here too.
        if isinstance(exc, Unauthorized) and exc.clear_session:
            clear_session_cookie(resp, settings)
        if exc.status_code >= 500:
            logger.error("Request to %s failed: %s", request.url.path, exc.message)
        return resp

    app.mount(settings.media_url, StaticFiles(directory=str(settings.media_dir)), name="media")

    # ------------------ Routes ------------------

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    # --- users / session ---

    @app.get("/api/users")
    def users_list():
        return {"users": [u.to_public() for u in user_service.list_users(users)]}

    @app.get("/api/users/me")
    def users_me(user: UserRecord = Depends(require_user)):
        return {"user": user.to_public(include_hint=True)}

    @app.post("/api/users/verify")
    def users_verify(response: Response, payload: Any = Body(None)):
        data = _body(payload)
        user = user_service.verify_pin(store=users, user_id=data.get("userId"), pin=data.get("pin"))
        set_session_cookie(response, codec.sign(user.id), settings)
        return {"user": user.to_public()}

    @app.post("/api/users/logout")
    def users_logout(response: Response):
        clear_session_cookie(response, settings)
        return {"success": True}

    @app.post("/api/users/register", status_code=201)
    def users_register(payload: Any = Body(None), admin: UserRecord = Depends(require_admin_user)):
        data = _body(payload)
        user = user_service.register_user(
            store=users,
            actor=admin,
            display_name=data.get("displayName"),
            folder=data.get("folder"),
            pin=data.get("pin"),
            pin_hint=data.get("pinHint"),
            avatar_public_id=data.get("avatarPublicId"),
            role=data.get("role"),
            media=media,
            reserved_folder=settings.avatar_folder,
        )
        return {"user": user.to_public()}

    @app.put("/api/users/{user_id}")
    def users_update(user_id: str, payload: Any = Body(None), admin: UserRecord = Depends(require_admin_user)):
        user = user_service.update_user(
            store=users,
            actor=admin,
            user_id=user_id,
            fields=_body(payload),
            media=media,
            reserved_folder=settings.avatar_folder,
        )
        return {"user": user.to_public()}

    @app.delete("/api/users/{user_id}", status_code=204)
    def users_delete(user_id: str, admin: UserRecord = Depends(require_admin_user)):
        user_service.delete_user(store=users, actor=admin, user_id=user_id)
        return Response(status_code=204)

    @app.post("/api/users/reset-pin")
    def users_reset_pin(payload: Any = Body(None), user: UserRecord = Depends(require_user)):
        data = _body(payload)
        updated = user_service.reset_pin(
            store=users,
            user=user,
            current_pin=data.get("currentPin"),
            new_pin=data.get("newPin"),
            pin_hint=data.get("pinHint", user_service.UNSET),
        )
        return {"user": updated.to_public(include_hint=True)}

    @app.post("/api/users/avatar")
    async def users_avatar(file: UploadFile = File(...), user: UserRecord = Depends(require_user)):
        data = await _read_upload(file, settings)
        updated = user_service.update_avatar(
            store=users,
            media=media,
            user=user,
            data=data,
            filename=file.filename or "avatar.jpg",
            avatar_folder=settings.avatar_folder,
        )
        return {"user": updated.to_public(include_hint=True)}

    # --- photos ---

    @app.get("/api/photos")
    def photos_list(folder: str = ""):
        return {"photos": [r.to_dict() for r in photo_service.list_photos(media=media, folder=folder)]}

    @app.post("/api/upload")
    async def photos_upload(
        file: UploadFile = File(...),
        image_name: str = Form("", alias="imageName"),
        album: str = Form(""),
        description: str = Form(""),
        user: UserRecord = Depends(require_user),
    ):
        data = await _read_upload(file, settings)
        res = photo_service.upload_photo(
            media=media,
            user=user,
            data=data,
            filename=file.filename or "upload.jpg",
            image_name=image_name,
            album=album,
            description=description,
        )
        return {"success": True, "public_id": res.public_id, "url": res.url}

    @app.delete("/api/photos/{public_id:path}")
    def photos_delete(public_id: str, user: UserRecord = Depends(require_user)):
        result = photo_service.delete_photo(media=media, user=user, public_id=public_id)
        return {"success": True, "result": result}

    @app.post("/api/update-metadata")
    def photos_update_metadata(payload: Any = Body(None), user: UserRecord = Depends(require_user)):
        data = _body(payload)
        photo_service.update_photo_metadata(
            media=media,
            user=user,
            public_id=data.get("public_id"),
            album=data.get("album", ""),
            description=data.get("description", ""),
        )
        return {"success": True}

    return app
