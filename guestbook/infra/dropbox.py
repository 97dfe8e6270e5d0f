"""
Dropbox HTTP API v2 adapter for the BlobStore protocol.

Endpoints used:
- content: files/upload, files/download
- rpc: sharing/create_shared_link_with_settings, files/get_temporary_link

Version tokens are Dropbox `rev` values.
"""
from __future__ import annotations

import json
import logging
from typing import Any

import requests

from guestbook.infra.blobstore import (
    LinkAlreadyExists,
    ObjectNotFound,
    StorageRef,
    StoreError,
    StoreUnavailable,
    VersionConflict,
    VersionedObject,
)

logger = logging.getLogger(__name__)

CONTENT_URL = "https://content.dropboxapi.com/2"
API_URL = "https://api.dropboxapi.com/2"


def _error_summary(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("error_summary") or "")
    return ""


class DropboxBlobStore:
    supports_conditional_writes = True

    def __init__(
        self,
        access_token: str,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["Authorization"] = f"Bearer {access_token}"

    def _post(self, url: str, timeout: float | None = None, **kwargs: Any) -> requests.Response:
        effective = self._timeout if timeout is None else min(self._timeout, timeout)
        try:
            r = self._session.post(url, timeout=effective, **kwargs)
        except requests.RequestException as e:
            raise StoreUnavailable(f"dropbox request failed: {type(e).__name__}") from e
        logger.debug(f"POST {url} -> {r.status_code}")
        if r.status_code >= 500 or r.status_code == 429:
            raise StoreUnavailable(f"dropbox returned {r.status_code}")
        if r.status_code in (400, 401, 403):
            raise StoreUnavailable(f"dropbox rejected request ({r.status_code})")
        return r

    def _json(self, r: requests.Response) -> dict[str, Any]:
        try:
            data = r.json()
        except ValueError:
            raise StoreUnavailable("dropbox returned a non-JSON body")
        if not isinstance(data, dict):
            raise StoreUnavailable("dropbox returned an unexpected body")
        return data

    def _upload(
        self, path: str, data: bytes, mode: Any, autorename: bool, timeout: float | None = None
    ) -> dict[str, Any]:
        arg = {"path": path, "mode": mode, "autorename": autorename, "mute": True}
        r = self._post(
            f"{CONTENT_URL}/files/upload",
            timeout=timeout,
            headers={
                "Dropbox-API-Arg": json.dumps(arg),
                "Content-Type": "application/octet-stream",
            },
            data=data,
        )
        body = self._json(r)
        if r.status_code == 409:
            summary = _error_summary(body)
            if "conflict" in summary:
                raise VersionConflict(path, mode.get("update") if isinstance(mode, dict) else None)
            raise StoreUnavailable(f"upload failed: {summary}")
        return body

    def put_object(
        self, path: str, data: bytes, *, overwrite: bool, autorename: bool, timeout: float | None = None
    ) -> StorageRef:
        mode = "overwrite" if overwrite else "add"
        meta = self._upload(path, data, mode, autorename, timeout)
        return StorageRef(path=str(meta.get("path_display") or path), version_token=meta.get("rev"))

    def get_object(self, path: str, *, timeout: float | None = None) -> VersionedObject:
        r = self._post(
            f"{CONTENT_URL}/files/download",
            timeout=timeout,
            headers={"Dropbox-API-Arg": json.dumps({"path": path})},
        )
        if r.status_code == 409:
            summary = _error_summary(self._json(r))
            if "not_found" in summary:
                raise ObjectNotFound(path)
            raise StoreUnavailable(f"download failed: {summary}")
        try:
            meta = json.loads(r.headers.get("Dropbox-API-Result") or "{}")
        except ValueError:
            raise StoreUnavailable("download returned malformed metadata")
        rev = meta.get("rev")
        if not rev:
            raise StoreUnavailable("download returned no rev")
        return VersionedObject(data=r.content, version_token=str(rev))

    def put_object_if_version_matches(
        self, path: str, data: bytes, expected_token: str | None, *, timeout: float | None = None
    ) -> str:
        if expected_token is None:
            mode: Any = "add"
        else:
            mode = {".tag": "update", "update": expected_token}
        meta = self._upload(path, data, mode, autorename=False, timeout=timeout)
        rev = meta.get("rev")
        if not rev:
            raise StoreUnavailable("upload returned no rev")
        return str(rev)

    def create_public_link(self, path: str, *, timeout: float | None = None) -> str:
        r = self._post(
            f"{API_URL}/sharing/create_shared_link_with_settings",
            timeout=timeout,
            json={"path": path, "settings": {"requested_visibility": "public"}},
        )
        body = self._json(r)
        if r.status_code == 409:
            summary = _error_summary(body)
            if "shared_link_already_exists" in summary:
                existing = ((body.get("error") or {}).get("shared_link_already_exists") or {}).get("metadata") or {}
                if existing.get("url"):
                    raise LinkAlreadyExists(path, str(existing["url"]))
            raise StoreError(f"shared link failed: {summary}")
        url = body.get("url")
        if not url:
            raise StoreUnavailable("shared link response had no url")
        return str(url)

    def create_temporary_link(self, path: str, *, timeout: float | None = None) -> str:
        r = self._post(f"{API_URL}/files/get_temporary_link", timeout=timeout, json={"path": path})
        body = self._json(r)
        if r.status_code == 409:
            raise StoreError(f"temporary link failed: {_error_summary(body)}")
        link = body.get("link")
        if not link:
            raise StoreUnavailable("temporary link response had no link")
        return str(link)
