# -*- coding: utf-8 -*-
"""
Local filesystem object storage.

Uploaded files live under UPLOAD_DIR/uploads and are addressed by a stable
``/objects/uploads/<name>`` reference. Access policies (owner + visibility)
are kept in a JSON file beside the uploads.
"""
import json
import os
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

from werkzeug.utils import secure_filename

from secret_message.infra.log import get_logger

logger = get_logger(__name__)

OBJECT_PREFIX = "/objects/"
ACL_FILENAME = ".acl-policies.json"

VISIBILITY_PUBLIC = "public"
VISIBILITY_PRIVATE = "private"

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".pdf": "application/pdf",
    ".json": "application/json",
    ".txt": "text/plain",
}


class ObjectNotFoundError(Exception):
    """Raised when an object reference does not resolve to a stored file."""

    def __init__(self, object_path: str = None):
        super().__init__("Object not found")
        self.object_path = object_path


@dataclass
class StoredObject:
    object_path: str
    full_path: str

    @property
    def content_type(self) -> str:
        ext = os.path.splitext(self.full_path)[1].lower()
        return MIME_TYPES.get(ext, "application/octet-stream")

    @property
    def size(self) -> int:
        return os.path.getsize(self.full_path)


class LocalObjectStorage:
    """Filesystem-backed object store with a JSON ACL sidecar."""

    _acl_lock = threading.Lock()

    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = os.path.abspath(
            upload_dir or os.getenv("UPLOAD_DIR") or os.path.join(os.getcwd(), "uploads"))
        self.acl_path = os.path.join(self.upload_dir, ACL_FILENAME)

    # --- paths ---
    def _resolve(self, object_path: str) -> str:
        if not object_path or not object_path.startswith(OBJECT_PREFIX):
            raise ObjectNotFoundError(object_path)
        relative = object_path[len(OBJECT_PREFIX):]
        full_path = os.path.abspath(os.path.join(self.upload_dir, relative))
        # reject anything that escapes the upload root
        if os.path.commonpath([full_path, self.upload_dir]) != self.upload_dir:
            raise ObjectNotFoundError(object_path)
        if os.path.basename(full_path) == ACL_FILENAME:
            raise ObjectNotFoundError(object_path)
        return full_path

    def _acl_key(self, full_path: str) -> str:
        return os.path.relpath(full_path, self.upload_dir).replace(os.sep, "/")

    # --- objects ---
    def save_upload(self, stream, original_name: str = None) -> str:
        """Write an uploaded stream and return its ``/objects/...`` reference."""
        target_dir = os.path.join(self.upload_dir, "uploads")
        os.makedirs(target_dir, exist_ok=True)

        ext = os.path.splitext(secure_filename(original_name or ""))[1].lower()
        filename = f"{uuid.uuid4()}{ext}"
        with open(os.path.join(target_dir, filename), "wb") as fh:
            while True:
                chunk = stream.read(64 * 1024)
                if not chunk:
                    break
                fh.write(chunk)

        logger.info("Object stored", filename=filename)
        return f"{OBJECT_PREFIX}uploads/{filename}"

    def get(self, object_path: str) -> StoredObject:
        full_path = self._resolve(object_path)
        if not os.path.isfile(full_path):
            raise ObjectNotFoundError(object_path)
        return StoredObject(object_path=object_path, full_path=full_path)

    def normalize_path(self, raw_path: str) -> str:
        """Accept either a bare ``/objects/...`` reference or a full URL to one."""
        if not raw_path:
            return raw_path
        if raw_path.startswith(OBJECT_PREFIX):
            return raw_path
        marker = raw_path.find(OBJECT_PREFIX)
        if raw_path.startswith(("http://", "https://")) and marker != -1:
            return raw_path[marker:]
        return raw_path

    # --- ACL ---
    def _load_acl(self) -> dict:
        if not os.path.exists(self.acl_path):
            return {}
        try:
            with open(self.acl_path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load ACL store", error=str(e))
            return {}

    def _save_acl(self, store: dict):
        os.makedirs(self.upload_dir, exist_ok=True)
        tmp_path = f"{self.acl_path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(store, fh, indent=2)
        os.replace(tmp_path, self.acl_path)

    def set_acl(self, object_path: str, owner: str, visibility: str = VISIBILITY_PRIVATE) -> str:
        normalized = self.normalize_path(object_path)
        obj = self.get(normalized)
        with self._acl_lock:
            store = self._load_acl()
            store[self._acl_key(obj.full_path)] = {"owner": owner, "visibility": visibility}
            self._save_acl(store)
        return normalized

    def get_acl(self, obj: StoredObject) -> Optional[dict]:
        return self._load_acl().get(self._acl_key(obj.full_path))

    def can_read(self, obj: StoredObject, user_id: Optional[str]) -> bool:
        policy = self.get_acl(obj)
        if not policy:
            return False
        if policy.get("visibility") == VISIBILITY_PUBLIC:
            return True
        return bool(user_id) and policy.get("owner") == user_id


def get_object_storage() -> LocalObjectStorage:
    return LocalObjectStorage()
