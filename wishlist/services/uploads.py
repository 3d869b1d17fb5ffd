from __future__ import annotations

import pathlib
import uuid

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

ALLOWED_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


class UploadError(ValueError):
    pass


def looks_like_image(first_bytes: bytes, ext: str) -> bool:
    if ext not in ALLOWED_EXTS:
        return False
    b = first_bytes
    if b[:3] == b"\xff\xd8\xff":
        return ext in {".jpg", ".jpeg"}
    if b[:8] == b"\x89PNG\r\n\x1a\n":
        return ext == ".png"
    if b[:6] in (b"GIF87a", b"GIF89a"):
        return ext == ".gif"
    if len(b) >= 12 and b[:4] == b"RIFF" and b[8:12] == b"WEBP":
        return ext == ".webp"
    return False


def store_image(file_storage: FileStorage | None, upload_root: str, user_id: int) -> str:
    """Save an uploaded image and return its path relative to ``upload_root``."""
    if not file_storage or not file_storage.filename:
        raise UploadError("file field is required")

    original = secure_filename(file_storage.filename)
    ext = pathlib.Path(original).suffix.lower()
    if ext not in ALLOWED_EXTS:
        raise UploadError(
            f"unsupported image type, expected one of {', '.join(sorted(ALLOWED_EXTS))}"
        )

    head = file_storage.stream.read(16)
    file_storage.stream.seek(0)
    if not looks_like_image(head, ext):
        raise UploadError("file content does not match its image type")

    dest_dir = pathlib.Path(upload_root) / str(user_id)
    dest_dir.mkdir(parents=True, exist_ok=True)
    unique_name = f"{uuid.uuid4().hex}{ext}"
    file_storage.save(dest_dir / unique_name)
    return f"{user_id}/{unique_name}"


def public_url(relative_path: str, public_base: str) -> str:
    return f"{public_base.rstrip('/')}/{relative_path}"
