from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path, PurePosixPath

from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import StorageError


logger = logging.getLogger(__name__)

BUCKETS = frozenset(
    {
        "registration-docs",
        "payment-proofs",
        "uploads",
        "library-materials",
        "subscription-proofs",
    }
)

STAGING_DIR = "_staging"


def storage_root() -> Path:
    return Path(current_app.config["STORAGE_ROOT"])


def _clean_object_path(path: str) -> str:
    parts = [secure_filename(p) for p in PurePosixPath(path or "").parts if p not in ("", "/", ".", "..")]
    parts = [p for p in parts if p]
    if not parts:
        raise StorageError("Invalid file name.")
    return "/".join(parts)


def _bucket_dir(bucket: str) -> Path:
    if bucket not in BUCKETS:
        raise StorageError(f"Unknown storage bucket: {bucket}")
    return storage_root() / bucket


def resolve(bucket: str, path: str) -> Path | None:
    try:
        abs_path = _bucket_dir(bucket) / _clean_object_path(path)
    except StorageError:
        return None
    return abs_path if abs_path.is_file() else None


def upload(bucket: str, path: str, source, upsert: bool = False) -> str:
    """Store ``source`` (an upload with ``save()`` or a local file path) at ``bucket/path``.

    Returns the normalised object path inside the bucket.
    """
    object_path = _clean_object_path(path)
    abs_path = _bucket_dir(bucket) / object_path
    if abs_path.exists() and not upsert:
        raise StorageError("A file with this name already exists.")
    try:
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(source, (str, Path)):
            shutil.copyfile(source, abs_path)
        else:
            source.save(str(abs_path))
    except OSError as e:
        logger.exception("upload to %s/%s failed", bucket, object_path)
        raise StorageError(f"Upload failed: {e.strerror or e}") from e
    return object_path


def get_public_url(bucket: str, path: str) -> str:
    base = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return f"{base}/files/{bucket}/{_clean_object_path(path)}"


def remove(bucket: str, path: str) -> None:
    abs_path = resolve(bucket, path)
    if abs_path is None:
        return
    try:
        abs_path.unlink()
    except OSError:
        logger.warning("could not remove %s/%s", bucket, path)


def object_name(kind: str, original_name: str) -> str:
    """``kind-<unique>.<ext>`` keeping the uploaded extension."""
    suffix = PurePosixPath(secure_filename(original_name or "")).suffix.lower()
    return f"{kind}-{uuid.uuid4().hex[:12]}{suffix}"


def upload_with_url(bucket: str, folder: str, kind: str, upload_file) -> str:
    original = (getattr(upload_file, "filename", None) or "").strip()
    if not original:
        raise StorageError("Please choose a file to upload.")
    stored = upload(bucket, f"{folder}/{object_name(kind, original)}", upload_file)
    return get_public_url(bucket, stored)


def stage(upload_file) -> dict | None:
    """Keep a wizard attachment on disk until the registration is submitted."""
    if upload_file is None:
        return None
    original = (upload_file.filename or "").strip()
    safe = secure_filename(original)
    if not safe:
        return None
    staged_dir = storage_root() / STAGING_DIR
    staged_dir.mkdir(parents=True, exist_ok=True)
    abs_path = staged_dir / f"{uuid.uuid4().hex}_{safe}"
    try:
        upload_file.save(str(abs_path))
    except OSError as e:
        logger.exception("staging %s failed", safe)
        raise StorageError(f"Upload failed: {e.strerror or e}") from e
    return {
        "filename": original,
        "staged_path": str(abs_path),
        "mimetype": (getattr(upload_file, "mimetype", None) or "").strip(),
    }


def discard_staged(staged: dict | None) -> None:
    if not staged:
        return
    abs_path = Path(staged.get("staged_path") or "")
    root = (storage_root() / STAGING_DIR).resolve()
    try:
        if abs_path.resolve().parent == root and abs_path.is_file():
            abs_path.unlink()
    except OSError:
        return
