from __future__ import annotations

import os
import uuid
from pathlib import Path

from flask import current_app

PLACEHOLDER_IMAGE_URL = "/images/placeholder-product.svg"


def upload_root() -> Path:
    configured = (os.getenv("UPLOAD_DIR") or "").strip()
    if configured:
        root = Path(configured)
    else:
        root = Path(__file__).resolve().parents[2] / "uploads"
    root.mkdir(parents=True, exist_ok=True)
    return root


def public_url(storage_path: str | None) -> str | None:
    path = (storage_path or "").strip().lstrip("/")
    if not path:
        return None
    base = (os.getenv("PUBLIC_BASE_URL") or "").strip().rstrip("/")
    return f"{base}/api/uploads/{path}"


def build_storage_path(owner_key: str, extension: str) -> str:
    ext = (extension or "jpg").strip().lstrip(".").lower() or "jpg"
    return f"{owner_key}/{uuid.uuid4().hex}.{ext}"


def save_bytes(storage_path: str, data: bytes) -> int:
    target = _resolve(storage_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return len(data)


def delete_objects(paths: list[str]) -> int:
    """Remove stored files; missing files are not an error."""
    removed = 0
    for path in paths:
        target = _resolve(path)
        try:
            target.unlink()
            removed += 1
        except FileNotFoundError:
            current_app.logger.info("storage_delete_missing path=%s", path)
    return removed


def _resolve(storage_path: str) -> Path:
    root = upload_root().resolve()
    target = (root / storage_path.lstrip("/")).resolve()
    if root not in target.parents:
        raise ValueError(f"storage path escapes upload root: {storage_path}")
    return target
