"""Utilities for persisting uploaded files on disk."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Final

from fastapi import UploadFile

LOGGER = logging.getLogger(__name__)

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""
    sanitized = Path(filename or "upload").name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    return sanitized.strip("._") or "upload"


async def save_upload(document_id: str, upload: UploadFile, upload_dir: Path) -> Path:
    """Persist an uploaded file as ``<upload_dir>/<document_id>-<name>``."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    destination = upload_dir / f"{document_id}-{sanitize_filename(upload.filename or '')}"

    contents = await upload.read()
    destination.write_bytes(contents)
    await upload.seek(0)

    return destination.resolve()


def delete_upload(path: str | Path | None) -> bool:
    """Remove a stored upload, returning whether a file was deleted."""
    if not path:
        return False
    target = Path(path)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    except OSError:
        LOGGER.exception("Failed to remove stored upload %s", target)
        return False
    return True
