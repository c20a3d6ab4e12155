"""
DataBank Path Handling — Canonical public paths for stored documents.

Every file row stores its location as ``uploads/documents/<stored name>``.
Older rows were written in several other shapes (absolute disk paths,
``documents/...`` without the prefix, a ``uploadsdocuments`` concatenation
bug, Windows separators); ``normalize_db_path`` maps all of them onto the
canonical form and leaves canonical paths untouched.
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Optional, Union

from databank.engine.errors import InvalidInputError

UPLOADS_PREFIX = "uploads/"
DOCUMENTS_DIR = "documents"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


def normalize_db_path(path: str) -> str:
    """
    Rewrite a stored path string to the canonical ``uploads/...`` form.

    The first matching rule wins:
        1. contains "/uploads/"       → keep from "uploads/" onward
        2. contains "uploads/"        → keep from "uploads/" onward
        3. starts with "documents/"   → prepend "uploads/"
        4. contains "uploadsdocuments" → insert the missing "/", keep from there
        5. otherwise                  → unchanged

    Backslashes are turned into forward slashes first. Idempotent.
    """
    if not path:
        return path

    p = path.replace("\\", "/")

    idx = p.find("/uploads/")
    if idx != -1:
        return p[idx + 1:]

    idx = p.find(UPLOADS_PREFIX)
    if idx != -1:
        return p[idx:]

    if p.startswith(f"{DOCUMENTS_DIR}/"):
        return UPLOADS_PREFIX + p

    idx = p.find("uploadsdocuments")
    if idx != -1:
        return p[idx:].replace("uploadsdocuments", f"uploads/{DOCUMENTS_DIR}", 1)

    return p


def public_path(stored_name: str, documents_dir: str = DOCUMENTS_DIR) -> str:
    """Return ``uploads/<documents_dir>/<stored_name>``."""
    return f"{UPLOADS_PREFIX}{documents_dir}/{stored_name}"


def safe_filename(file_name: str) -> str:
    """Strip directory parts and unsafe characters from a user-supplied name."""
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    safe = _UNSAFE_CHARS.sub("_", base).strip(" .")
    return safe or "file"


def make_stored_name(original_name: str, now_ms: Optional[int] = None) -> str:
    """
    Build the on-disk name for an upload: ``<epoch millis>_<safe name>``.

    The millisecond prefix keeps two uploads of the same name apart.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}_{safe_filename(original_name)}"


def resolve_storage_path(upload_root: Union[str, Path], path: str) -> Path:
    """
    Map a stored path onto the filesystem under ``upload_root``.

    The path is normalized first; its ``uploads/`` prefix corresponds to
    ``upload_root`` itself. Anything that would land outside the upload
    root (``..`` segments, absolute remainders) is rejected.

    Raises:
        InvalidInputError: the path does not resolve beneath upload_root.
    """
    normalized = normalize_db_path(path)
    if not normalized.startswith(UPLOADS_PREFIX):
        raise InvalidInputError(
            "Stored path is not inside the upload area",
            field="filepath",
            path=path,
        )

    root = Path(upload_root).resolve()
    relative = normalized[len(UPLOADS_PREFIX):]
    candidate = (root / relative).resolve()

    if candidate == root or not candidate.is_relative_to(root):
        raise InvalidInputError(
            "Stored path is not inside the upload area",
            field="filepath",
            path=path,
        )
    return candidate
