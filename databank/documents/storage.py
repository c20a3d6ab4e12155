"""
DataBank Document Storage — Local filesystem backend for stored objects.

The catalog is the source of truth. Physical bytes live under the upload
root; this adapter only resolves paths and removes objects on request.
A removal that fails leaves an orphaned object on disk, which is logged
and otherwise ignored.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from databank.documents.paths import DOCUMENTS_DIR, resolve_storage_path
from databank.engine.errors import InvalidInputError
from databank.engine.logging import log, log_storage_failure

logger = logging.getLogger("databank.documents.storage")


class LocalDocumentStorage:
    """Stored objects on the local disk, rooted at ``upload_root``."""

    def __init__(self, upload_root: Union[str, Path], documents_dir: str = DOCUMENTS_DIR):
        self._root = Path(upload_root)
        self._documents_dir = documents_dir

    @property
    def root(self) -> Path:
        return self._root

    @property
    def documents_dir(self) -> str:
        return self._documents_dir

    def ensure_root(self) -> Path:
        """Create ``<upload_root>/<documents_dir>`` if missing."""
        physical = self._root / self._documents_dir
        physical.mkdir(parents=True, exist_ok=True)
        logger.info(f"Ensured upload directory exists: {physical}")
        return physical

    def resolve(self, path: str) -> Path:
        """Absolute location of a stored path. Raises InvalidInputError if outside the root."""
        return resolve_storage_path(self._root, path)

    def delete(self, path: str) -> bool:
        """
        Best-effort removal of a stored object.

        Returns True when the object is gone afterwards (including when it
        was already missing), False when it could not be removed.
        """
        try:
            physical = self.resolve(path)
        except InvalidInputError as e:
            logger.warning(f"Refusing to delete stored object outside upload root: {path!r}")
            log(log_storage_failure(path, e.message))
            return False

        try:
            physical.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete stored object {physical}: {e}")
            log(log_storage_failure(path, str(e)))
            return False

        logger.info(f"Deleted stored object: {physical}")
        return True
