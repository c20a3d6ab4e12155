"""
DataBank File Catalog — Record uploads, answer filtered queries, remove files.

Handles:
- Upload registration (folder validation, grant check, path normalization)
- Keyword/date search gated on the can_search capability
- Paged folder listings
- Admin delete with best-effort removal of the stored object

The catalog row is the source of truth. Physical bytes are written by the
upload transport before ``record_upload`` is called and removed by the
storage adapter after a catalog delete commits.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from databank.db.base import utcnow
from databank.db.models import File, Folder
from databank.documents.paths import normalize_db_path
from databank.documents.query import MAX_ID, FileQuery, parse_folder_id
from databank.documents.storage import LocalDocumentStorage
from databank.engine import audit as audit_actions
from databank.engine.audit import AuditLog
from databank.engine.context import Identity
from databank.engine.errors import (
    InvalidFolderError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)
from databank.engine.logging import log, log_catalog_change
from databank.engine.security import AuthorizationEngine

logger = logging.getLogger("databank.documents.catalog")

DEFAULT_PAGE_SIZE = 25


@dataclass
class FilePage:
    """One page of a folder listing."""

    items: List[File] = field(default_factory=list)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    total: int = 0
    total_pages: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [f.to_dict() for f in self.items],
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "total_pages": self.total_pages,
        }


class FileCatalog:
    """File metadata operations, authorized per identity."""

    def __init__(
        self,
        db_session_factory: sessionmaker,
        authz: AuthorizationEngine,
        storage: LocalDocumentStorage,
        audit: Optional[AuditLog] = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._db_session_factory = db_session_factory
        self._authz = authz
        self._storage = storage
        self._audit = audit
        self._default_page_size = default_page_size

    # -------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------

    def record_upload(
        self,
        uploader: Identity,
        folder_id: Any,
        display_name: str,
        stored_path: str,
    ) -> File:
        """
        Register an uploaded file in ``folder_id``.

        ``stored_path`` is normalized to ``uploads/...`` before it is saved
        and must point inside the upload root.

        Raises:
            InvalidFolderError: folder id not a positive integer or no such folder.
            InvalidInputError: empty display name or a path outside the upload root.
            ForbiddenError: non-admin without a grant on the folder.
            StoreUnavailableError
        """
        fid = parse_folder_id(folder_id)
        if fid is None:
            raise InvalidFolderError("Please select a valid folder", field="folder_id", value=folder_id)

        name = (display_name or "").strip()
        if not name:
            raise InvalidInputError("No file uploaded", field="filename")

        filepath = normalize_db_path(stored_path or "")
        # Raises InvalidInputError when the path escapes the upload root
        self._storage.resolve(filepath)

        session: Session = self._db_session_factory()
        try:
            if session.get(Folder, fid) is None:
                raise InvalidFolderError("Please select a valid folder", field="folder_id", value=fid)

            if not uploader.is_admin:
                self._authz.require_folder_access(uploader, fid, permission="upload", session=session)

            record = File(
                folder_id=fid,
                filename=name,
                filepath=filepath,
                uploaded_by=uploader.id,
                uploaded_at=utcnow(),
            )
            session.add(record)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"File upload insert failed for folder {fid}: {e}")
            raise StoreUnavailableError("File upload failed") from e
        finally:
            session.close()

        logger.info(f"Recorded upload {record.id} '{name}' in folder {fid}")
        log(log_catalog_change("files", "uploaded", f"file:{record.id}", uploader.id, record.id, folder_id=fid))
        self._record(uploader, audit_actions.UPLOADED_FILE)
        return record

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def search(
        self,
        identity: Identity,
        keyword: Optional[str] = None,
        on_date: Union[None, str, date] = None,
        folder_id: Any = None,
    ) -> List[File]:
        """
        Keyword / upload-day search over the identity's visible files.

        Raises:
            ForbiddenError: non-admin without the can_search capability.
            InvalidInputError: unparseable date or folder id.
            StoreUnavailableError
        """
        self._authz.require_search(identity)
        file_query = FileQuery.build(folder_id=folder_id, keyword=keyword, on_date=on_date)
        return self._authz.visible_files(identity, file_query)

    def list_by_folder(
        self,
        identity: Identity,
        folder_id: Any,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> FilePage:
        """
        One page of a folder's files, newest upload first.

        The count and the page are read inside the same transaction so
        total_pages always describes the set the items came from. Pages
        past the end are empty, not errors.

        Raises:
            InvalidInputError, NotFoundError, ForbiddenError, StoreUnavailableError
        """
        fid = parse_folder_id(folder_id)
        if fid is None:
            raise InvalidInputError("Invalid folder", field="folder_id", value=folder_id)

        size = self._default_page_size if page_size is None else page_size
        if not isinstance(page, int) or page < 1:
            raise InvalidInputError("Page must be a positive number", field="page", value=page)
        if not isinstance(size, int) or size < 1:
            raise InvalidInputError("Page size must be a positive number", field="page_size", value=size)
        if size > MAX_ID or (page - 1) * size > MAX_ID:
            raise InvalidInputError("Page is out of range", field="page", value=page)

        session: Session = self._db_session_factory()
        try:
            with session.begin():
                if session.get(Folder, fid) is None:
                    raise NotFoundError("Folder not found", record_type="folder", record_id=fid)

                if not identity.is_admin:
                    self._authz.require_folder_access(identity, fid, session=session)

                base = session.query(File).filter(File.folder_id == fid)
                total = base.count()
                items = (
                    base.order_by(File.uploaded_at.desc(), File.id.desc())
                    .offset((page - 1) * size)
                    .limit(size)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"Folder listing failed for {fid}: {e}")
            raise StoreUnavailableError("Could not load folder files") from e
        finally:
            session.close()

        return FilePage(
            items=items,
            page=page,
            page_size=size,
            total=total,
            total_pages=math.ceil(total / size),
        )

    def get_file(self, identity: Identity, file_id: Any) -> File:
        """
        One file the identity may see (for preview, print and download links).

        Raises:
            InvalidInputError, NotFoundError, ForbiddenError, StoreUnavailableError
        """
        rid = self._require_id(file_id)
        record = self._load(rid)
        self._authz.require_folder_access(identity, record.folder_id, permission="preview")
        return record

    # -------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------

    def delete_file(self, file_id: Any, actor: Identity) -> bool:
        """
        Remove a file row, then try to remove its stored object.

        Returns whether the stored object was removed. A False return is not
        an error: the catalog delete has already committed and the leftover
        object is logged for cleanup.

        Raises:
            ForbiddenError, InvalidInputError, NotFoundError, StoreUnavailableError
        """
        self._authz.require_admin(actor, "files.delete")
        rid = self._require_id(file_id)

        session: Session = self._db_session_factory()
        try:
            record = session.get(File, rid)
            if record is None:
                raise NotFoundError("File not found", record_type="file", record_id=rid)
            stored_path = record.filepath

            deleted = session.query(File).filter(File.id == rid).delete(synchronize_session=False)
            if deleted == 0:
                raise NotFoundError("File not found", record_type="file", record_id=rid)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"File delete failed for {rid}: {e}")
            raise StoreUnavailableError("Could not delete file") from e
        finally:
            session.close()

        logger.info(f"Deleted file row {rid}")
        log(log_catalog_change("files", "deleted", f"file:{rid}", actor.id, rid))
        self._record(actor, audit_actions.DELETED_FILE)

        removed = self._storage.delete(normalize_db_path(stored_path))
        if not removed:
            logger.warning(f"File {rid} removed from catalog but stored object remains: {stored_path}")
        return removed

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    @staticmethod
    def _require_id(file_id: Any) -> int:
        rid = parse_folder_id(file_id)
        if rid is None:
            raise InvalidInputError("Invalid file", field="file_id", value=file_id)
        return rid

    def _load(self, rid: int) -> File:
        session: Session = self._db_session_factory()
        try:
            record = session.get(File, rid)
        except SQLAlchemyError as e:
            logger.error(f"File lookup failed for {rid}: {e}")
            raise StoreUnavailableError("Could not load file") from e
        finally:
            session.close()
        if record is None:
            raise NotFoundError("File not found", record_type="file", record_id=rid)
        return record

    def _record(self, actor: Identity, action: str) -> None:
        if self._audit is not None:
            self._audit.record(actor.id, action)
