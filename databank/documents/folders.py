"""
DataBank Folder Service — Create, rename, delete and browse folders.

Handles:
- Folder creation under an optional parent, unique per sibling group
- Rename with the same uniqueness rule (excluding the folder itself)
- Delete only when the folder holds no files and no subfolders
- Access-checked lookups for browsing

Root folders (parent_id NULL) form one sibling group. Uniqueness is also
enforced by the store, so two racing creates degrade to a
DuplicateNameError instead of two rows.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from databank.db.models import File, Folder
from databank.documents.query import parse_folder_id
from databank.engine import audit as audit_actions
from databank.engine.audit import AuditLog
from databank.engine.context import Identity
from databank.engine.errors import (
    DuplicateNameError,
    InvalidInputError,
    NotEmptyError,
    NotFoundError,
    ParentNotFoundError,
    StoreUnavailableError,
)
from databank.engine.logging import log, log_catalog_change
from databank.engine.security import AuthorizationEngine

logger = logging.getLogger("databank.documents.folders")


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInputError("Folder name is required", field="name")
    return cleaned


def _sibling_exists(
    session: Session, name: str, parent_id: Optional[int], exclude_id: Optional[int] = None
) -> bool:
    query = session.query(Folder.id).filter(Folder.name == name)
    if parent_id is None:
        query = query.filter(Folder.parent_id.is_(None))
    else:
        query = query.filter(Folder.parent_id == parent_id)
    if exclude_id is not None:
        query = query.filter(Folder.id != exclude_id)
    return query.first() is not None


class FolderService:
    """Folder hierarchy management. Mutations are admin-only."""

    def __init__(
        self,
        db_session_factory: sessionmaker,
        authz: AuthorizationEngine,
        audit: Optional[AuditLog] = None,
    ):
        self._db_session_factory = db_session_factory
        self._authz = authz
        self._audit = audit

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def create_folder(self, name: str, parent_id: Any, creator: Identity) -> Folder:
        """
        Create a folder under ``parent_id`` (None/"" for a root folder).

        Raises:
            ForbiddenError, InvalidInputError, ParentNotFoundError,
            DuplicateNameError, StoreUnavailableError
        """
        self._authz.require_admin(creator, "folders.create")
        clean = _clean_name(name)

        parent: Optional[int] = None
        if parent_id not in (None, ""):
            parent = parse_folder_id(parent_id)
            if parent is None:
                raise InvalidInputError("Invalid parent folder", field="parent_id", value=parent_id)

        session: Session = self._db_session_factory()
        try:
            if parent is not None and session.get(Folder, parent) is None:
                raise ParentNotFoundError(
                    "Parent folder not found",
                    record_type="folder",
                    record_id=parent,
                )
            if _sibling_exists(session, clean, parent):
                raise DuplicateNameError(
                    "A folder with this name already exists here",
                    name=clean,
                    parent_id=parent,
                )

            folder = Folder(name=clean, parent_id=parent, created_by=creator.id)
            session.add(folder)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning(f"Folder create for '{clean}' under {parent} hit a constraint: {e.orig}")
            raise DuplicateNameError(
                "A folder with this name already exists here",
                name=clean,
                parent_id=parent,
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Folder create failed: {e}")
            raise StoreUnavailableError("Could not create folder") from e
        finally:
            session.close()

        logger.info(f"Created folder {folder.id} '{clean}' (parent: {parent})")
        log(log_catalog_change("folders", "created", f"folder:{folder.id}", creator.id, folder.id, name=clean))
        self._record(creator, audit_actions.CREATED_FOLDER)
        return folder

    def rename_folder(self, folder_id: Any, new_name: str, actor: Identity) -> Folder:
        """
        Rename in place. Parent, children and files are untouched.

        Raises:
            ForbiddenError, InvalidInputError, NotFoundError,
            DuplicateNameError, StoreUnavailableError
        """
        self._authz.require_admin(actor, "folders.rename")
        clean = _clean_name(new_name)
        fid = self._require_id(folder_id)

        session: Session = self._db_session_factory()
        try:
            folder = session.get(Folder, fid)
            if folder is None:
                raise NotFoundError("Folder not found", record_type="folder", record_id=fid)
            if _sibling_exists(session, clean, folder.parent_id, exclude_id=fid):
                raise DuplicateNameError(
                    "A folder with this name already exists here",
                    name=clean,
                    parent_id=folder.parent_id,
                )

            updated = (
                session.query(Folder)
                .filter(Folder.id == fid)
                .update({Folder.name: clean}, synchronize_session="fetch")
            )
            if updated == 0:
                raise NotFoundError("Folder not found", record_type="folder", record_id=fid)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateNameError(
                "A folder with this name already exists here", name=clean
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Folder rename failed for {fid}: {e}")
            raise StoreUnavailableError("Could not rename folder") from e
        finally:
            session.close()

        logger.info(f"Renamed folder {fid} to '{clean}'")
        log(log_catalog_change("folders", "renamed", f"folder:{fid}", actor.id, fid, name=clean))
        self._record(actor, audit_actions.RENAMED_FOLDER)
        return folder

    def delete_folder(self, folder_id: Any, actor: Identity) -> None:
        """
        Delete an empty folder. Never cascades.

        Both emptiness checks and the delete run in one transaction; if an
        upload still slips in between, the RESTRICT foreign key rejects the
        delete and it is reported as NotEmptyError(kind="files").

        Raises:
            ForbiddenError, InvalidInputError, NotFoundError,
            NotEmptyError, StoreUnavailableError
        """
        self._authz.require_admin(actor, "folders.delete")
        fid = self._require_id(folder_id)

        session: Session = self._db_session_factory()
        try:
            folder = session.get(Folder, fid)
            if folder is None:
                raise NotFoundError("Folder not found", record_type="folder", record_id=fid)

            if session.query(File.id).filter(File.folder_id == fid).first() is not None:
                raise NotEmptyError(
                    "Folder is not empty. Delete its files first.",
                    kind=NotEmptyError.FILES,
                    record_id=fid,
                )
            if session.query(Folder.id).filter(Folder.parent_id == fid).first() is not None:
                raise NotEmptyError(
                    "Folder has subfolders. Delete them first.",
                    kind=NotEmptyError.SUBFOLDERS,
                    record_id=fid,
                )

            deleted = session.query(Folder).filter(Folder.id == fid).delete(synchronize_session=False)
            if deleted == 0:
                raise NotFoundError("Folder not found", record_type="folder", record_id=fid)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning(f"Folder {fid} delete rejected by a constraint: {e.orig}")
            if self._has_subfolders(fid):
                raise NotEmptyError(
                    "Folder has subfolders. Delete them first.",
                    kind=NotEmptyError.SUBFOLDERS,
                    record_id=fid,
                ) from e
            raise NotEmptyError(
                "Folder is not empty. Delete its files first.",
                kind=NotEmptyError.FILES,
                record_id=fid,
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Folder delete failed for {fid}: {e}")
            raise StoreUnavailableError("Could not delete folder") from e
        finally:
            session.close()

        logger.info(f"Deleted folder {fid}")
        log(log_catalog_change("folders", "deleted", f"folder:{fid}", actor.id, fid))
        self._record(actor, audit_actions.DELETED_FOLDER)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def get_folder(self, identity: Identity, folder_id: Any) -> Folder:
        """
        Look up one folder the identity may see.

        Raises:
            InvalidInputError, NotFoundError, ForbiddenError, StoreUnavailableError
        """
        fid = self._require_id(folder_id)
        folder = self._load(fid)
        self._authz.require_folder_access(identity, fid)
        return folder

    def list_children(self, identity: Identity, parent_id: Any = None) -> List[Folder]:
        """Visible direct children of ``parent_id`` (root folders when None), by name."""
        parent: Optional[int] = None
        if parent_id not in (None, ""):
            parent = self._require_id(parent_id)

        session: Session = self._db_session_factory()
        try:
            query = AuthorizationEngine.scope_folders(session.query(Folder), identity)
            if parent is None:
                query = query.filter(Folder.parent_id.is_(None))
            else:
                query = query.filter(Folder.parent_id == parent)
            return query.order_by(Folder.name.asc(), Folder.id.asc()).all()
        except SQLAlchemyError as e:
            logger.error(f"Child folder listing failed for {parent}: {e}")
            raise StoreUnavailableError("Could not load folders") from e
        finally:
            session.close()

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    @staticmethod
    def _require_id(folder_id: Any) -> int:
        fid = parse_folder_id(folder_id)
        if fid is None:
            raise InvalidInputError("Invalid folder", field="folder_id", value=folder_id)
        return fid

    def _load(self, fid: int) -> Folder:
        session: Session = self._db_session_factory()
        try:
            folder = session.get(Folder, fid)
        except SQLAlchemyError as e:
            logger.error(f"Folder lookup failed for {fid}: {e}")
            raise StoreUnavailableError("Could not load folder") from e
        finally:
            session.close()
        if folder is None:
            raise NotFoundError("Folder not found", record_type="folder", record_id=fid)
        return folder

    def _has_subfolders(self, fid: int) -> bool:
        """Re-check children after a rejected delete. Files are assumed on error."""
        session: Session = self._db_session_factory()
        try:
            return session.query(Folder.id).filter(Folder.parent_id == fid).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Child lookup failed for folder {fid}: {e}")
            return False
        finally:
            session.close()

    def _record(self, actor: Identity, action: str) -> None:
        if self._audit is not None:
            self._audit.record(actor.id, action)
