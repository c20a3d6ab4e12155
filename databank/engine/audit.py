"""
DataBank Audit Log — Append-only user action trail.

Every mutating operation records one entry after its own transaction has
committed. Writing an entry never raises: a failed write is logged and the
primary operation stands. Administrators read the newest entries first,
capped at the configured display window.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from databank.db.models import AuditLogEntry, User
from databank.engine.context import Identity
from databank.engine.errors import ForbiddenError, StoreUnavailableError

logger = logging.getLogger("databank.engine.audit")

DEFAULT_DISPLAY_LIMIT = 200

# Action labels
CREATED_FOLDER = "Created a folder"
RENAMED_FOLDER = "Renamed a folder"
DELETED_FOLDER = "Deleted a folder"
UPLOADED_FILE = "Uploaded a file"
DELETED_FILE = "Deleted a file"
CREATED_USER = "Created a user"
UPDATED_USER = "Updated a user"
DELETED_USER = "Deleted a user"
UPDATED_GRANTS = "Updated folder access"


class AuditLog:
    """Writer and reader for the audit_log table."""

    def __init__(self, db_session_factory: sessionmaker, display_limit: int = DEFAULT_DISPLAY_LIMIT):
        self._db_session_factory = db_session_factory
        self._display_limit = display_limit

    @property
    def display_limit(self) -> int:
        return self._display_limit

    def record(self, user_id: Optional[int], action: str) -> bool:
        """
        Append one entry. Returns False (after logging) if the write failed.
        """
        session: Optional[Session] = None
        try:
            session = self._db_session_factory()
            session.add(AuditLogEntry(user_id=user_id, action=action))
            session.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to write audit entry ({action!r} by {user_id}): {e}")
            if session is not None:
                session.rollback()
            return False
        finally:
            if session is not None:
                session.close()

    def recent(self, actor: Identity, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Newest entries first, with the author's fullname/email when the
        account still exists. Admin only.
        """
        if not actor.is_admin:
            raise ForbiddenError(
                "Administrator access required",
                user_id=actor.id,
                object_ref="audit_log",
                required_permission="admin",
            )

        cap = self._display_limit
        if limit is not None:
            cap = max(0, min(limit, self._display_limit))

        session: Session = self._db_session_factory()
        try:
            rows = (
                session.query(
                    AuditLogEntry.id,
                    AuditLogEntry.user_id,
                    AuditLogEntry.action,
                    AuditLogEntry.created_at,
                    User.fullname,
                    User.email,
                )
                .outerjoin(User, User.id == AuditLogEntry.user_id)
                .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
                .limit(cap)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Audit log read failed: {e}")
            raise StoreUnavailableError("Could not load activity logs") from e
        finally:
            session.close()

        return [
            {
                "id": r.id,
                "user_id": r.user_id,
                "action": r.action,
                "created_at": r.created_at,
                "fullname": r.fullname,
                "email": r.email,
            }
            for r in rows
        ]
