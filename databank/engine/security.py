"""
DataBank Security Engine — Folder authorization, credential checks, passwords.

Implements:
- AuthorizationEngine: Per-folder grant checks and visible folder/file sets
- authenticate: Email/password check returning an Identity
- Password utilities (bcrypt)

Access model:
    admin  → every folder and file, every capability, no grant lookup
    user   → exactly the folders named in access_grants (grants do not
             propagate to subfolders), plus the can_search / can_preview /
             can_print flags on the account

Fail closed: a grant lookup that errors is a denial, never a grant.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import bcrypt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from databank.db.models import AccessGrant, File, Folder, User
from databank.documents.query import FileQuery, parse_folder_id
from databank.engine.context import Identity
from databank.engine.errors import (
    AuthenticationError,
    ForbiddenError,
    InvalidInputError,
    StoreUnavailableError,
)
from databank.engine.logging import log, log_access_denied

logger = logging.getLogger("databank.engine.security")

COULD_NOT_VERIFY = "Could not verify access"

FOLDER_ORDERINGS = ("created", "name")


class AuthorizationEngine:
    """
    Answers "may this identity see/act on this folder?" and computes the
    folders and files an identity can see.

    Every check opens its own session from ``db_session_factory``. Nothing
    is cached between calls.
    """

    def __init__(self, db_session_factory: sessionmaker):
        self._db_session_factory = db_session_factory

    # -------------------------------------------------------------------
    # Point checks
    # -------------------------------------------------------------------

    def can_access_folder(self, identity: Identity, folder_id: Any) -> bool:
        """
        True for admins (without checking the folder exists), otherwise True
        iff a grant (identity.id, folder_id) exists. Errors deny.
        """
        if identity.is_admin:
            return True
        try:
            return self._has_grant(identity.id, folder_id)
        except StoreUnavailableError:
            return False

    def can_upload(self, identity: Identity, folder_id: Any) -> bool:
        """Same rule as can_access_folder: the exact folder must be granted."""
        return self.can_access_folder(identity, folder_id)

    def can_search(self, identity: Identity) -> bool:
        return identity.is_admin or identity.can_search

    def can_preview(self, identity: Identity) -> bool:
        return identity.is_admin or identity.can_preview

    def can_print(self, identity: Identity) -> bool:
        return identity.is_admin or identity.can_print

    def require_folder_access(
        self,
        identity: Identity,
        folder_id: Any,
        permission: str = "view",
        session: Optional[Session] = None,
    ) -> None:
        """
        Raise unless the identity may use the folder.

        Pass ``session`` to run the grant lookup inside the caller's
        transaction.

        Raises:
            ForbiddenError: no grant for this folder.
            StoreUnavailableError: the grant lookup failed ("Could not verify access").
        """
        if identity.is_admin:
            return
        if self._has_grant(identity.id, folder_id, session=session):
            return
        log(log_access_denied("folders", f"folder:{folder_id}", identity.id, identity.role, permission))
        raise ForbiddenError(
            "You do not have access to this folder",
            user_id=identity.id,
            object_ref=f"folder:{folder_id}",
            required_permission=permission,
        )

    def require_admin(self, identity: Identity, object_ref: str = "admin") -> None:
        """Raise ForbiddenError unless the identity is an admin."""
        if identity.is_admin:
            return
        log(log_access_denied("system", object_ref, identity.id, identity.role, "admin", reason="not_admin"))
        raise ForbiddenError(
            "Administrator access required",
            user_id=identity.id,
            object_ref=object_ref,
            required_permission="admin",
        )

    def require_search(self, identity: Identity) -> None:
        if self.can_search(identity):
            return
        log(log_access_denied("files", "search", identity.id, identity.role, "search", reason="flag_not_set"))
        raise ForbiddenError(
            "You are not allowed to search files",
            user_id=identity.id,
            object_ref="search",
            required_permission="search",
        )

    def _has_grant(self, user_id: int, folder_id: Any, session: Optional[Session] = None) -> bool:
        fid = parse_folder_id(folder_id)
        if fid is None:
            return False

        owns_session = session is None
        if owns_session:
            session = self._db_session_factory()
        try:
            row = (
                session.query(AccessGrant.id)
                .filter(AccessGrant.user_id == user_id, AccessGrant.folder_id == fid)
                .first()
            )
            return row is not None
        except SQLAlchemyError as e:
            logger.error(f"Grant lookup failed for user {user_id} / folder {fid}: {e}")
            raise StoreUnavailableError(COULD_NOT_VERIFY, user_id=user_id, folder_id=fid) from e
        finally:
            if owns_session:
                session.close()

    # -------------------------------------------------------------------
    # Visible sets
    # -------------------------------------------------------------------

    def visible_folders(self, identity: Identity, order: str = "created") -> List[Folder]:
        """
        Folders the identity can see.

        order="created" → newest first (dashboard listing)
        order="name"    → name ascending (pickers and upload targets)
        """
        if order not in FOLDER_ORDERINGS:
            raise InvalidInputError(f"Unknown folder ordering '{order}'", field="order")

        session: Session = self._db_session_factory()
        try:
            query = self.scope_folders(session.query(Folder), identity)
            if order == "name":
                query = query.order_by(Folder.name.asc(), Folder.id.asc())
            else:
                query = query.order_by(Folder.created_at.desc(), Folder.id.desc())
            return query.all()
        except SQLAlchemyError as e:
            logger.error(f"Folder listing failed for user {identity.id}: {e}")
            raise StoreUnavailableError("Could not load folders", user_id=identity.id) from e
        finally:
            session.close()

    def visible_files(self, identity: Identity, file_query: Optional[FileQuery] = None) -> List[File]:
        """Files in folders the identity can see, filtered, newest upload first."""
        file_query = file_query or FileQuery()

        session: Session = self._db_session_factory()
        try:
            query = self.scope_files(session.query(File), identity)
            query = file_query.apply(query)
            return query.order_by(File.uploaded_at.desc(), File.id.desc()).all()
        except SQLAlchemyError as e:
            logger.error(f"File listing failed for user {identity.id}: {e}")
            raise StoreUnavailableError("Could not load files", user_id=identity.id) from e
        finally:
            session.close()

    @staticmethod
    def scope_folders(query, identity: Identity):
        """Restrict a query over Folder to the identity's granted folders."""
        if identity.is_admin:
            return query
        return query.join(
            AccessGrant,
            (AccessGrant.folder_id == Folder.id) & (AccessGrant.user_id == identity.id),
        )

    @staticmethod
    def scope_files(query, identity: Identity):
        """Restrict a query over File to files in the identity's granted folders."""
        if identity.is_admin:
            return query
        return query.join(
            AccessGrant,
            (AccessGrant.folder_id == File.folder_id) & (AccessGrant.user_id == identity.id),
        )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def authenticate(db_session_factory: sessionmaker, email: str, password: str) -> Identity:
    """
    Check an email/password pair and return the caller's Identity.

    Session creation is the caller's business; this only verifies.

    Raises:
        InvalidInputError: email or password missing.
        AuthenticationError: unknown email or wrong password (same message).
        StoreUnavailableError: the user lookup failed.
    """
    email = (email or "").strip()
    if not email or not password:
        raise InvalidInputError("Email and password are required", field="email")

    session: Session = db_session_factory()
    try:
        user = session.query(User).filter(User.email == email).first()
    except SQLAlchemyError as e:
        logger.error(f"User lookup failed during login: {e}")
        raise StoreUnavailableError("Server error") from e
    finally:
        session.close()

    if user is None or not verify_password(password, user.password_hash):
        logger.info(f"Rejected login for '{email}'")
        log(log_access_denied("users", f"login:{email}", getattr(user, "id", None), "anonymous", "login", reason="bad_credentials"))
        raise AuthenticationError("Invalid email or password")

    logger.info(f"User '{email}' authenticated")
    return Identity.from_user(user)


# ---------------------------------------------------------------------------
# Password Utilities
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
