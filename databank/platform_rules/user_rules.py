"""
DataBank Platform Rules — Account administration and folder grants.

Security:
- every function here requires an admin actor
- update_user() / delete_user() refuse to touch the actor's own account
- delete_user() refuses to remove another admin

Grants are always replaced wholesale: the user's rows are deleted and the
new set inserted inside one transaction, so a reader sees either the old
set or the new one.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from databank.db.models import AccessGrant, Folder, User
from databank.documents.query import parse_folder_id
from databank.engine import audit as audit_actions
from databank.engine.audit import AuditLog
from databank.engine.context import ROLE_ADMIN, ROLE_USER, ROLES, Identity
from databank.engine.errors import (
    DuplicateNameError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)
from databank.engine.logging import log, log_access_denied, log_catalog_change
from databank.engine.security import hash_password

logger = logging.getLogger("databank.platform_rules")

DEFAULT_PASSWORD_MIN_LENGTH = 8


def _require_admin(actor: Identity, object_ref: str) -> None:
    """Raise if the actor is not an admin."""
    if actor is None or not actor.is_admin:
        user_id = getattr(actor, "id", None)
        log(log_access_denied("users", object_ref, user_id, getattr(actor, "role", "anonymous"), "admin", reason="not_admin"))
        raise ForbiddenError(
            "Administrator access required",
            user_id=user_id,
            object_ref=object_ref,
            required_permission="admin",
        )


def _require_user_id(user_id: Any) -> int:
    uid = parse_folder_id(user_id)
    if uid is None:
        raise InvalidInputError("Invalid user", field="user_id", value=user_id)
    return uid


def _validate_role(role: Optional[str]) -> str:
    value = (role or ROLE_USER).strip()
    if value not in ROLES:
        raise InvalidInputError(f"Invalid role: {value}", field="role", value=role)
    return value


def _record(audit: Optional[AuditLog], actor: Identity, action: str) -> None:
    if audit is not None:
        audit.record(actor.id, action)


def coerce_folder_ids(folder_ids: Any) -> List[int]:
    """
    Turn raw form input into a list of unique positive folder ids.

    Accepts a single value or an iterable. Digit strings are converted,
    anything else is dropped. First-seen order is kept.
    """
    if folder_ids is None:
        return []
    if isinstance(folder_ids, (str, int)):
        folder_ids = [folder_ids]

    seen: List[int] = []
    for raw in folder_ids:
        fid = parse_folder_id(raw)
        if fid is not None and fid not in seen:
            seen.append(fid)
    return seen


def _write_grants(session: Session, user_id: int, role: str, folder_ids: Iterable[int]) -> List[int]:
    """Delete the user's grants and insert the new set. Caller commits."""
    session.query(AccessGrant).filter(AccessGrant.user_id == user_id).delete(synchronize_session=False)

    # Admins bypass grants entirely
    if role == ROLE_ADMIN:
        return []

    wanted = list(folder_ids)
    if not wanted:
        return []

    existing = {
        row.id for row in session.query(Folder.id).filter(Folder.id.in_(wanted)).all()
    }
    granted = [fid for fid in wanted if fid in existing]
    dropped = [fid for fid in wanted if fid not in existing]
    if dropped:
        logger.warning(f"Skipping grants to missing folders {dropped} for user {user_id}")

    for fid in granted:
        session.add(AccessGrant(user_id=user_id, folder_id=fid))
    return granted


# ---------------------------------------------------------------------------
# Grant rules
# ---------------------------------------------------------------------------

def replace_grants(
    session_factory: sessionmaker,
    user_id: Any,
    folder_ids: Any,
    actor: Identity,
    audit: Optional[AuditLog] = None,
) -> List[int]:
    """
    Replace a user's folder grants with ``folder_ids``.

    Returns the folder ids actually granted (empty for admin accounts).

    Raises:
        ForbiddenError, InvalidInputError, NotFoundError, StoreUnavailableError
    """
    _require_admin(actor, "grants.replace")
    uid = _require_user_id(user_id)
    wanted = coerce_folder_ids(folder_ids)

    session: Session = session_factory()
    try:
        user = session.get(User, uid)
        if user is None:
            raise NotFoundError("User not found", record_type="user", record_id=uid)
        granted = _write_grants(session, uid, user.role, wanted)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Grant replacement failed for user {uid}: {e}")
        raise StoreUnavailableError("Could not update folder assignments") from e
    finally:
        session.close()

    logger.info(f"User {uid} now granted folders {granted}")
    log(log_catalog_change("grants", "replaced", f"user:{uid}", actor.id, uid, folder_ids=granted))
    _record(audit, actor, audit_actions.UPDATED_GRANTS)
    return granted


def list_access_rows(session_factory: sessionmaker, actor: Identity) -> List[Dict[str, int]]:
    """Every (user_id, folder_id) grant. Admin only."""
    _require_admin(actor, "grants.list")

    session: Session = session_factory()
    try:
        rows = (
            session.query(AccessGrant.user_id, AccessGrant.folder_id)
            .order_by(AccessGrant.user_id.asc(), AccessGrant.folder_id.asc())
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Access row listing failed: {e}")
        raise StoreUnavailableError("Could not load folder assignments") from e
    finally:
        session.close()

    return [{"user_id": r.user_id, "folder_id": r.folder_id} for r in rows]


# ---------------------------------------------------------------------------
# User rules
# ---------------------------------------------------------------------------

def create_user(
    session_factory: sessionmaker,
    fullname: str,
    email: str,
    password: str,
    role: str,
    actor: Identity,
    can_search: bool = False,
    can_preview: bool = False,
    can_print: bool = False,
    password_min_length: int = DEFAULT_PASSWORD_MIN_LENGTH,
    bcrypt_rounds: int = 12,
    audit: Optional[AuditLog] = None,
) -> Dict[str, Any]:
    """
    Create an account. Admin only.

    Raises:
        ForbiddenError, InvalidInputError, DuplicateNameError, StoreUnavailableError
    """
    _require_admin(actor, "users.create")

    name = (fullname or "").strip()
    address = (email or "").strip()
    if not name or not address or not password:
        raise InvalidInputError("All fields required", field="user")
    if len(password) < password_min_length:
        raise InvalidInputError(
            f"Password must be at least {password_min_length} characters",
            field="password",
        )
    user_role = _validate_role(role)

    session: Session = session_factory()
    try:
        if session.query(User.id).filter(User.email == address).first() is not None:
            raise DuplicateNameError("User already exists", email=address)

        user = User(
            fullname=name,
            email=address,
            password_hash=hash_password(password, rounds=bcrypt_rounds),
            role=user_role,
            can_search=bool(can_search),
            can_preview=bool(can_preview),
            can_print=bool(can_print),
        )
        session.add(user)
        session.commit()
        result = user.to_dict()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateNameError("User already exists", email=address) from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"User create failed for '{address}': {e}")
        raise StoreUnavailableError("Could not create user") from e
    finally:
        session.close()

    logger.info(f"Created user: {address} (role: {user_role})")
    log(log_catalog_change("users", "created", f"user:{result['id']}", actor.id, result["id"], role=user_role))
    _record(audit, actor, audit_actions.CREATED_USER)
    return result


def update_user(
    session_factory: sessionmaker,
    user_id: Any,
    actor: Identity,
    role: str = ROLE_USER,
    can_search: bool = False,
    can_preview: bool = False,
    can_print: bool = False,
    folder_ids: Any = None,
    audit: Optional[AuditLog] = None,
) -> Dict[str, Any]:
    """
    Set role, capability flags and folder grants in one transaction.

    Flags are written as given (a form that omits a checkbox clears it).
    Grants are replaced; an admin role clears them.

    Raises:
        ForbiddenError, InvalidInputError, NotFoundError, StoreUnavailableError
    """
    _require_admin(actor, "users.update")
    uid = _require_user_id(user_id)
    if uid == actor.id:
        raise ForbiddenError(
            "You cannot modify your own admin privileges here",
            user_id=actor.id,
            object_ref=f"user:{uid}",
        )
    user_role = _validate_role(role)
    wanted = coerce_folder_ids(folder_ids)

    session: Session = session_factory()
    try:
        updated = (
            session.query(User)
            .filter(User.id == uid)
            .update(
                {
                    User.role: user_role,
                    User.can_search: bool(can_search),
                    User.can_preview: bool(can_preview),
                    User.can_print: bool(can_print),
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            raise NotFoundError("User not found", record_type="user", record_id=uid)

        granted = _write_grants(session, uid, user_role, wanted)
        session.commit()
        result = session.get(User, uid).to_dict()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"User update failed for {uid}: {e}")
        raise StoreUnavailableError("Could not update user") from e
    finally:
        session.close()

    result["folder_ids"] = granted
    logger.info(f"Updated user {uid} (role: {user_role}, folders: {granted})")
    log(log_catalog_change("users", "updated", f"user:{uid}", actor.id, uid, role=user_role, folder_ids=granted))
    _record(audit, actor, audit_actions.UPDATED_USER)
    return result


def delete_user(
    session_factory: sessionmaker,
    user_id: Any,
    actor: Identity,
    audit: Optional[AuditLog] = None,
) -> None:
    """
    Delete a non-admin account and its grants. Admin only.

    Folders and files the user created stay; their creator/uploader
    reference becomes NULL.

    Raises:
        ForbiddenError, InvalidInputError, NotFoundError, StoreUnavailableError
    """
    _require_admin(actor, "users.delete")
    uid = _require_user_id(user_id)
    if uid == actor.id:
        raise ForbiddenError(
            "You cannot delete your own admin account",
            user_id=actor.id,
            object_ref=f"user:{uid}",
        )

    session: Session = session_factory()
    try:
        user = session.get(User, uid)
        if user is None:
            raise NotFoundError("User not found", record_type="user", record_id=uid)
        if user.role == ROLE_ADMIN:
            raise ForbiddenError(
                "You cannot delete another admin account",
                user_id=actor.id,
                object_ref=f"user:{uid}",
            )

        session.query(AccessGrant).filter(AccessGrant.user_id == uid).delete(synchronize_session=False)
        session.query(User).filter(User.id == uid).delete(synchronize_session=False)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"User delete failed for {uid}: {e}")
        raise StoreUnavailableError("Could not delete user") from e
    finally:
        session.close()

    logger.info(f"Deleted user {uid}")
    log(log_catalog_change("users", "deleted", f"user:{uid}", actor.id, uid))
    _record(audit, actor, audit_actions.DELETED_USER)


def list_users(session_factory: sessionmaker, actor: Identity) -> List[Dict[str, Any]]:
    """All accounts, newest first. Admin only."""
    _require_admin(actor, "users.list")

    session: Session = session_factory()
    try:
        users = session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
        return [u.to_dict() for u in users]
    except SQLAlchemyError as e:
        logger.error(f"User listing failed: {e}")
        raise StoreUnavailableError("Could not load users") from e
    finally:
        session.close()
