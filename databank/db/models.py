"""
DataBank Models — All SQLAlchemy models for the document repository.

Tables defined here:
1. users          — Accounts with role and capability flags
2. folders        — Folder hierarchy (nullable parent = root)
3. files          — File catalog rows (display name + normalized path)
4. access_grants  — User ↔ Folder visibility/upload grants
5. audit_log      — Append-only record of user actions

Integrity rules enforced by the store itself:
- folder names are unique per parent, including the root group
  (a plain UNIQUE(name, parent_id) treats NULL parents as distinct, so
  roots get their own partial unique index)
- a folder with files or subfolders cannot be deleted (RESTRICT)
- grants disappear with their user or folder (CASCADE)
- audit_log.user_id is a soft reference and survives user deletion
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from databank.db.base import Base, CreatedAtMixin, utcnow


# ---------------------------------------------------------------------------
# 1. Users
# ---------------------------------------------------------------------------

class User(Base, CreatedAtMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fullname = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(10), default="user", nullable=False, index=True)
    can_search = Column(Boolean, default=False, nullable=False)
    can_preview = Column(Boolean, default=False, nullable=False)
    can_print = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="ck_users_role"),
    )

    def to_dict(self) -> dict:
        """Public view of the account (never includes the hash)."""
        return {
            "id": self.id,
            "fullname": self.fullname,
            "email": self.email,
            "role": self.role,
            "can_search": bool(self.can_search),
            "can_preview": bool(self.can_preview),
            "can_print": bool(self.can_print),
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


# ---------------------------------------------------------------------------
# 2. Folders
# ---------------------------------------------------------------------------

class Folder(Base, CreatedAtMixin):
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    parent_id = Column(
        Integer, ForeignKey("folders.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        UniqueConstraint("name", "parent_id", name="uq_folders_name_parent"),
        Index(
            "uq_folders_root_name",
            "name",
            unique=True,
            sqlite_where=text("parent_id IS NULL"),
            postgresql_where=text("parent_id IS NULL"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"


# ---------------------------------------------------------------------------
# 3. Files
# ---------------------------------------------------------------------------

class File(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_id = Column(
        Integer, ForeignKey("folders.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    filename = Column(String(255), nullable=False)
    filepath = Column(String(500), nullable=False)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_files_folder_uploaded", "folder_id", "uploaded_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "folder_id": self.folder_id,
            "filename": self.filename,
            "filepath": self.filepath,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": self.uploaded_at,
        }

    def __repr__(self) -> str:
        return f"<File(id={self.id}, filename='{self.filename}', folder_id={self.folder_id})>"


# ---------------------------------------------------------------------------
# 4. Access Grants (User ↔ Folder junction)
# ---------------------------------------------------------------------------

class AccessGrant(Base):
    __tablename__ = "access_grants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False)
    granted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "folder_id", name="uq_access_grant"),
        Index("idx_ag_user_id", "user_id"),
        Index("idx_ag_folder_id", "folder_id"),
    )

    def __repr__(self) -> str:
        return f"<AccessGrant(user_id={self.user_id} → folder_id={self.folder_id})>"


# ---------------------------------------------------------------------------
# 5. Audit Log
# ---------------------------------------------------------------------------

class AuditLogEntry(Base, CreatedAtMixin):
    """
    Append-only action trail shown to administrators.

    user_id has no foreign key: entries outlive the account
    that wrote them.
    """
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry(id={self.id}, user_id={self.user_id}, action='{self.action}')>"
