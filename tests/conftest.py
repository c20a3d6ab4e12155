"""
DataBank Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError


# ---------------------------------------------------------------------------
# Environment setup — in-memory SQLite, no Postgres, no log threads
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset global singletons between tests."""
    import databank.db.session as session_mod
    import databank.engine.config as cfg_mod
    import databank.engine.logging as log_mod

    cfg_mod._config = None
    yield
    cfg_mod._config = None
    log_mod.shutdown_logging()
    session_mod.close_db()


@pytest.fixture
def db():
    """Session factory over a fresh in-memory database with all tables."""
    from databank.db.session import init_db

    return init_db("sqlite://", create_tables=True)


def _add_user(factory, email, role="user", can_search=False, can_preview=False, can_print=False):
    from databank.db.models import User
    from databank.engine.context import Identity
    from databank.engine.security import hash_password

    session = factory()
    try:
        user = User(
            fullname=email.split("@")[0].title(),
            email=email,
            password_hash=hash_password("secret-pass", rounds=4),
            role=role,
            can_search=can_search,
            can_preview=can_preview,
            can_print=can_print,
        )
        session.add(user)
        session.commit()
        return Identity.from_user(user)
    finally:
        session.close()


@pytest.fixture
def add_user(db):
    """Insert a user row and return its Identity."""
    def _factory(email, **kwargs):
        return _add_user(db, email, **kwargs)
    return _factory


@pytest.fixture
def admin(db):
    return _add_user(db, "admin@example.com", role="admin", can_search=True, can_preview=True, can_print=True)


@pytest.fixture
def user(db):
    """A plain user with no grants and no capabilities."""
    return _add_user(db, "alice@example.com")


@pytest.fixture
def searcher(db):
    """A plain user allowed to search."""
    return _add_user(db, "bob@example.com", can_search=True, can_preview=True)


@pytest.fixture
def make_folder(db):
    """Insert a folder row directly and return its id."""
    from databank.db.models import Folder

    def _factory(name, parent_id=None):
        session = db()
        try:
            folder = Folder(name=name, parent_id=parent_id)
            session.add(folder)
            session.commit()
            return folder.id
        finally:
            session.close()
    return _factory


@pytest.fixture
def make_file(db):
    """Insert a file row directly and return its id."""
    from databank.db.models import File

    def _factory(folder_id, filename="report.pdf", filepath=None, uploaded_at=None):
        session = db()
        try:
            record = File(
                folder_id=folder_id,
                filename=filename,
                filepath=filepath or f"uploads/documents/1700000000000_{filename}",
                uploaded_at=uploaded_at or datetime(2024, 3, 15, 10, 30),
            )
            session.add(record)
            session.commit()
            return record.id
        finally:
            session.close()
    return _factory


@pytest.fixture
def grant(db):
    """Insert an access grant row."""
    from databank.db.models import AccessGrant

    def _factory(user_id, folder_id):
        session = db()
        try:
            session.add(AccessGrant(user_id=user_id, folder_id=folder_id))
            session.commit()
        finally:
            session.close()
    return _factory


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def authz(db):
    from databank.engine.security import AuthorizationEngine

    return AuthorizationEngine(db)


@pytest.fixture
def audit(db):
    from databank.engine.audit import AuditLog

    return AuditLog(db)


@pytest.fixture
def storage(tmp_path):
    from databank.documents.storage import LocalDocumentStorage

    store = LocalDocumentStorage(tmp_path / "uploads")
    store.ensure_root()
    return store


@pytest.fixture
def folders(db, authz, audit):
    from databank.documents.folders import FolderService

    return FolderService(db, authz, audit=audit)


@pytest.fixture
def catalog(db, authz, storage, audit):
    from databank.documents.catalog import FileCatalog

    return FileCatalog(db, authz, storage, audit=audit, default_page_size=10)


@pytest.fixture
def bank(db, tmp_path):
    """A DataBank wired to the in-memory store and a temp upload root."""
    from databank.engine.config import DataBankConfig
    from databank.runtime import DataBank

    config = DataBankConfig(
        storage={"upload_root": str(tmp_path / "uploads")},
        security={"bcrypt_rounds": 4},
        logging={"directory": str(tmp_path / "logs")},
    )
    return DataBank(config, db_session_factory=db)


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------

@pytest.fixture
def failing_db_session():
    """Session factory whose sessions raise OperationalError on every query."""
    session = MagicMock()
    error = OperationalError("SELECT 1", {}, Exception("connection refused"))
    session.query.side_effect = error
    session.get.side_effect = error
    session.add.side_effect = error
    session.commit.side_effect = error
    session.rollback.return_value = None
    session.close.return_value = None

    factory = MagicMock(return_value=session)
    return factory
