"""
DataBank Runtime — Wires the services together from one configuration.

Ties together:
- Session factory (SQLAlchemy)
- AuthorizationEngine (folder grants)
- AuditLog (action trail)
- LocalDocumentStorage (physical objects)
- FolderService / FileCatalog (folder and file operations)
- AsyncLogQueue (structured JSONL logs)

Lifecycle:
    bank = DataBank.from_config()
    bank.startup()
    ...
    bank.shutdown()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from databank.db.session import close_db, init_db
from databank.documents.catalog import FileCatalog
from databank.documents.folders import FolderService
from databank.documents.storage import LocalDocumentStorage
from databank.engine.audit import AuditLog
from databank.engine.config import DataBankConfig, load_config
from databank.engine.context import Identity
from databank.engine.logging import init_logging, log, log_system_event, shutdown_logging
from databank.engine.security import AuthorizationEngine, authenticate
from databank.platform_rules import user_rules

logger = logging.getLogger("databank.runtime")


class DataBank:
    """Single entry point for a configured repository."""

    def __init__(self, config: DataBankConfig, db_session_factory: Optional[sessionmaker] = None):
        self.config = config
        self._db_session_factory = db_session_factory

        self.authz: Optional[AuthorizationEngine] = None
        self.audit: Optional[AuditLog] = None
        self.storage: Optional[LocalDocumentStorage] = None
        self.folders: Optional[FolderService] = None
        self.catalog: Optional[FileCatalog] = None

        self._engine: Optional[Engine] = None
        self._started = False
        self._build_services()

    @classmethod
    def from_config(
        cls,
        config_path: Optional[str] = None,
        create_tables: bool = False,
    ) -> "DataBank":
        """Load databank.yaml, open the database and build the services."""
        config = load_config(config_path)
        db = config.database
        factory = init_db(
            db.url,
            create_tables=create_tables,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=db.pool_pre_ping,
            echo=db.echo,
        )
        bank = cls(config, db_session_factory=factory)
        # Engines opened here are disposed again by shutdown()
        bank._engine = factory.kw["bind"]
        return bank

    def _build_services(self) -> None:
        if self._db_session_factory is None:
            raise RuntimeError("DataBank needs a session factory. Use DataBank.from_config().")

        self.authz = AuthorizationEngine(self._db_session_factory)
        self.audit = AuditLog(self._db_session_factory, display_limit=self.config.audit.display_limit)
        self.storage = LocalDocumentStorage(
            self.config.storage.upload_root,
            documents_dir=self.config.storage.documents_dir,
        )
        self.folders = FolderService(self._db_session_factory, self.authz, audit=self.audit)
        self.catalog = FileCatalog(
            self._db_session_factory,
            self.authz,
            self.storage,
            audit=self.audit,
            default_page_size=self.config.listing.default_page_size,
        )

    @property
    def session_factory(self) -> sessionmaker:
        return self._db_session_factory

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def startup(self) -> None:
        """Create the upload root and start the structured log queue."""
        if self._started:
            logger.warning("DataBank already started")
            return

        logging.getLogger("databank").setLevel(self.config.logging.level.upper())
        self.storage.ensure_root()

        queue_cfg = self.config.logging.async_queue
        init_logging(
            log_dir=self.config.logging.directory,
            flush_interval_ms=queue_cfg.flush_interval_ms,
            flush_batch_size=queue_cfg.flush_batch_size,
            max_queue_size=queue_cfg.max_queue_size,
        )

        self._started = True
        log(log_system_event("databank_started", details={"environment": self.config.environment}))
        logger.info(f"{self.config.name} started ({self.config.environment})")

    def shutdown(self) -> None:
        """Flush and stop logging, then dispose the engine opened by from_config()."""
        if self._started:
            log(log_system_event("databank_shutdown"))
            shutdown_logging()
            self._started = False
            logger.info(f"{self.config.name} shut down")

        if self._engine is not None:
            close_db(self._engine)
            self._engine = None

    # -----------------------------------------------------------------------
    # Accounts
    # -----------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> Identity:
        return authenticate(self._db_session_factory, email, password)

    def create_user(
        self,
        actor: Identity,
        fullname: str,
        email: str,
        password: str,
        role: str = "user",
        **flags: bool,
    ) -> Dict[str, Any]:
        security = self.config.security
        return user_rules.create_user(
            self._db_session_factory,
            fullname,
            email,
            password,
            role,
            actor,
            password_min_length=security.password_min_length,
            bcrypt_rounds=security.bcrypt_rounds,
            audit=self.audit,
            **flags,
        )

    def update_user(self, actor: Identity, user_id: Any, **fields: Any) -> Dict[str, Any]:
        return user_rules.update_user(self._db_session_factory, user_id, actor, audit=self.audit, **fields)

    def delete_user(self, actor: Identity, user_id: Any) -> None:
        user_rules.delete_user(self._db_session_factory, user_id, actor, audit=self.audit)

    def replace_grants(self, actor: Identity, user_id: Any, folder_ids: Any) -> List[int]:
        return user_rules.replace_grants(
            self._db_session_factory, user_id, folder_ids, actor, audit=self.audit
        )

    def list_users(self, actor: Identity) -> List[Dict[str, Any]]:
        return user_rules.list_users(self._db_session_factory, actor)

    def list_access_rows(self, actor: Identity) -> List[Dict[str, int]]:
        return user_rules.list_access_rows(self._db_session_factory, actor)
