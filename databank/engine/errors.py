"""
DataBank Error Hierarchy — Typed exceptions for every core operation.

Every service raises one of these instead of returning a boolean sentinel.
The ``message`` is short and safe to show to an end user; identifiers and
driver-level details travel in ``context`` and are only ever logged.

Hierarchy:
    DataBankError
    ├── InvalidInputError        — Malformed or missing required field
    │   └── InvalidFolderError   — Upload target folder id is bad or missing
    ├── NotFoundError            — Referenced folder/file/user does not exist
    │   └── ParentNotFoundError  — Parent folder reference does not exist
    ├── DuplicateNameError       — Sibling name / unique field already taken
    ├── NotEmptyError            — Folder delete blocked (files | subfolders)
    ├── ForbiddenError           — Caller lacks role or folder grant
    ├── AuthenticationError      — Credentials rejected
    ├── StoreUnavailableError    — Backing store call failed
    └── ConfigError              — Invalid databank.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class DataBankError(Exception):
    """
    Base error for all DataBank core failures.
    All context is serializable to JSON for the structured logs.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.user_id: Optional[int] = context.get("user_id")
        self.object_ref: Optional[str] = context.get("object_ref")
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "user_id": self.user_id,
            "object_ref": self.object_ref,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("user_id", "object_ref")
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.object_ref:
            parts.append(f"object_ref={self.object_ref}")
        if self.user_id is not None:
            parts.append(f"user_id={self.user_id}")
        return " | ".join(parts)


class InvalidInputError(DataBankError):
    """
    Input validation failed (empty name, bad id, unparseable date).
    Includes the offending field name when known.
    """

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class InvalidFolderError(InvalidInputError):
    """Upload target folder is not a positive id or does not exist."""
    pass


class NotFoundError(DataBankError):
    """Referenced record does not exist (or an update touched zero rows)."""

    def __init__(self, message: str, **context: Any):
        self.record_type: Optional[str] = context.get("record_type")
        self.record_id: Optional[Any] = context.get("record_id")
        super().__init__(message, **context)


class ParentNotFoundError(NotFoundError):
    """The parent folder named on create does not exist."""
    pass


class DuplicateNameError(DataBankError):
    """A sibling folder (or another user) already holds this name."""
    pass


class NotEmptyError(DataBankError):
    """
    Folder delete blocked by existing children.
    ``kind`` is "files" or "subfolders".
    """

    FILES = "files"
    SUBFOLDERS = "subfolders"

    def __init__(self, message: str, kind: str, **context: Any):
        self.kind = kind
        super().__init__(message, kind=kind, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["kind"] = self.kind
        return d


class ForbiddenError(DataBankError):
    """
    Access denied. Logged to the security log files.
    Includes the permission that was required.
    """

    def __init__(self, message: str, **context: Any):
        self.required_permission: Optional[str] = context.get("required_permission")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["required_permission"] = self.required_permission
        return d


class AuthenticationError(DataBankError):
    """Email/password pair rejected."""
    pass


class StoreUnavailableError(DataBankError):
    """
    The relational store call failed. Authorization checks treat this as a
    denial; mutations surface it as a generic failure. Never retried here.
    """
    pass


class ConfigError(DataBankError):
    """Configuration error — invalid databank.yaml."""
    pass
