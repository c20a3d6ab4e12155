"""
DataBank File Queries — Composable filters for catalog reads.

``FileQuery`` carries the optional predicates (folder, keyword, upload day)
and ``apply`` turns them into parameterized SQLAlchemy filters on a query
over ``File``. Callers never assemble SQL text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Union

from sqlalchemy.orm import Query

from databank.db.models import File
from databank.engine.errors import InvalidInputError

LIKE_ESCAPE = "\\"

# Largest value an INTEGER primary key can hold
MAX_ID = 2**63 - 1


def parse_folder_id(value: Any) -> Optional[int]:
    """
    Coerce a folder id from request input.

    Returns the int when it is in 1..MAX_ID, otherwise None (``True``/``False``
    and non-ASCII digits included).
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            return None
        value = int(value)
    if isinstance(value, int) and 0 < value <= MAX_ID:
        return value
    return None


def parse_day(value: Union[None, str, date]) -> Optional[date]:
    """Accept a ``date``, a ``datetime`` or a ``YYYY-MM-DD`` string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidInputError("Date must be in YYYY-MM-DD format", field="date", value=value) from None


def _escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


@dataclass(frozen=True)
class FileQuery:
    """Optional filters for a file listing; unset fields do not filter."""

    folder_id: Optional[int] = None
    keyword: Optional[str] = None
    on_date: Optional[date] = None

    @classmethod
    def build(
        cls,
        folder_id: Any = None,
        keyword: Optional[str] = None,
        on_date: Union[None, str, date] = None,
    ) -> "FileQuery":
        """Normalize raw request values into a FileQuery."""
        folder = None
        if folder_id not in (None, ""):
            folder = parse_folder_id(folder_id)
            if folder is None:
                raise InvalidInputError("Invalid folder", field="folder_id", value=folder_id)
        term = keyword.strip() if keyword else None
        return cls(folder_id=folder, keyword=term or None, on_date=parse_day(on_date))

    def apply(self, query: Query) -> Query:
        """
        Add these predicates to a query over ``File``.

        keyword: case-insensitive literal substring of the filename.
        on_date: uploaded during that calendar day.
        """
        if self.folder_id is not None:
            query = query.filter(File.folder_id == self.folder_id)
        if self.keyword:
            pattern = f"%{_escape_like(self.keyword)}%"
            query = query.filter(File.filename.ilike(pattern, escape=LIKE_ESCAPE))
        if self.on_date is not None:
            day_start = datetime.combine(self.on_date, time.min)
            day_end = day_start + timedelta(days=1)
            query = query.filter(File.uploaded_at >= day_start, File.uploaded_at < day_end)
        return query
