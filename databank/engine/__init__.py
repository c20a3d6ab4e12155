"""DataBank Engine — Security, audit, configuration, logging, errors."""

from databank.engine.context import Identity  # noqa: F401
from databank.engine.errors import DataBankError  # noqa: F401

__all__ = [
    "Identity",
    "DataBankError",
]
