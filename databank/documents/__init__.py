"""
DataBank Folder & File Management.

Folder hierarchy, file catalog and the local storage adapter.
Physical storage: <upload_root>/documents/<epoch-ms>_<name>

The services live in ``databank.documents.folders`` and
``databank.documents.catalog``; they depend on the security engine, which
in turn depends on ``query``, so only the leaf modules are re-exported here.
"""

from databank.documents.paths import normalize_db_path, public_path
from databank.documents.query import FileQuery
from databank.documents.storage import LocalDocumentStorage

__all__ = [
    "FileQuery",
    "LocalDocumentStorage",
    "normalize_db_path",
    "public_path",
]
