"""
DataBank Dashboard — Assemble the data behind the main repository page.

Everyone gets the files and folders they can see. Administrators also get
the recent audit trail, the account list and the grant rows. Failures in
those admin extras are logged and the section comes back empty; failures
loading files or folders propagate.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from databank.documents.query import FileQuery
from databank.engine.context import Identity
from databank.engine.errors import DataBankError

logger = logging.getLogger("databank.dashboard")


def _admin_extra(label: str, loader: Callable[[], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    try:
        return loader()
    except DataBankError as e:
        logger.error(f"{label} load error: {e.message}")
        return []


def build_dashboard(bank: Any, identity: Identity, folder_id: Any = None) -> Dict[str, Any]:
    """
    Build the dashboard view for ``identity``.

    ``bank`` is a :class:`databank.runtime.DataBank`. When ``folder_id`` is
    given the file list is narrowed to that folder, which must be visible.

    Returns:
        {"files", "folders", "selected_folder_id", "selected_folder_name",
         "logs", "users", "access_rows"}
    """
    selected_id = None
    selected_name = None

    if folder_id not in (None, ""):
        folder = bank.folders.get_folder(identity, folder_id)
        selected_id = folder.id
        selected_name = folder.name

    file_query = FileQuery(folder_id=selected_id)
    files = bank.authz.visible_files(identity, file_query)
    folders = bank.authz.visible_folders(identity, order="created")

    view: Dict[str, Any] = {
        "files": [f.to_dict() for f in files],
        "folders": [f.to_dict() for f in folders],
        "selected_folder_id": selected_id,
        "selected_folder_name": selected_name,
        "logs": [],
        "users": [],
        "access_rows": [],
    }

    if not identity.is_admin:
        return view

    view["logs"] = _admin_extra("Logs", lambda: bank.audit.recent(identity))
    view["users"] = _admin_extra("Users", lambda: bank.list_users(identity))
    view["access_rows"] = _admin_extra("Access rows", lambda: bank.list_access_rows(identity))
    return view
