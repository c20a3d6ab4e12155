"""Prebuilt rules for account administration and folder grants."""

from databank.platform_rules.user_rules import (  # noqa: F401
    coerce_folder_ids,
    create_user,
    delete_user,
    list_access_rows,
    list_users,
    replace_grants,
    update_user,
)
