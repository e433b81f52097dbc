# -*- coding: utf-8 -*-
"""SELECT-only validation for ad-hoc SQL portal queries."""

from typing import Any

RESTRICTED_KEYWORDS = (
    "DROP",
    "DELETE",
    "INSERT",
    "UPDATE",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
)


class SqlValidationError(Exception):
    """Rejected query; status is the HTTP status to answer with."""

    def __init__(self, status: int, error: str):
        super().__init__(error)
        self.status = status
        self.error = error


def validate_sql(sql: Any) -> str:
    """
    Returns the query unchanged when allowed. The keyword check is a plain substring
    match on the upper-cased text, so a column such as `updated_at` is rejected too.
    """
    if not sql or not isinstance(sql, str):
        raise SqlValidationError(400, "SQL query is required")
    upper = sql.strip().upper()
    if not upper.startswith("SELECT"):
        raise SqlValidationError(403, "Only SELECT queries are allowed")
    if any(k in upper for k in RESTRICTED_KEYWORDS):
        raise SqlValidationError(403, "Query contains restricted keywords")
    return sql
