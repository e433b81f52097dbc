# -*- coding: utf-8 -*-
"""Read-only SQL portal and file drop."""

from sql_portal.validation import RESTRICTED_KEYWORDS, SqlValidationError, validate_sql

__all__ = ["RESTRICTED_KEYWORDS", "SqlValidationError", "validate_sql"]
