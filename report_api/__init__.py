# -*- coding: utf-8 -*-
"""Reporting API client, response cache, row mappers and polling."""

from report_api.cache import DataCache, data_cache, make_cache_key
from report_api.client import build_params, chunked_import, fetch_with_cache, import_query
from report_api.errors import BatchFailure, FetchError, ImportCancelled, ReportApiError

__all__ = [
    "DataCache",
    "data_cache",
    "make_cache_key",
    "build_params",
    "chunked_import",
    "fetch_with_cache",
    "import_query",
    "BatchFailure",
    "FetchError",
    "ImportCancelled",
    "ReportApiError",
]
