# -*- coding: utf-8 -*-
"""Errors raised by the reporting API client."""
from __future__ import annotations

from typing import Optional


class ReportApiError(Exception):
    """Base class for reporting API client failures."""


class FetchError(ReportApiError):
    """Transport failure, non-2xx status, or an unparseable JSON body."""

    def __init__(self, message: str, status: Optional[int] = None, reason: str = "", url: str = ""):
        super().__init__(message)
        self.status = status
        self.reason = reason
        self.url = url


class ImportCancelled(ReportApiError):
    """Chunked import stopped by its cancel event."""

    def __init__(self, completed_chunks: int = 0):
        super().__init__("Import cancelled")
        self.completed_chunks = completed_chunks


class BatchFailure(ReportApiError):
    """One chunk of a chunked import failed; remaining chunks were not issued."""

    def __init__(self, chunk_index: int, total_chunks: int, cause: Exception):
        super().__init__(f"chunk {chunk_index + 1}/{total_chunks} failed: {cause}")
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        self.completed_chunks = chunk_index
        self.cause = cause
