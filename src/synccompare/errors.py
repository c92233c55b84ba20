"""Domain error type shared by probes, the compare engine and the HTTP layer."""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    LOCAL_PATH_NOT_FOUND = "LOCAL_PATH_NOT_FOUND"
    PROBE_FAILED = "PROBE_FAILED"
    LISTING_FAILED = "LISTING_FAILED"
    INTERNAL = "INTERNAL"


# Codes surfaced to HTTP callers as 400; everything else is a 500.
CLIENT_ERROR_CODES = frozenset({ErrorCode.INVALID_INPUT, ErrorCode.LOCAL_PATH_NOT_FOUND})


class SyncCompareError(Exception):
    """Raised for every expected failure: bad input, failed probe, failed listing."""

    def __init__(self, code: ErrorCode, message: str, *, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    @property
    def is_client_error(self) -> bool:
        return self.code in CLIENT_ERROR_CODES
