"""Error taxonomy shared by the scanner, decoders and extractor.

I/O failures are not wrapped: ``OSError`` propagates as-is.
"""
from __future__ import annotations

ERRORS = {
    "E_NOT_FOUND": "Pattern not found",
    "E_NO_CONFIG": "Cannot find kernel config. Please confirm kernel compiled with CONFIG_IKCONFIG",
    "E_INVALID_INPUT": "Invalid input",
    "E_CORRUPT_DATA": "Compressed data is corrupt",
}


class IkconfigError(Exception):
    code = ""

    def __init__(self, detail: str = ""):
        self.detail = detail
        message = ERRORS.get(self.code, "")
        if detail:
            message = f"{message}: {detail}" if message else detail
        super().__init__(message)


class PatternNotFoundError(IkconfigError):
    code = "E_NOT_FOUND"


class ConfigNotFoundError(PatternNotFoundError):
    """Every extraction stage failed. ``attempts`` holds ``(stage, error)`` pairs."""

    code = "E_NO_CONFIG"

    def __init__(self, attempts: list[tuple[str, Exception]] | None = None):
        self.attempts = list(attempts or [])
        super().__init__()


class InvalidInputError(IkconfigError):
    code = "E_INVALID_INPUT"


class CorruptDataError(IkconfigError):
    code = "E_CORRUPT_DATA"
