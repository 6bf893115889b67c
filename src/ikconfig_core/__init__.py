"""ikconfig core - shared protocol constants and errors."""
from .errors import (
    ERRORS,
    ConfigNotFoundError,
    CorruptDataError,
    IkconfigError,
    InvalidInputError,
    PatternNotFoundError,
)

__all__ = [
    "ERRORS",
    "ConfigNotFoundError",
    "CorruptDataError",
    "IkconfigError",
    "InvalidInputError",
    "PatternNotFoundError",
]
