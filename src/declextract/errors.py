"""Exception hierarchy shared by the extraction pipeline."""

from __future__ import annotations


class DeclExtractError(RuntimeError):
    """Base class for every fatal condition raised by declextract."""


class ConfigError(DeclExtractError):
    """Raised when configuration or input files cannot be used."""


class ExtractionError(DeclExtractError):
    """Raised when a compilation unit fails to extract or its output fails to parse."""


class InterfaceError(DeclExtractError):
    """Raised for malformed interface annotations and irreconcilable merges."""


class DescriptionError(DeclExtractError):
    """Raised when the declaration corpus fails to parse or type-check."""


__all__ = [
    "ConfigError",
    "DeclExtractError",
    "DescriptionError",
    "ExtractionError",
    "InterfaceError",
]
