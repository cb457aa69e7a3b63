"""Exception hierarchy for ccdalens."""

from __future__ import annotations


class CDAError(Exception):
    """Base class for all ccdalens errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DocumentFormatError(CDAError):
    """The input cannot be interpreted as a clinical document at all."""


class XMLTreeError(CDAError):
    """The XML text could not be converted into a generic tree."""


class ConfigError(CDAError):
    """A configuration file holds a value ccdalens cannot use."""
