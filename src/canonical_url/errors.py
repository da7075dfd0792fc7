"""Exceptions raised while normalizing URLs."""

from typing import Optional


class CanonicalUrlError(Exception):
    """Base class for every error raised by canonical_url."""


class ConfigurationError(CanonicalUrlError):
    """Normalization options are invalid, conflicting, or use a renamed key."""


class ParseError(CanonicalUrlError, ValueError):
    """The input cannot be parsed as a URL, or its path cannot be decoded."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url
