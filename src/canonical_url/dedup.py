"""URL deduplication on top of normalize_url."""

import logging
from typing import Any, Optional

from .errors import ParseError
from .models import NormalizeOptions
from .normalizer import normalize_url

logger = logging.getLogger(__name__)


class URLDeduplicator:
    """Set-based URL deduplication keyed on the normalized form."""

    def __init__(self, options: Optional[Any] = None, **overrides: Any) -> None:
        self.options = NormalizeOptions.coerce(options, **overrides)
        self._seen: set[str] = set()

    def _key(self, url: str) -> str:
        try:
            return normalize_url(url, self.options)
        except ParseError:
            logger.debug("Cannot normalize %r; deduplicating on the raw string", url)
            return url.strip()

    def is_new(self, url: str) -> bool:
        """Return True if the URL has not been seen before, and mark it seen."""
        key = self._key(url)
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __contains__(self, url: str) -> bool:
        return self._key(url) in self._seen

    @property
    def count(self) -> int:
        return len(self._seen)
