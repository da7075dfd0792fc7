"""canonical-url: normalize URLs into a canonical form for deduplication."""

from .dedup import URLDeduplicator
from .errors import CanonicalUrlError, ConfigurationError, ParseError
from .matchers import LiteralMatcher, Matcher, PatternMatcher
from .models import NormalizeOptions
from .normalizer import is_full_url, normalize_url

__all__ = [
    "CanonicalUrlError",
    "ConfigurationError",
    "LiteralMatcher",
    "Matcher",
    "NormalizeOptions",
    "ParseError",
    "PatternMatcher",
    "URLDeduplicator",
    "is_full_url",
    "normalize_url",
]
