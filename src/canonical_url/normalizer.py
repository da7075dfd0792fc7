"""Normalize URL strings into a canonical form for deduplication and caching."""

import logging
import re
from typing import Any, Optional

from .errors import ConfigurationError
from .matchers import Matcher, matches_any
from .models import NormalizeOptions
from .parsing import ParsedUrl, QueryParams, decode_uri

logger = logging.getLogger(__name__)

# Matches the start of input with no "scheme://" or "//" prefix, or a
# leading "//"; either is replaced by the default protocol.
_PREPEND_PROTOCOL_RE = re.compile(r"^(?!(?:\w+:)?//)|^//")
_RELATIVE_RE = re.compile(r"^\.*/")
_DUPLICATE_SLASHES_RE = re.compile(r"((?!:).|^)/{2,}")
# Labels are 2-63 characters, the extension 2-5.
_WWW_RE = re.compile(r"^www\.([a-z\-\d]{2,63})\.([a-z.]{2,5})$")
_FULL_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_STRIP_PROTOCOL_RE = re.compile(r"^(?:https?:)?//", re.IGNORECASE)


def is_full_url(url: str) -> bool:
    """Return True if *url* starts with http:// or https://."""
    return _FULL_URL_RE.match(url) is not None


def _collapse_slashes(path: str) -> str:
    def repl(match: "re.Match[str]") -> str:
        prefix = match.group(1)
        return "/" if prefix.startswith("/") else prefix + "/"

    return _DUPLICATE_SLASHES_RE.sub(repl, path)


def _remove_directory_index(path: str, matchers: tuple[Matcher, ...]) -> str:
    """Drop the last non-empty segment while it is a directory index.

    Repeats so that "/index.html/index.html" ends at "/" in one pass.
    """
    while True:
        segments = path.split("/")
        for i in range(len(segments) - 1, 0, -1):
            if segments[i]:
                break
        else:
            return path
        if not matches_any(segments[i], matchers):
            return path
        path = "/".join(segments[:i]) + "/"


def _clean_hostname(hostname: str, strip_www: bool) -> str:
    if hostname.endswith("."):
        hostname = hostname[:-1]
    if strip_www and _WWW_RE.match(hostname):
        hostname = hostname[4:]
    return hostname


def _remove_query_parameters(params: QueryParams, matchers: tuple[Matcher, ...]) -> None:
    try:
        keys = params.keys()
    except RecursionError:
        logger.warning("Could not enumerate query keys; skipping parameter removal")
        keys = []
    for key in keys:
        if matches_any(key, matchers):
            params.delete(key)


def normalize_url(url: str, options: Optional[Any] = None, **overrides: Any) -> str:
    """Normalize a URL.

    Args:
        url: The URL to normalize. Surrounding whitespace is ignored.
        options: A NormalizeOptions, a mapping of option names (snake_case
            or camelCase) or None for the defaults.
        **overrides: Individual options, applied on top of ``options``.

    Returns:
        The canonical URL string.

    Raises:
        ConfigurationError: renamed, unknown or conflicting options.
        ParseError: the input is not a URL, or its path has malformed
            percent-escapes.
    """
    opts = NormalizeOptions.coerce(options, **overrides)
    original = url
    url = url.strip()

    has_relative_protocol = url.startswith("//")
    is_relative = not has_relative_protocol and _RELATIVE_RE.match(url) is not None
    if not is_relative:
        url = _PREPEND_PROTOCOL_RE.sub(opts.default_protocol, url, count=1)

    parsed = ParsedUrl.parse(url)

    if opts.force_http and opts.force_https:
        raise ConfigurationError(
            "The `force_http` and `force_https` options cannot be used together"
        )
    if opts.force_http and parsed.protocol == "https:":
        parsed.protocol = "http:"
    if opts.force_https and parsed.protocol == "http:":
        parsed.protocol = "https:"

    if opts.strip_authentication:
        parsed.username = ""
        parsed.password = ""

    if opts.strip_hash:
        parsed.hash = ""

    if parsed.pathname:
        parsed.pathname = _collapse_slashes(parsed.pathname)
        parsed.pathname = decode_uri(parsed.pathname)

    if opts.remove_directory_index:
        parsed.pathname = _remove_directory_index(parsed.pathname, opts.remove_directory_index)

    if parsed.hostname:
        parsed.hostname = _clean_hostname(parsed.hostname, opts.strip_www)

    _remove_query_parameters(parsed.search_params, opts.remove_query_parameters)

    if opts.sort_query_parameters:
        parsed.search_params.sort()

    if opts.remove_trailing_slash and parsed.pathname.endswith("/"):
        parsed.pathname = parsed.pathname[:-1]

    url = parsed.href

    if (opts.remove_trailing_slash or parsed.pathname == "/") and parsed.hash == "":
        url = re.sub(r"/$", "", url)

    if has_relative_protocol and not opts.normalize_protocol:
        url = re.sub(r"^http://", "//", url)

    if opts.strip_protocol:
        url = _STRIP_PROTOCOL_RE.sub("", url, count=1)

    logger.debug("Normalized %r -> %r", original, url)
    return url
