"""URL parsing, mutation and serialization on top of urllib.parse.

``ParsedUrl`` exposes the components a normalizer rewrites (protocol,
credentials, hostname, pathname, query parameters and hash) and serializes
them back with the canonicalization browsers apply: lowercase scheme and
host, UTS46 host labels, IPv4 and IPv6 hosts in canonical form, default
ports dropped, dot segments resolved and unsafe characters percent-encoded.
"""

from __future__ import annotations

import ipaddress
import logging
import re
from typing import Optional
from urllib.parse import parse_qsl, quote, quote_plus, unquote_to_bytes, urlencode, urlsplit

import idna

from .errors import ParseError

logger = logging.getLogger(__name__)

# Schemes with a host and a hierarchical path, mapped to their default port.
SPECIAL_SCHEMES = {
    "ftp": 21,
    "file": None,
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
}

_C0_AND_SPACE = "".join(chr(i) for i in range(0x21))
_TAB_OR_NEWLINE_RE = re.compile(r"[\t\n\r]")
_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z\d+\-.]*):")
_AUTHORITY_SLASHES_RE = re.compile(r"^([A-Za-z][A-Za-z\d+\-.]*):[/\\]*")
_FORBIDDEN_HOST_RE = re.compile(r"[\x00-\x20#%/:<>?@\[\\\]^|\x7f]")
_IPV4_DIGITS = {
    8: re.compile(r"^[0-7]+$"),
    10: re.compile(r"^[0-9]+$"),
    16: re.compile(r"^[0-9A-Fa-f]+$"),
}
_ESCAPE_RUN_RE = re.compile(r"(?:%[0-9A-Fa-f]{2})+")

# Characters left as-is when encoding each component; everything else that
# is not alphanumeric or "_.-~" is percent-encoded.
_PATH_SAFE = "!$%&'()*+,/:;=@[\\]^|"
_QUERY_SAFE = "!$%&()*+,/:;=?@[\\]^`{|}"
_FRAGMENT_SAFE = "!#$%&'()*+,/:;=?@[\\]^{|}"
_USERINFO_SAFE = "!$%&'()*+,"

# Escapes decode_uri leaves encoded. "%" stays so a decoded path never
# grows a bare percent sign.
_KEEP_ENCODED = frozenset(";/?:@&=+$,#%")

_SINGLE_DOT = frozenset({".", "%2e"})
_DOUBLE_DOT = frozenset({"..", ".%2e", "%2e.", "%2e%2e"})


def decode_uri(text: str) -> str:
    """Decode percent-escapes the way JavaScript's ``decodeURI`` does.

    Runs of escapes must form complete UTF-8 sequences. Escapes of URI
    delimiters (``;/?:@&=+$,#``) and of ``%`` itself are kept encoded.

    Raises:
        ParseError: a ``%`` not followed by two hex digits, or escapes that
            are not valid UTF-8.
    """
    if "%" not in text:
        return text
    out = []
    pos = 0
    for match in _ESCAPE_RUN_RE.finditer(text):
        out.append(_plain(text[pos:match.start()], text))
        out.append(_decode_run(match.group(), text))
        pos = match.end()
    out.append(_plain(text[pos:], text))
    return "".join(out)


def _plain(chunk: str, text: str) -> str:
    if "%" in chunk:
        raise ParseError(f"URI malformed: {text!r}", url=text)
    return chunk


def _decode_run(run: str, text: str) -> str:
    raw = bytes.fromhex(run.replace("%", ""))
    try:
        decoded = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"URI malformed: {text!r}", url=text) from exc
    pieces = []
    i = 0
    for ch in decoded:
        width = 3 * len(ch.encode("utf-8"))
        pieces.append(run[i:i + width] if ch in _KEEP_ENCODED else ch)
        i += width
    return "".join(pieces)


def remove_dot_segments(path: str) -> str:
    """Resolve ``.`` and ``..`` segments of an absolute path."""
    segments = path.split("/")[1:]
    out: list[str] = []
    for i, segment in enumerate(segments):
        last = i == len(segments) - 1
        lowered = segment.lower()
        if lowered in _SINGLE_DOT:
            if last:
                out.append("")
        elif lowered in _DOUBLE_DOT:
            if out:
                out.pop()
            if last:
                out.append("")
        else:
            out.append(segment)
    return "/" + "/".join(out)


def _parse_ipv4_number(part: str, url: str) -> int:
    digits, radix = part, 10
    if part[:2] in ("0x", "0X"):
        digits, radix = part[2:], 16
    elif len(part) > 1 and part.startswith("0"):
        digits, radix = part[1:], 8
    if not digits:
        return 0
    if not _IPV4_DIGITS[radix].match(digits):
        raise ParseError(f"Invalid URL: bad IPv4 host in {url!r}", url=url)
    return int(digits, radix)


def _ends_in_number(domain: str) -> bool:
    labels = domain.split(".")
    if labels[-1] == "" and len(labels) > 1:
        labels.pop()
    last = labels[-1]
    if last and last.isdigit() and last.isascii():
        return True
    return last[:2] in ("0x", "0X") and _IPV4_DIGITS[16].match(last[2:] or "0") is not None


def _parse_ipv4(domain: str, url: str) -> str:
    """Parse a host that ends in a number as an IPv4 address ("127.1", "0x7f.1")."""
    parts = domain.split(".")
    if parts[-1] == "" and len(parts) > 1:
        parts.pop()
    if len(parts) > 4 or "" in parts:
        raise ParseError(f"Invalid URL: bad IPv4 host in {url!r}", url=url)
    numbers = [_parse_ipv4_number(part, url) for part in parts]
    if any(n > 255 for n in numbers[:-1]) or numbers[-1] >= 256 ** (5 - len(numbers)):
        raise ParseError(f"Invalid URL: IPv4 host out of range in {url!r}", url=url)
    address = numbers[-1]
    for i, n in enumerate(numbers[:-1]):
        address += n * 256 ** (3 - i)
    return ".".join(str((address >> shift) & 0xFF) for shift in (24, 16, 8, 0))


def _serialize_ipv6(packed: bytes) -> str:
    """Lowercase hex pieces with the first longest run of zeros compressed."""
    pieces = [int.from_bytes(packed[i:i + 2], "big") for i in range(0, 16, 2)]
    best_start, best_len = -1, 1
    i = 0
    while i < 8:
        if pieces[i]:
            i += 1
            continue
        j = i
        while j < 8 and not pieces[j]:
            j += 1
        if j - i > best_len:
            best_start, best_len = i, j - i
        i = j
    if best_start < 0:
        return ":".join(f"{p:x}" for p in pieces)
    head = ":".join(f"{p:x}" for p in pieces[:best_start])
    tail = ":".join(f"{p:x}" for p in pieces[best_start + best_len:])
    return f"{head}::{tail}"


def _encode_host(host: str, url: str) -> str:
    if host.startswith("["):
        inner = host[1:-1]
        if not host.endswith("]") or "%" in inner:
            raise ParseError(f"Invalid URL: bad IPv6 host in {url!r}", url=url)
        try:
            packed = ipaddress.IPv6Address(inner).packed
        except ValueError as exc:
            raise ParseError(f"Invalid URL: bad IPv6 host in {url!r}", url=url) from exc
        return f"[{_serialize_ipv6(packed)}]"

    domain = unquote_to_bytes(host).decode("utf-8", errors="replace")
    if domain.isascii():
        domain = domain.lower()
    else:
        try:
            domain = idna.encode(domain, uts46=True, transitional=False).decode("ascii")
        except idna.IDNAError as exc:
            raise ParseError(f"Invalid URL: cannot IDNA-encode host of {url!r}", url=url) from exc
    if _FORBIDDEN_HOST_RE.search(domain):
        raise ParseError(f"Invalid URL: forbidden character in host of {url!r}", url=url)
    if _ends_in_number(domain):
        return _parse_ipv4(domain, url)
    return domain


def _form_quote(
    value: str, safe: str = "", encoding: Optional[str] = None, errors: Optional[str] = None
) -> str:
    # application/x-www-form-urlencoded leaves only alphanumerics and "*-._" as-is.
    return quote_plus(value, safe, encoding, errors).replace("~", "%7E")


class QueryParams:
    """Ordered multimap over a query string.

    The raw query is kept verbatim until ``delete`` or ``sort`` is called;
    after that the pairs are serialized as application/x-www-form-urlencoded.
    """

    def __init__(self, query: Optional[str] = None) -> None:
        self._raw = query
        self._pairs: Optional[list[tuple[str, str]]] = None
        self.modified = False

    @property
    def pairs(self) -> list[tuple[str, str]]:
        if self._pairs is None:
            self._pairs = parse_qsl(self._raw or "", keep_blank_values=True)
        return self._pairs

    def keys(self) -> list[str]:
        """Distinct keys in first-seen order."""
        return list(dict.fromkeys(key for key, _ in self.pairs))

    def delete(self, key: str) -> None:
        """Remove every pair named *key*."""
        self._pairs = [pair for pair in self.pairs if pair[0] != key]
        self.modified = True

    def sort(self) -> None:
        """Stable sort by key; pairs with equal keys keep their order."""
        self._pairs = sorted(self.pairs, key=lambda pair: pair[0])
        self.modified = True

    def serialize(self) -> Optional[str]:
        """Query string without the leading '?', or None for no query."""
        if not self.modified:
            if self._raw is None:
                return None
            return quote(self._raw, safe=_QUERY_SAFE)
        return urlencode(self.pairs, quote_via=_form_quote, safe="*") or None


class ParsedUrl:
    """A mutable, parsed absolute URL."""

    def __init__(
        self,
        scheme: str,
        username: str = "",
        password: str = "",
        hostname: Optional[str] = None,
        port: Optional[int] = None,
        pathname: str = "",
        query: Optional[str] = None,
        fragment: Optional[str] = None,
    ) -> None:
        self.scheme = scheme
        self.username = username
        self.password = password
        self._hostname = hostname
        self.port = port
        self._pathname = ""
        self.pathname = pathname
        self.search_params = QueryParams(query)
        self.fragment = fragment

    @classmethod
    def parse(cls, url: str) -> ParsedUrl:
        """Parse an absolute URL.

        Raises:
            ParseError: no scheme, an invalid host or port, or a special
                scheme without a host.
        """
        text = _TAB_OR_NEWLINE_RE.sub("", url.strip(_C0_AND_SPACE))
        match = _SCHEME_RE.match(text)
        if not match:
            raise ParseError(f"Invalid URL: {url!r}", url=url)
        scheme = match.group(1).lower()
        special = scheme in SPECIAL_SCHEMES

        text, hash_sep, fragment = text.partition("#")
        text, query_sep, query = text.partition("?")
        if special:
            text = text.replace("\\", "/")
            if scheme != "file":
                text = _AUTHORITY_SLASHES_RE.sub(scheme + "://", text, count=1)

        try:
            parts = urlsplit(text)
        except ValueError as exc:
            raise ParseError(f"Invalid URL: {url!r}", url=url) from exc

        has_authority = text[len(scheme) + 1:].startswith("//")
        username = password = ""
        hostname: Optional[str] = None
        port: Optional[int] = None
        if has_authority:
            userinfo, at, hostport = parts.netloc.rpartition("@")
            if at:
                username, _, password = userinfo.partition(":")
            host, port = cls._split_port(hostport, scheme, url)
            hostname = _encode_host(host, url) if special else host
            if special and scheme != "file" and not hostname:
                raise ParseError(f"Invalid URL: {url!r} has no host", url=url)
        elif special and scheme != "file":
            raise ParseError(f"Invalid URL: {url!r} has no host", url=url)

        return cls(
            scheme=scheme,
            username=username,
            password=password,
            hostname=hostname,
            port=port,
            pathname=parts.path,
            query=query if query_sep else None,
            fragment=fragment if hash_sep else None,
        )

    @staticmethod
    def _split_port(hostport: str, scheme: str, url: str) -> tuple[str, Optional[int]]:
        if hostport.startswith("["):
            end = hostport.find("]")
            host, rest = hostport[:end + 1], hostport[end + 1:]
            if end < 0 or (rest and not rest.startswith(":")):
                raise ParseError(f"Invalid URL: bad IPv6 host in {url!r}", url=url)
            digits = rest[1:]
        else:
            host, _, digits = hostport.partition(":")
        if not digits:
            return host, None
        if not digits.isdigit() or int(digits) > 65535:
            raise ParseError(f"Invalid URL: bad port {digits!r} in {url!r}", url=url)
        port = int(digits)
        if SPECIAL_SCHEMES.get(scheme) == port:
            return host, None
        return host, port

    @property
    def special(self) -> bool:
        return self.scheme in SPECIAL_SCHEMES

    @property
    def protocol(self) -> str:
        return self.scheme + ":"

    @protocol.setter
    def protocol(self, value: str) -> None:
        self.scheme = value.rstrip(":").lower()
        if SPECIAL_SCHEMES.get(self.scheme) == self.port:
            self.port = None

    @property
    def hostname(self) -> str:
        return self._hostname or ""

    @hostname.setter
    def hostname(self, value: str) -> None:
        if self._hostname is None or (self.special and not value):
            logger.debug("ignoring hostname %r for %s URL", value, self.scheme)
            return
        self._hostname = value

    @property
    def pathname(self) -> str:
        return self._pathname

    @pathname.setter
    def pathname(self, value: str) -> None:
        if self.special:
            value = value.replace("\\", "/")
            if not value.startswith("/"):
                value = "/" + value
        if value.startswith("/"):
            value = remove_dot_segments(value)
        self._pathname = quote(value, safe=_PATH_SAFE)

    @property
    def hash(self) -> str:
        return "#" + self.fragment if self.fragment else ""

    @hash.setter
    def hash(self, value: str) -> None:
        self.fragment = value[1:] if value.startswith("#") else value
        if not self.fragment:
            self.fragment = None

    @property
    def href(self) -> str:
        out = [self.protocol]
        if self._hostname is not None:
            out.append("//")
            if self.username or self.password:
                out.append(quote(self.username, safe=_USERINFO_SAFE))
                if self.password:
                    out.append(":" + quote(self.password, safe=_USERINFO_SAFE))
                out.append("@")
            out.append(self._hostname)
            if self.port is not None:
                out.append(f":{self.port}")
        out.append(self._pathname)
        query = self.search_params.serialize()
        if query is not None:
            out.append("?" + query)
        if self.fragment is not None:
            out.append("#" + quote(self.fragment, safe=_FRAGMENT_SAFE))
        return "".join(out)
