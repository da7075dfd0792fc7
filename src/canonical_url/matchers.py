"""Literal and pattern matchers for query keys and path segments."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Union


class Matcher(ABC):
    """Something a query key or path segment can be tested against."""

    @abstractmethod
    def matches(self, value: str) -> bool:
        ...


@dataclass(frozen=True)
class LiteralMatcher(Matcher):
    """Exact, case-sensitive string equality."""

    value: str

    def matches(self, value: str) -> bool:
        return value == self.value


@dataclass(frozen=True)
class PatternMatcher(Matcher):
    """Regex search; anchor the pattern to require a full match."""

    pattern: "re.Pattern[str]"

    def matches(self, value: str) -> bool:
        return self.pattern.search(value) is not None


MatcherLike = Union[str, "re.Pattern[str]", Matcher]

DEFAULT_QUERY_MATCHERS = (PatternMatcher(re.compile(r"^utm_\w+", re.IGNORECASE)),)
DEFAULT_DIRECTORY_INDEX = (PatternMatcher(re.compile(r"^index\.[a-z]+$")),)


def to_matcher(item: MatcherLike) -> Matcher:
    if isinstance(item, Matcher):
        return item
    if isinstance(item, str):
        return LiteralMatcher(item)
    if isinstance(item, re.Pattern):
        return PatternMatcher(item)
    raise TypeError(
        f"matcher must be a string or compiled pattern, not {type(item).__name__}"
    )


def matches_any(value: str, matchers: Iterable[Matcher]) -> bool:
    """Return True if any matcher accepts *value*."""
    return any(m.matches(value) for m in matchers)
