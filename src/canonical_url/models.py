"""Pydantic model for URL normalization options."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .matchers import DEFAULT_DIRECTORY_INDEX, DEFAULT_QUERY_MATCHERS, Matcher, to_matcher

# Option names that were renamed; supplying the old name is an error.
RENAMED_OPTIONS = {
    "normalizeHttps": "forceHttp",
    "normalize_https": "force_http",
    "normalizeHttp": "forceHttps",
    "normalize_http": "force_https",
    "stripFragment": "stripHash",
    "strip_fragment": "strip_hash",
}

_SCHEME_RE = re.compile(r"^[a-z][a-z\d+\-.]*:?$")


def _reject_renamed(data: Mapping[str, Any]) -> None:
    for old, new in RENAMED_OPTIONS.items():
        if old in data:
            raise ConfigurationError(f"options.{old} is renamed to options.{new}")


def _matcher_tuple(value: Any) -> tuple[Matcher, ...]:
    if value is None or value is False:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise ValueError("expected a list of strings or compiled patterns")
    try:
        return tuple(to_matcher(item) for item in value)
    except TypeError as exc:
        raise ValueError(str(exc)) from exc


class NormalizeOptions(BaseModel):
    """Options controlling how a URL is normalized.

    Field names are snake_case; the camelCase names (``forceHttps``,
    ``stripWWW`` ...) are accepted as aliases.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        frozen=True,
        arbitrary_types_allowed=True,
    )

    default_protocol: str = Field(
        default="http:",
        alias="defaultProtocol",
        description="Scheme prepended to input that has none, e.g. 'http:' or 'https:'.",
    )
    normalize_protocol: bool = Field(
        default=True,
        alias="normalizeProtocol",
        description="Prepend the default protocol to protocol-relative URLs ('//host').",
    )
    force_http: bool = Field(default=False, alias="forceHttp")
    force_https: bool = Field(default=False, alias="forceHttps")
    strip_authentication: bool = Field(
        default=True,
        alias="stripAuthentication",
        description="Remove username and password.",
    )
    strip_hash: bool = Field(default=False, alias="stripHash")
    strip_www: bool = Field(default=True, alias="stripWWW")
    remove_query_parameters: tuple[Matcher, ...] = Field(
        default=DEFAULT_QUERY_MATCHERS,
        alias="removeQueryParameters",
        description=(
            "Query keys to delete. Strings match exactly, compiled patterns "
            "are searched. Defaults to utm_* in any case."
        ),
    )
    remove_trailing_slash: bool = Field(default=True, alias="removeTrailingSlash")
    remove_directory_index: tuple[Matcher, ...] = Field(
        default=(),
        alias="removeDirectoryIndex",
        description=(
            "Final path segments treated as a directory index. True selects "
            "index.<ext>; False disables the rule."
        ),
    )
    sort_query_parameters: bool = Field(default=True, alias="sortQueryParameters")
    strip_protocol: bool = Field(
        default=False,
        alias="stripProtocol",
        description="Drop the leading 'http://' or 'https://' from the result.",
    )

    @model_validator(mode="before")
    @classmethod
    def _check_renamed(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            _reject_renamed(data)
        return data

    @field_validator("default_protocol", mode="before")
    @classmethod
    def _normalize_default_protocol(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        value = value.strip().lower()
        if not _SCHEME_RE.match(value):
            raise ValueError(f"not a URL scheme: {value!r}")
        return value if value.endswith(":") else value + ":"

    @field_validator("remove_query_parameters", mode="before")
    @classmethod
    def _build_query_matchers(cls, value: Any) -> tuple[Matcher, ...]:
        return _matcher_tuple(value)

    @field_validator("remove_directory_index", mode="before")
    @classmethod
    def _build_index_matchers(cls, value: Any) -> tuple[Matcher, ...]:
        if value is True:
            return DEFAULT_DIRECTORY_INDEX
        return _matcher_tuple(value)

    @classmethod
    def coerce(cls, value: Optional[Any] = None, **overrides: Any) -> NormalizeOptions:
        """Build options from None, a mapping or an instance, plus keyword overrides.

        Raises ConfigurationError for renamed, unknown or badly typed options.
        """
        if isinstance(value, cls):
            if not overrides:
                return value
            data: dict[str, Any] = {name: getattr(value, name) for name in cls.model_fields}
        elif value is None:
            data = {}
        elif isinstance(value, Mapping):
            data = dict(value)
        else:
            raise ConfigurationError(
                f"options must be a mapping or NormalizeOptions, not {type(value).__name__}"
            )
        _reject_renamed(data)
        _reject_renamed(overrides)

        names = {field.alias: name for name, field in cls.model_fields.items() if field.alias}
        merged = {names.get(key, key): item for key, item in data.items()}
        merged.update({names.get(key, key): item for key, item in overrides.items()})
        try:
            return cls(**merged)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid normalization options: {exc}") from exc
