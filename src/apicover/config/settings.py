from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional
from urllib.parse import urlsplit

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from apicover.domain.models import Grouping, OpenapiSource, Runtime, parse_method
from apicover.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_DEBUG = "APICOVER_DEBUG"
ENV_OPENAPI_SOURCE = "APICOVER_OPENAPI_SOURCE"
ENV_APP_BASE_URL = "APICOVER_APP_BASE_URL"
ENV_PORT = "APICOVER_PORT"
ENV_MAPPING = "APICOVER_MAPPING"
ENV_ACCOUNT_FOR_FORBIDDEN = "APICOVER_ACCOUNT_FOR_FORBIDDEN"
ENV_ACCOUNT_FOR_UNAUTHORIZED = "APICOVER_ACCOUNT_FOR_UNAUTHORIZED"
ENV_TEST_COVERAGE = "APICOVER_TEST_COVERAGE"
ENV_IS_MERGE = "APICOVER_IS_MERGE"
ENV_ONLY_ACCOUNT_MERGE = "APICOVER_ONLY_ACCOUNT_MERGE"
ENV_GROUPINGS = "APICOVER_GROUPINGS"

DEFAULT_TEST_COVERAGE = 0.7
DEFAULT_PORT = 13750

# env vars are awkward to fill with newlines in CI, so this token also separates entries
LINE_SEPARATOR = "APICOVER_LINE_SEPARATOR"
FIELD_DELIMITER = ";"

_FALSE_VALUES = {"", "0", "false", "nope"}
_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


def parse_flag(value: object) -> bool:
    """Anything but unset, "", "0", "false" or "nope" is true."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip() not in _FALSE_VALUES


def translate_test_coverage(text: str) -> float:
    """
    Accepts "0.86", "86" or "86%". Values above 1 are read as percentages.
    Empty input means the default.
    """
    raw = (text or "").strip()
    if not raw:
        return DEFAULT_TEST_COVERAGE
    if raw.endswith("%"):
        raw = raw[:-1].strip()

    try:
        coverage = float(raw)
    except ValueError:
        raise ValueError(
            "test coverage has to be a value between 0 and 1 or a percentage between 0% and 100%"
        ) from None

    if coverage > 1.0:
        coverage /= 100.0
    if not 0.0 <= coverage <= 1.0:
        raise ValueError(
            "test coverage has to be a value between 0 and 1 or a percentage between 0% and 100%"
        )
    if abs(coverage) <= 0.0001:
        logger.warning("test coverage is set to 0%")
    return coverage


class EnvironmentSettings(BaseModel):
    """Raw environment values, validated. Field aliases are the variable names."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    debug: bool = Field(False, alias=ENV_DEBUG)
    openapi_source: str = Field("", alias=ENV_OPENAPI_SOURCE)
    app_base_url: str = Field("", alias=ENV_APP_BASE_URL)
    port: Optional[int] = Field(None, alias=ENV_PORT, ge=0, le=65535)
    mapping: str = Field("", alias=ENV_MAPPING)
    account_for_forbidden: bool = Field(False, alias=ENV_ACCOUNT_FOR_FORBIDDEN)
    account_for_unauthorized: bool = Field(False, alias=ENV_ACCOUNT_FOR_UNAUTHORIZED)
    test_coverage: float = Field(DEFAULT_TEST_COVERAGE, alias=ENV_TEST_COVERAGE)
    is_merge: bool = Field(False, alias=ENV_IS_MERGE)
    only_account_for_merge: bool = Field(False, alias=ENV_ONLY_ACCOUNT_MERGE)
    groupings: str = Field("", alias=ENV_GROUPINGS)

    @field_validator(
        "debug",
        "account_for_forbidden",
        "account_for_unauthorized",
        "is_merge",
        "only_account_for_merge",
        mode="before",
    )
    @classmethod
    def _flag(cls, value: object) -> bool:
        return parse_flag(value)

    @field_validator("test_coverage", mode="before")
    @classmethod
    def _coverage(cls, value: object) -> float:
        return translate_test_coverage(str(value))

    @field_validator("port", mode="before")
    @classmethod
    def _port(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


@dataclass(frozen=True)
class CoverageConfig:
    runtimes: tuple[Runtime, ...]
    debug: bool = False
    account_for_forbidden: bool = False
    account_for_unauthorized: bool = False
    test_coverage: float = DEFAULT_TEST_COVERAGE
    is_merge: bool = False
    only_account_for_merge: bool = False
    groupings: frozenset[Grouping] = frozenset()

    def all_openapi_sources_are_paths(self) -> bool:
        return all(not r.openapi_source.is_url for r in self.runtimes)


def load_config(environ: Optional[Mapping[str, str]] = None) -> CoverageConfig:
    """
    Build the run configuration from environment variables.

    Either APICOVER_MAPPING (several services) or APICOVER_OPENAPI_SOURCE +
    APICOVER_APP_BASE_URL (+ optional APICOVER_PORT) for a single service.
    """
    env = dict(os.environ if environ is None else environ)

    has_mapping = bool(env.get(ENV_MAPPING))
    has_single = bool(env.get(ENV_OPENAPI_SOURCE)) and bool(env.get(ENV_APP_BASE_URL))
    if not has_mapping and not has_single:
        raise ConfigurationError(
            "Your configuration is missing either a mapping or an openapi source "
            "with its respective application URL."
        )
    if has_mapping and any(env.get(k) for k in (ENV_PORT, ENV_OPENAPI_SOURCE, ENV_APP_BASE_URL)):
        raise ConfigurationError(
            "You can either provide a mapping or openapi source, port and application URL. "
            "Providing both is not possible."
        )

    try:
        settings = EnvironmentSettings.model_validate(env)
    except ValidationError as exc:
        raise ConfigurationError(_describe_validation_error(exc)) from exc

    if settings.mapping:
        runtimes = parse_mapping(settings.mapping)
    else:
        runtimes = (
            parse_runtime(settings.openapi_source, settings.app_base_url, settings.port),
        )

    return CoverageConfig(
        runtimes=runtimes,
        debug=settings.debug,
        account_for_forbidden=settings.account_for_forbidden,
        account_for_unauthorized=settings.account_for_unauthorized,
        test_coverage=settings.test_coverage,
        is_merge=settings.is_merge,
        only_account_for_merge=settings.only_account_for_merge,
        groupings=parse_groupings(settings.groupings),
    )


def parse_runtime(openapi_source: str, app_base_url: str, port: Optional[int]) -> Runtime:
    return Runtime(
        openapi_source=parse_openapi_source(openapi_source),
        app_base_url=parse_app_base_url(app_base_url),
        port=DEFAULT_PORT if port is None else port,
    )


def parse_openapi_source(text: str) -> OpenapiSource:
    location = text.strip()
    parts = urlsplit(location)
    if parts.scheme in ("http", "https") and parts.netloc:
        return OpenapiSource(location=location, is_url=True)
    if location.startswith("/") or os.path.isabs(location):
        raise ConfigurationError(
            f"The following path is absolute, please only specify relative paths: {location}"
        )
    return OpenapiSource(location=location, is_url=False)


def parse_app_base_url(text: str) -> str:
    try:
        return str(_URL_ADAPTER.validate_python(text.strip()))
    except ValidationError:
        raise ConfigurationError(f"Invalid application URL provided: {text.strip()}") from None


def parse_port(text: str) -> int:
    try:
        port = int(text.strip())
    except ValueError:
        raise ConfigurationError(f'The specified port number is invalid: "{text}"') from None
    if not 0 <= port <= 65535:
        raise ConfigurationError(f'The specified port number is invalid: "{text}"')
    return port


def parse_mapping(text: str) -> tuple[Runtime, ...]:
    """
    One service per entry: "<app base url>; <openapi source>; <port>;"
    """
    runtimes: list[Runtime] = []
    for line in split_entries(text):
        app_base_url, openapi_source, port = split_fields(line, 3)
        runtimes.append(parse_runtime(openapi_source, app_base_url, parse_port(port)))

    if not runtimes:
        raise ConfigurationError(
            "Please provide a mapping to your configuration, the current mapping is empty."
        )

    ports = [r.port for r in runtimes]
    if len(set(ports)) != len(ports):
        raise ConfigurationError(
            "The mapping contains duplicate ports, every port can only be used once."
        )
    return tuple(runtimes)


def parse_groupings(text: str) -> frozenset[Grouping]:
    """
    One grouping per entry: "<path>; <methods,...>; <statuses,...>; <ignore flag>;"
    """
    groupings: set[Grouping] = set()
    for line in split_entries(text):
        path, methods, statuses, ignore = split_fields(line, 4)
        groupings.add(parse_grouping(path, methods, statuses, ignore))
    return frozenset(groupings)


def parse_grouping(path: str, methods: str, statuses: str, ignore: str) -> Grouping:
    parsed_methods: list[str] = []
    for raw in methods.split(","):
        method = parse_method(raw)
        if method is None:
            raise ConfigurationError(f'The following method you provided is invalid: "{raw.strip()}"')
        parsed_methods.append(method)

    parsed_statuses: list[int] = []
    for raw in statuses.split(","):
        try:
            status = int(raw.strip())
        except ValueError:
            status = -1
        if not 100 <= status <= 599:
            raise ConfigurationError(
                f'The following status code you provided is invalid: "{raw.strip()}"'
            )
        parsed_statuses.append(status)

    return Grouping.create(
        methods=parsed_methods,
        statuses=parsed_statuses,
        path=path.strip(),
        is_ignore_group=parse_flag(ignore),
    )


def split_entries(text: str) -> Iterable[str]:
    for chunk in (text or "").split(LINE_SEPARATOR):
        for line in chunk.splitlines():
            if line.strip():
                yield line


def split_fields(line: str, count: int) -> list[str]:
    """
    Read `count` fields, each terminated by ";". A backslash escapes the next
    character, so "\\;" is a literal semicolon. Text after the last field is ignored.
    """
    fields: list[str] = []
    start = 0
    index = 0
    escaped = False

    while len(fields) < count:
        if index >= len(line):
            raise ConfigurationError(
                "The following entry is missing a semicolon or is incomplete, "
                f"please end every field with '{FIELD_DELIMITER}': {line.strip()}"
            )
        ch = line[index]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == FIELD_DELIMITER:
            fields.append(line[start:index].replace("\\;", ";").strip())
            start = index + 1
        index += 1

    return fields


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "configuration"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)
