from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal, Optional, get_args

from apicover.matching.path_pattern import PathPattern

HttpMethod = Literal["GET", "PUT", "POST", "DELETE", "OPTIONS", "HEAD", "PATCH", "TRACE"]

HTTP_METHODS: tuple[str, ...] = get_args(HttpMethod)


def parse_method(text: str) -> Optional[str]:
    """Case-insensitive lookup; None for anything that is not an HTTP method."""
    method = (text or "").strip().upper()
    return method if method in HTTP_METHODS else None


@dataclass(frozen=True)
class OpenapiSource:
    location: str
    is_url: bool = False


@dataclass(frozen=True)
class Runtime:
    """One proxied service: where its OpenAPI document lives, where it runs, and the proxy port."""

    openapi_source: OpenapiSource
    app_base_url: str
    port: int


@dataclass(frozen=True)
class Endpoint:
    """
    Method + path + status code of one service.

    Declared endpoints carry a templated path (/users/{id}); observed ones a
    concrete path (/users/42). `is_generated` marks endpoints implied by a
    security requirement and is ignored by equality and hashing.
    """

    method: HttpMethod
    path: PathPattern
    status_code: int
    runtime: Runtime
    is_generated: bool = field(default=False, compare=False)

    @classmethod
    def create(
        cls,
        method: HttpMethod,
        path: str,
        status_code: int,
        runtime: Runtime,
        is_generated: bool = False,
    ) -> "Endpoint":
        return cls(
            method=method,
            path=PathPattern.compile(path),
            status_code=status_code,
            runtime=runtime,
            is_generated=is_generated,
        )

    def sort_key(self) -> tuple:
        return (
            self.method,
            self.path.source,
            self.status_code,
            self.runtime.port,
            self.runtime.app_base_url,
            self.runtime.openapi_source.location,
            self.runtime.openapi_source.is_url,
        )

    def encompasses(self, other: "Endpoint") -> bool:
        return (
            self.method == other.method
            and self.status_code == other.status_code
            and self.runtime == other.runtime
            and self.path.encompasses_pattern(other.path)
        )

    def __str__(self) -> str:
        return f"{self.method} {self.path} {self.status_code}"


@dataclass(frozen=True)
class Grouping:
    """
    Set of declared endpoints that count as covered together.

    Ignore groups exempt their members from coverage accounting.
    """

    methods: frozenset[str]
    statuses: frozenset[int]
    path: PathPattern
    is_ignore_group: bool = False

    @classmethod
    def create(
        cls,
        methods: Iterable[str],
        statuses: Iterable[int],
        path: str,
        is_ignore_group: bool = False,
    ) -> "Grouping":
        return cls(
            methods=frozenset(methods),
            statuses=frozenset(statuses),
            path=PathPattern.compile(path),
            is_ignore_group=is_ignore_group,
        )

    def encompasses_endpoint(self, endpoint: Endpoint) -> bool:
        return (
            endpoint.method in self.methods
            and endpoint.status_code in self.statuses
            and self.path.encompasses_pattern(endpoint.path)
        )


@dataclass(frozen=True)
class Evaluation:
    has_gateway_issues: bool
    test_coverage: float  # 0.0 .. 1.0
    endpoints_not_covered: tuple[Endpoint, ...]
