from __future__ import annotations


class ApicoverError(Exception):
    """Base class for everything the CLI reports as a user-facing error."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ApicoverError):
    """Raised when the environment configuration is missing, conflicting or malformed."""


class OpenapiParseError(ApicoverError):
    """Raised when an OpenAPI document cannot be read or turned into endpoints."""


class OpenapiSyntaxError(OpenapiParseError):
    """Raised when a document is not valid JSON / YAML at all."""


class UnsupportedSourceError(ApicoverError):
    """Raised when a URL source is asked for something only a local file has (a pre-merge revision)."""


class AccessLogParseError(ApicoverError):
    """Raised when the proxy access log cannot be read or a line is malformed."""


class NginxError(ApicoverError):
    """Raised when the nginx config cannot be written or nginx exits abnormally."""
