from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Literal, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
import yaml

from apicover.config.settings import CoverageConfig
from apicover.domain.models import Endpoint, Runtime, parse_method
from apicover.errors import OpenapiParseError, OpenapiSyntaxError, UnsupportedSourceError

logger = logging.getLogger(__name__)

DocumentFormat = Literal["json", "yaml"]

# the pre-merge revision of a document is checked out next to it under this suffix
PRE_MERGE_SUFFIX = ".apicover.old"

UNAUTHORIZED = 401
FORBIDDEN = 403

# nginx and apicover run in a container; the service under test is on the docker host
DOCKER_HOST_ADDRESS = "172.17.0.1"
FETCH_TIMEOUT = 30

_PATH_ITEM_NON_OPERATIONS = {"parameters", "summary", "description", "servers", "$ref"}
_EXTENSION_FORMATS: dict[str, DocumentFormat] = {"json": "json", "yaml": "yaml", "yml": "yaml"}


def format_basepath(basepath: str) -> str:
    # "/" -> "", "/v1/" -> "/v1"
    return basepath[:-1] if basepath.endswith("/") else basepath


def parse_openapi_document(text: str, runtime: Runtime, fmt: DocumentFormat) -> list[Endpoint]:
    """
    Extract (method, path, status) endpoints from an OpenAPI / Swagger document.

    Operations guarded by a security requirement additionally produce
    generated 401 and 403 endpoints.
    """
    doc = _load(text, fmt)
    if not isinstance(doc, dict):
        raise OpenapiParseError("The syntax of the openapi file is incorrect.")

    basepath = doc.get("basePath", "")
    if basepath is None:
        basepath = ""
    if not isinstance(basepath, str):
        raise OpenapiParseError("Basepath provided in the openapi document isn't valid.")
    basepath = format_basepath(basepath)

    paths = doc.get("paths")
    if not isinstance(paths, dict):
        raise OpenapiParseError("The syntax of the openapi file is incorrect.")

    global_security = bool(doc.get("security"))
    endpoints: list[Endpoint] = []

    for path_key, path_item in paths.items():
        path = _join_path(basepath, str(path_key))
        if not isinstance(path_item, dict):
            raise OpenapiParseError("The syntax of the openapi file is incorrect.")

        for method_key, operation in path_item.items():
            if method_key in _PATH_ITEM_NON_OPERATIONS or str(method_key).startswith("x-"):
                continue
            method = parse_method(str(method_key))
            if method is None:
                raise OpenapiParseError(f"The openapi file contains an invalid method: {method_key}")
            if not isinstance(operation, dict) or not isinstance(operation.get("responses"), dict):
                raise OpenapiParseError("The syntax of the openapi file is incorrect.")

            if _requires_security(operation, global_security):
                for status in (UNAUTHORIZED, FORBIDDEN):
                    endpoints.append(Endpoint.create(method, path, status, runtime, is_generated=True))

            for status in _status_codes(operation["responses"].keys()):
                endpoints.append(Endpoint.create(method, path, status, runtime))

    logger.debug("parsed %d endpoints from openapi document", len(endpoints))
    return endpoints


def parse_openapi_file(
    runtime: Runtime,
    root: Path,
    suffix: str = "",
    session: Optional[requests.Session] = None,
) -> list[Endpoint]:
    """
    Read the runtime's OpenAPI document: from disk relative to `root`, or over
    HTTP for URL sources.

    `suffix` is appended to the file name (used for the pre-merge revision).
    """
    source = runtime.openapi_source
    if source.is_url:
        if suffix:
            raise UnsupportedSourceError(
                f"The openapi source {source.location} is a URL; it has no previous revision to read."
            )
        return fetch_openapi_document(runtime, session)

    rel = Path(source.location)
    return parse_openapi_path(root / rel.with_name(rel.name + suffix), runtime, fmt_hint=rel)


def parse_openapi_path(path: Path, runtime: Runtime, fmt_hint: Optional[Path] = None) -> list[Endpoint]:
    """
    Read any OpenAPI file. The format follows the extension of `fmt_hint`
    (defaults to `path` itself), so "swagger.json.apicover.old" can still be read as json.
    """
    hint = fmt_hint or path
    fmt = _EXTENSION_FORMATS.get(hint.suffix.lower().lstrip("."))
    if fmt is None:
        raise OpenapiParseError("Only json and yaml openapi documents can be parsed.")

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.debug("reading %s failed: %s", path, exc)
        raise OpenapiParseError(f"An issue opening the openapi ({path}) file occurred.") from exc

    return parse_openapi_document(text, runtime, fmt)


def fetch_openapi_document(runtime: Runtime, session: Optional[requests.Session] = None) -> list[Endpoint]:
    """
    GET a URL source and parse it. The body is tried as json first and as
    yaml when it is not json at all.
    """
    url = rewrite_localhost(runtime.openapi_source.location)
    logger.debug("fetching openapi document from %s", url)

    http = session if session is not None else requests.Session()
    try:
        response = http.get(url, timeout=FETCH_TIMEOUT)
        response.raise_for_status()
        text = response.text
    except (requests.ConnectionError, requests.Timeout) as exc:
        logger.debug("fetching %s failed: %s", url, exc)
        raise OpenapiParseError(f"The openapi document could not be fetched from {url}.") from exc
    except requests.RequestException as exc:
        logger.debug("fetching %s failed: %s", url, exc)
        raise OpenapiParseError(f"The openapi document served at {url} could not be read.") from exc
    finally:
        if session is None:
            http.close()

    try:
        return parse_openapi_document(text, runtime, "json")
    except OpenapiSyntaxError:
        return parse_openapi_document(text, runtime, "yaml")


def rewrite_localhost(url: str) -> str:
    """Point "localhost" at the docker host; port, path and query are kept."""
    parts = urlsplit(url)
    if parts.hostname != "localhost":
        return url

    userinfo, at, hostport = parts.netloc.rpartition("@")
    _, colon, port = hostport.partition(":")
    netloc = f"{userinfo}{at}{DOCKER_HOST_ADDRESS}{colon}{port}"
    return urlunsplit(parts._replace(netloc=netloc))


def load_declared_endpoints(
    config: CoverageConfig, root: Path, session: Optional[requests.Session] = None
) -> list[Endpoint]:
    endpoints: list[Endpoint] = []
    for runtime in config.runtimes:
        endpoints.extend(parse_openapi_file(runtime, root, session=session))
    return endpoints


def load_pre_merge_endpoints(config: CoverageConfig, root: Path) -> list[Endpoint]:
    endpoints: list[Endpoint] = []
    for runtime in config.runtimes:
        endpoints.extend(parse_openapi_file(runtime, root, PRE_MERGE_SUFFIX))
    return endpoints


def filter_generated(
    endpoints: Iterable[Endpoint],
    account_for_unauthorized: bool,
    account_for_forbidden: bool,
) -> list[Endpoint]:
    """Drop generated 401/403 endpoints unless the matching flag asks to keep them."""
    out: list[Endpoint] = []
    for e in endpoints:
        if e.is_generated:
            if e.status_code == UNAUTHORIZED and not account_for_unauthorized:
                continue
            if e.status_code == FORBIDDEN and not account_for_forbidden:
                continue
        out.append(e)
    return out


def _load(text: str, fmt: DocumentFormat) -> Any:
    try:
        if fmt == "json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        logger.debug("openapi document failed to load: %s", exc)
        raise OpenapiSyntaxError("The syntax of the openapi file is incorrect.") from exc


def _join_path(basepath: str, key: str) -> str:
    path = basepath if key == "/" and basepath else f"{basepath}{key}"
    return path or "/"


def _requires_security(operation: dict, global_security: bool) -> bool:
    if "security" in operation:
        return bool(operation["security"])
    return global_security


def _status_codes(keys: Iterable[Any]) -> list[int]:
    codes: list[int] = []
    for key in keys:
        text = str(key).strip()
        if text.lower() == "default":
            continue
        try:
            code = int(text)
        except ValueError:
            code = -1
        if not 100 <= code <= 599:
            raise OpenapiParseError(f"The openapi file contains an invalid status code: {text}")
        codes.append(code)
    return codes
