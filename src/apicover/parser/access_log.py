from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from apicover.domain.models import Endpoint, Runtime, parse_method
from apicover.errors import AccessLogParseError

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_LOG = Path("/var/log/nginx/access.log")

# [11/Jul/2023:08:50:03 +0000] "GET /weather HTTP/1.1" 200 8080
_LINE = re.compile(r'^(\[.+\]) "(\w{3,7}) (/\S*) HTTP/\d(?:\.\d)?" (\d{3}) (\d{1,5})')


def parse_access_log_line(runtimes: Sequence[Runtime], line: str) -> Endpoint:
    m = _LINE.match(line)
    if m is None:
        raise AccessLogParseError(f"The following access log line could not be parsed: {line.strip()}")

    _, method_text, target, status_text, port_text = m.groups()

    method = parse_method(method_text)
    if method is None:
        raise AccessLogParseError(f"The access log contains an invalid method: {method_text}")

    # observed paths are compared without their query string
    path = target.split("?", 1)[0] or "/"

    runtime = find_runtime_by_port(runtimes, int(port_text))
    return Endpoint.create(method, path, int(status_text), runtime)


def parse_access_log(runtimes: Sequence[Runtime], path: Path = DEFAULT_ACCESS_LOG) -> list[Endpoint]:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            lines = f.readlines()
    except OSError as exc:
        logger.debug("reading %s failed: %s", path, exc)
        raise AccessLogParseError(f"An issue opening the access log ({path}) occurred.") from exc

    endpoints = [parse_access_log_line(runtimes, line) for line in lines if line.strip()]
    logger.debug("parsed %d requests from %s", len(endpoints), path)
    return endpoints


def find_runtime_by_port(runtimes: Sequence[Runtime], port: int) -> Runtime:
    for runtime in runtimes:
        if runtime.port == port:
            return runtime
    raise AccessLogParseError(f"The access log contains a request on an unknown port: {port}")
