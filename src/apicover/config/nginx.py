from __future__ import annotations

import logging
from pathlib import Path

from apicover.config.settings import CoverageConfig
from apicover.domain.models import Runtime
from apicover.errors import NginxError

logger = logging.getLogger(__name__)

DEFAULT_NGINX_CONFIG = Path("/etc/nginx/nginx.conf")

CONFIGURATIONS_PLACEHOLDER = "INSERT_CONFIGURATIONS_HERE"
_ERROR_LOG_OFF = "error_log  off;"
_ERROR_LOG_DEBUG = "error_log  /var/log/nginx/error.log notice;"

# access_log format must stay in sync with apicover.parser.access_log
DEFAULT_NGINX_TEMPLATE = """\
user  nginx;
worker_processes  auto;

error_log  off;
pid        /var/run/nginx.pid;

events {
    worker_connections  1024;
}

http {
    log_format  apicover  '[$time_local] "$request" $status $server_port';
    access_log  /var/log/nginx/access.log  apicover;

    sendfile        on;
    keepalive_timeout  65;

INSERT_CONFIGURATIONS_HERE
}
"""

_SERVER_BLOCK = """
    server {{
        listen {port};

        location /502 {{
            return 502 'apicover could not connect to your service, please double check that you specified the correct uri.';
        }}

        location / {{
            proxy_pass {url};
        }}
    }}
"""


def build_server_block(runtime: Runtime) -> str:
    return _SERVER_BLOCK.format(port=runtime.port, url=runtime.app_base_url)


def render_nginx_config(template: str, config: CoverageConfig) -> str:
    text = template
    if config.debug:
        text = text.replace(_ERROR_LOG_OFF, _ERROR_LOG_DEBUG)
    blocks = "".join(build_server_block(r) for r in config.runtimes)
    return text.replace(CONFIGURATIONS_PLACEHOLDER, blocks)


def configure_nginx(config: CoverageConfig, path: Path = DEFAULT_NGINX_CONFIG) -> None:
    """Fill the server blocks into the nginx config at `path`, in place."""
    try:
        template = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise NginxError(f"issue reading file {path} due to: {exc}") from exc

    if CONFIGURATIONS_PLACEHOLDER not in template:
        logger.warning("%s has no %s placeholder; no proxies configured", path, CONFIGURATIONS_PLACEHOLDER)

    try:
        path.write_text(render_nginx_config(template, config), encoding="utf-8")
    except OSError as exc:
        raise NginxError(f"issue writing file {path} due to: {exc}") from exc

    logger.debug("wrote nginx config for %d runtime(s) to %s", len(config.runtimes), path)
