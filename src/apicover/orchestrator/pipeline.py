from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from apicover.config.nginx import DEFAULT_NGINX_CONFIG, configure_nginx
from apicover.config.settings import CoverageConfig
from apicover.domain.models import Endpoint, Evaluation
from apicover.errors import ConfigurationError, NginxError
from apicover.evaluator.coverage import evaluate
from apicover.parser.access_log import DEFAULT_ACCESS_LOG, parse_access_log
from apicover.parser.openapi import (
    filter_generated,
    load_declared_endpoints,
    load_pre_merge_endpoints,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedRun:
    declared: list[Endpoint]
    pre_merge: Optional[list[Endpoint]]


@dataclass(frozen=True)
class RunResult:
    evaluation: Evaluation
    declared_count: int
    observed_count: int
    required_coverage: float

    @property
    def passed(self) -> bool:
        return self.evaluation.test_coverage >= self.required_coverage


def prepare(config: CoverageConfig, root: Path) -> PreparedRun:
    """
    Load the declared endpoints and, for merge-only accounting, the pre-merge baseline.
    """
    if config.only_account_for_merge and not config.all_openapi_sources_are_paths():
        if config.is_merge:
            raise ConfigurationError(
                "Your configuration contains a dynamically loaded openapi document. It needs to be "
                "a local file when only accounting for the difference between commits."
            )
        raise ConfigurationError(
            "You need to have two commits to compare (ex. pull/merge request) when only "
            "accounting for the difference between commits."
        )

    declared = filter_generated(
        load_declared_endpoints(config, root),
        account_for_unauthorized=config.account_for_unauthorized,
        account_for_forbidden=config.account_for_forbidden,
    )

    pre_merge: Optional[list[Endpoint]] = None
    if config.is_merge and config.only_account_for_merge:
        pre_merge = filter_generated(
            load_pre_merge_endpoints(config, root),
            account_for_unauthorized=config.account_for_unauthorized,
            account_for_forbidden=config.account_for_forbidden,
        )

    logger.debug(
        "declared endpoints: %d, pre-merge endpoints: %s",
        len(declared),
        "-" if pre_merge is None else len(pre_merge),
    )
    return PreparedRun(declared=declared, pre_merge=pre_merge)


def run_nginx(config: CoverageConfig, nginx_config: Path = DEFAULT_NGINX_CONFIG) -> None:
    """Configure nginx and run it in the foreground until it exits."""
    configure_nginx(config, nginx_config)

    logger.debug("Starting nginx")
    stdout = None if config.debug else subprocess.DEVNULL
    try:
        completed = subprocess.run(["nginx", "-g", "daemon off;"], stdout=stdout, check=False)
    except OSError as exc:
        raise NginxError(f"Running nginx failed with: {exc}") from exc

    if completed.returncode != 0:
        raise NginxError(f"Unexpected non-zero exit code from nginx: {completed.returncode}")


def run_evaluation(
    config: CoverageConfig,
    prepared: PreparedRun,
    access_log: Path = DEFAULT_ACCESS_LOG,
) -> RunResult:
    logger.debug("Evaluating endpoint coverage")

    observed = parse_access_log(config.runtimes, access_log)
    evaluation = evaluate(prepared.declared, prepared.pre_merge, observed, config.groupings)

    return RunResult(
        evaluation=evaluation,
        declared_count=len(prepared.declared),
        observed_count=len(observed),
        required_coverage=config.test_coverage,
    )
