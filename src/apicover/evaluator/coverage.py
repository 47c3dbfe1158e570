from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from apicover.domain.models import Endpoint, Evaluation, Grouping

logger = logging.getLogger(__name__)

GATEWAY_ERROR_STATUS = 502
GATEWAY_ERROR_ABSOLUTE_LIMIT = 40
GATEWAY_ERROR_RATIO_LIMIT = 0.25


def evaluate(
    declared: Sequence[Endpoint],
    pre_merge: Optional[Sequence[Endpoint]],
    observed: Sequence[Endpoint],
    groupings: Iterable[Grouping],
) -> Evaluation:
    """
    Grouping-aware coverage of `declared` by `observed`.

    With `pre_merge` set only endpoints that are new relative to it are
    evaluated. Endpoints are addressed by index into one list; grouping
    members and the unmatched queue hold indices, so marking an endpoint
    satisfied through one grouping is visible everywhere else.
    """
    relevant = _relevant_endpoints(declared, pre_merge)
    groupings = list(groupings)

    satisfied = [False] * len(relevant)
    members: dict[Grouping, list[int]] = {}
    unmatched: list[int] = []

    for index, endpoint in enumerate(relevant):
        matching_groupings = [g for g in groupings if g.encompasses_endpoint(endpoint)]

        if not matching_groupings:
            if _is_observed(endpoint, observed):
                satisfied[index] = True
            else:
                unmatched.append(index)
            continue

        for grouping in matching_groupings:
            group = members.setdefault(grouping, [])

            if group and satisfied[group[0]]:
                satisfied[index] = True
            elif grouping.is_ignore_group:
                satisfied[index] = True
            elif _is_observed(endpoint, observed):
                satisfied[index] = True
                for member in group:
                    satisfied[member] = True
            else:
                unmatched.append(index)

            group.append(index)

    not_covered: list[int] = []
    seen: set[int] = set()
    for index in unmatched:
        if satisfied[index] or index in seen:
            continue
        seen.add(index)
        not_covered.append(index)

    if relevant:
        coverage = (len(relevant) - len(not_covered)) / len(relevant)
    else:
        coverage = 1.0

    logger.debug(
        "evaluated %d endpoints (%d declared, %d observed, %d groupings): %d not covered",
        len(relevant),
        len(declared),
        len(observed),
        len(groupings),
        len(not_covered),
    )

    return Evaluation(
        has_gateway_issues=has_gateway_issues(observed),
        test_coverage=coverage,
        endpoints_not_covered=tuple(relevant[i] for i in not_covered),
    )


def has_gateway_issues(observed: Sequence[Endpoint]) -> bool:
    """Heuristic: too many 502s means the proxy could not reach the service."""
    bad_gateway = sum(1 for e in observed if e.status_code == GATEWAY_ERROR_STATUS)
    return (
        bad_gateway > GATEWAY_ERROR_ABSOLUTE_LIMIT
        or bad_gateway > len(observed) * GATEWAY_ERROR_RATIO_LIMIT
    )


def _relevant_endpoints(
    declared: Sequence[Endpoint], pre_merge: Optional[Sequence[Endpoint]]
) -> list[Endpoint]:
    # set semantics: a documented 401 and its generated twin are one endpoint
    if pre_merge is None:
        return list(dict.fromkeys(declared))
    baseline = set(pre_merge)
    return list(dict.fromkeys(e for e in declared if e not in baseline))


def _is_observed(endpoint: Endpoint, observed: Sequence[Endpoint]) -> bool:
    return any(endpoint.encompasses(o) for o in observed)
