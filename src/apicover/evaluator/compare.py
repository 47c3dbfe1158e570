from __future__ import annotations

from typing import Any, Sequence

from apicover.domain.models import Endpoint


def compare_endpoints(set_a: Sequence[Endpoint], set_b: Sequence[Endpoint]) -> list[Endpoint]:
    """
    Set difference in both directions: what is in A but not B, then what is in B but not A.

    Order and duplicate counts of the inputs do not matter; an empty result
    means both lists hold the same endpoints.
    """
    remaining_a = sorted(set_a, key=Endpoint.sort_key)
    remaining_b = sorted(set_b, key=Endpoint.sort_key)

    # only valid after sorting
    filter_consecutive_duplicates(remaining_a)
    filter_consecutive_duplicates(remaining_b)

    index_a = 0
    while index_a < len(remaining_a):
        item_a = remaining_a[index_a]
        key_a = item_a.sort_key()
        is_found = False

        index_b = 0
        while index_b < len(remaining_b) and key_a >= remaining_b[index_b].sort_key():
            if remaining_b[index_b] == item_a:
                is_found = True
                del remaining_b[index_b]
            else:
                index_b += 1

        if is_found:
            del remaining_a[index_a]
        else:
            index_a += 1

    return remaining_a + remaining_b


def filter_consecutive_duplicates(items: list[Any]) -> None:
    """Collapse runs of equal neighbours in place."""
    index = 0
    while index < len(items) - 1:
        if items[index] == items[index + 1]:
            del items[index + 1]
        else:
            index += 1
