"""Territory lookup — first-wins index and substring search."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from sdr_finder.models import CanonicalRecord, QueryResult


def build_index(records: Iterable[CanonicalRecord]) -> dict[str, QueryResult]:
    """Map each lowercased territory key to the first record that carries it.

    Later rows with the same key (in any casing) are ignored, and iteration
    order is first-occurrence order.
    """
    index: dict[str, QueryResult] = {}
    for record in records:
        key = record.territory_key.lower()
        if key not in index:
            index[key] = QueryResult(
                territory_key=record.territory_key,
                owner_name=record.owner_name,
            )
    return index


def search_index(index: Mapping[str, QueryResult], query: str) -> list[QueryResult]:
    """Return every indexed territory whose key contains *query*, any case."""
    if not query:
        return []
    needle = query.lower()
    return [result for key, result in index.items() if needle in key]


def search_territories(records: Iterable[CanonicalRecord], query: str) -> list[QueryResult]:
    if not query:
        return []
    return search_index(build_index(records), query)


def count_territories(records: Iterable[CanonicalRecord]) -> int:
    """Number of distinct territory keys, ignoring case."""
    return len({record.territory_key.lower() for record in records})
