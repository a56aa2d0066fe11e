"""Header normalisation + record projection — pure functions, no side effects."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any

import pandas as pd

from sdr_finder import OWNER_FIELD, TERRITORY_FIELD
from sdr_finder.models import CanonicalRecord, HeaderRules

logger = logging.getLogger(__name__)

RawRow = Mapping[Any, Any]

_DEFAULT_RULES = HeaderRules()

# ── Header normalisation ────────────────────────────────────────


def clean_header(name: object) -> str:
    """Return *name* trimmed and lowercased; the passthrough key form."""
    return str(name).strip().lower()


def normalize_header(name: object, rules: HeaderRules | None = None) -> str | None:
    """Map a raw column header to ``territoryKey``, ``ownerName`` or ``None``.

    Matching is a case-insensitive substring test, so "Sales Level 6 (Territory)"
    and "SDR Name" are both recognised. The territory marker is checked first.
    """
    rules = rules or _DEFAULT_RULES
    cleaned = clean_header(name)
    if rules.territory_marker in cleaned:
        return TERRITORY_FIELD
    if rules.owner_marker in cleaned:
        return OWNER_FIELD
    return None


# ── Cell helpers ─────────────────────────────────────────────────


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _is_blank(value: object) -> bool:
    if _is_missing(value):
        return True
    return isinstance(value, str) and not value.strip()


def _cell_to_text(value: object) -> str:
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


# ── Projection ───────────────────────────────────────────────────


def project_row(row: RawRow, rules: HeaderRules | None = None) -> CanonicalRecord | None:
    """Project one raw row; ``None`` when either required field is blank."""
    territory: object = None
    owner: object = None
    extra: dict[str, Any] = {}
    for header, value in row.items():
        tag = normalize_header(header, rules)
        if tag == TERRITORY_FIELD:
            territory = value
        elif tag == OWNER_FIELD:
            owner = value
        else:
            extra[clean_header(header)] = None if _is_missing(value) else value

    if _is_blank(territory) or _is_blank(owner):
        return None
    return CanonicalRecord(
        territory_key=_cell_to_text(territory),
        owner_name=_cell_to_text(owner),
        extra=extra,
    )


def project_records(
    rows: Iterable[RawRow], rules: HeaderRules | None = None
) -> tuple[CanonicalRecord, ...]:
    """Turn raw parser rows into the canonical record set, keeping input order.

    Rows lacking a territory key or an owner are dropped silently; an empty
    result means the input held no usable data.
    """
    records: list[CanonicalRecord] = []
    rows_in = 0
    for row in rows:
        rows_in += 1
        record = project_row(row, rules)
        if record is not None:
            records.append(record)

    dropped = rows_in - len(records)
    if dropped:
        logger.debug("Dropped %d of %d rows without a territory key or owner", dropped, rows_in)
    return tuple(records)
