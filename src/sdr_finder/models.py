"""Data models shared by the projector, the lookup engine and the pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from numbers import Integral
from typing import Any

from sdr_finder import (
    DEFAULT_OWNER_MARKER,
    DEFAULT_TERRITORY_MARKER,
    OWNER_FIELD,
    TERRITORY_FIELD,
)


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_required_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    if not value.strip():
        raise ValueError(f"{field_name} must be non-empty")
    return value


def _to_marker(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    marker = value.strip().lower()
    if not marker:
        raise ValueError(f"{field_name} must be non-empty")
    return marker


class FailureReason(str, Enum):
    """Why an upload attempt produced no record set."""

    no_file_selected = "no_file_selected"
    parser_not_ready = "parser_not_ready"
    parse_error = "parse_error"
    no_valid_rows = "no_valid_rows"


class PipelineState(str, Enum):
    idle = "idle"
    parsing = "parsing"
    loaded = "loaded"
    failed = "failed"


@dataclass
class HeaderRules:
    """Substrings that identify the two required columns.

    Markers are compared against trimmed, lowercased headers, so they are
    stored in that form.
    """

    territory_marker: str = DEFAULT_TERRITORY_MARKER
    owner_marker: str = DEFAULT_OWNER_MARKER

    def __post_init__(self) -> None:
        self.territory_marker = _to_marker(self.territory_marker, "territory_marker")
        self.owner_marker = _to_marker(self.owner_marker, "owner_marker")

    def to_dict(self) -> dict[str, str]:
        return {
            TERRITORY_FIELD: self.territory_marker,
            OWNER_FIELD: self.owner_marker,
        }


@dataclass
class CanonicalRecord:
    """A row after header normalisation and required-field validation.

    Contract invariant: ``territory_key`` and ``owner_name`` are non-empty.
    """

    territory_key: str
    owner_name: str
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.territory_key = _to_required_text(self.territory_key, "territory_key")
        self.owner_name = _to_required_text(self.owner_name, "owner_name")
        if not isinstance(self.extra, Mapping):
            raise TypeError("extra must be a mapping")
        self.extra = dict(self.extra)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            TERRITORY_FIELD: self.territory_key,
            OWNER_FIELD: self.owner_name,
        }
        payload.update(self.extra)
        return payload


@dataclass(frozen=True)
class QueryResult:
    """One distinct territory and the owner from its first row."""

    territory_key: str
    owner_name: str

    def to_dict(self) -> dict[str, str]:
        return {TERRITORY_FIELD: self.territory_key, OWNER_FIELD: self.owner_name}


@dataclass
class IngestionOutcome:
    """Result of a single upload attempt.

    A success carries the canonical record set; a failure carries a
    ``FailureReason`` and never any records.
    """

    ok: bool
    records: tuple[CanonicalRecord, ...] = ()
    record_count: int = 0
    rows_in: int = 0
    reason: FailureReason | None = None
    detail: str = ""
    source: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.records, (str, bytes)) or not isinstance(self.records, Sequence):
            raise TypeError("records must be a sequence of CanonicalRecord")
        self.records = tuple(self.records)
        for record in self.records:
            if not isinstance(record, CanonicalRecord):
                raise TypeError("records items must be CanonicalRecord")
        self.record_count = _to_non_negative_int(self.record_count, "record_count")
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        if self.record_count != len(self.records):
            raise ValueError("record_count must equal len(records)")
        if self.record_count > self.rows_in:
            raise ValueError("record_count must be <= rows_in")
        if self.ok:
            if self.reason is not None:
                raise ValueError("a successful outcome cannot carry a reason")
            if not self.records:
                raise ValueError("a successful outcome needs at least one record")
        else:
            if self.reason is None:
                raise ValueError("a failed outcome needs a reason")
            self.reason = FailureReason(self.reason)
            if self.records:
                raise ValueError("a failed outcome cannot carry records")

    @classmethod
    def success(
        cls,
        records: Sequence[CanonicalRecord],
        *,
        rows_in: int,
        source: str = "",
    ) -> IngestionOutcome:
        return cls(
            ok=True,
            records=tuple(records),
            record_count=len(records),
            rows_in=rows_in,
            source=source,
        )

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        *,
        detail: str = "",
        rows_in: int = 0,
        source: str = "",
    ) -> IngestionOutcome:
        return cls(ok=False, reason=reason, detail=detail, rows_in=rows_in, source=source)

    @property
    def dropped_rows(self) -> int:
        return self.rows_in - self.record_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "record_count": self.record_count,
            "rows_in": self.rows_in,
            "dropped_rows": self.dropped_rows,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
            "source": self.source,
        }
