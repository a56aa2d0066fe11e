"""Ingestion pipeline — upload state machine around the parser and projector."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from sdr_finder.io import PandasTableParser, TableParseError, TableParser, read_upload
from sdr_finder.lookup import build_index, search_index
from sdr_finder.models import (
    CanonicalRecord,
    FailureReason,
    HeaderRules,
    IngestionOutcome,
    PipelineState,
    QueryResult,
)
from sdr_finder.pipeline import project_records

logger = logging.getLogger(__name__)


def _check_rows(rows: object) -> list[Mapping[str, Any]]:
    if isinstance(rows, (str, bytes)) or not isinstance(rows, Sequence):
        raise TableParseError(f"Parser returned {type(rows).__name__}, expected a list of rows")
    for row in rows:
        if not isinstance(row, Mapping):
            raise TableParseError(f"Parser returned a {type(row).__name__} row, expected a mapping")
    return list(rows)


class IngestionPipeline:
    """Owns the canonical record set and answers queries against it.

    States move ``idle -> parsing -> loaded | failed``; ``reset()`` returns to
    ``idle`` from anywhere. Each completed upload replaces the record set
    wholesale, so a query only ever sees the latest finished ingestion.
    """

    def __init__(
        self,
        parser: TableParser | None = None,
        *,
        rules: HeaderRules | None = None,
    ) -> None:
        self.parser: TableParser = parser if parser is not None else PandasTableParser()
        self.rules = rules or HeaderRules()
        self.state = PipelineState.idle
        self.records: tuple[CanonicalRecord, ...] = ()
        self.query = ""
        self.selected_file: str | None = None
        self.last_outcome: IngestionOutcome | None = None
        self._index: dict[str, QueryResult] = {}

    # ── Uploads ──────────────────────────────────────────────────

    def upload(self, path: Path | str | None) -> IngestionOutcome:
        """Ingest the file at *path*; ``None`` means nothing was selected."""
        if path is None:
            self._clear_data()
            self.selected_file = None
            self.state = PipelineState.idle
            return self._finish(IngestionOutcome.failure(FailureReason.no_file_selected))

        path = Path(path)
        return self._ingest(path.name, lambda: self._parse_file(path))

    def ingest_text(self, text: str, *, source: str = "") -> IngestionOutcome:
        return self._ingest(source, lambda: self.parser.parse_text(text))

    def ingest_bytes(self, data: bytes, *, source: str = "") -> IngestionOutcome:
        return self._ingest(source, lambda: self.parser.parse_buffer(data))

    def _parse_file(self, path: Path) -> list[Mapping[str, Any]]:
        content = read_upload(path)
        if isinstance(content, str):
            return self.parser.parse_text(content)
        return self.parser.parse_buffer(content)

    def _ingest(
        self, source: str, parse: Callable[[], object]
    ) -> IngestionOutcome:
        if not self.parser.ready:
            logger.warning("Rejected upload of %r: parser not ready", source)
            self.last_outcome = IngestionOutcome.failure(
                FailureReason.parser_not_ready, source=source
            )
            return self.last_outcome

        self.state = PipelineState.parsing
        self.selected_file = source
        logger.debug("Parsing %r", source)
        try:
            rows = _check_rows(parse())
        except Exception as exc:
            self._clear_data()
            self.state = PipelineState.failed
            return self._finish(
                IngestionOutcome.failure(
                    FailureReason.parse_error, detail=str(exc), source=source
                )
            )

        records = project_records(rows, self.rules)
        if not records:
            self._clear_data()
            self.state = PipelineState.failed
            return self._finish(
                IngestionOutcome.failure(
                    FailureReason.no_valid_rows, rows_in=len(rows), source=source
                )
            )

        self.records = records
        self._index = build_index(records)
        self.query = ""
        self.state = PipelineState.loaded
        return self._finish(IngestionOutcome.success(records, rows_in=len(rows), source=source))

    def _finish(self, outcome: IngestionOutcome) -> IngestionOutcome:
        self.last_outcome = outcome
        if outcome.ok:
            logger.info(
                "Loaded %d records from %r (%d rows dropped)",
                outcome.record_count,
                outcome.source,
                outcome.dropped_rows,
            )
        elif outcome.reason is not FailureReason.no_file_selected:
            logger.warning(
                "Upload of %r failed: %s %s",
                outcome.source,
                outcome.reason.value if outcome.reason else "",
                outcome.detail,
            )
        return outcome

    # ── Queries ──────────────────────────────────────────────────

    @property
    def results(self) -> list[QueryResult]:
        return search_index(self._index, self.query)

    def search(self, query: str) -> list[QueryResult]:
        """Set the active query and return its matches, one per territory."""
        self.query = query
        return self.results

    def clear_search(self) -> None:
        self.query = ""

    def reset(self) -> None:
        """Drop all data and return to ``idle``."""
        self._clear_data()
        self.selected_file = None
        self.last_outcome = None
        self.state = PipelineState.idle
        logger.debug("Pipeline reset")

    def _clear_data(self) -> None:
        self.records = ()
        self._index = {}
        self.query = ""
