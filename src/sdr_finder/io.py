"""I/O helpers — read uploads, parse tables, write JSON artifacts."""

from __future__ import annotations

import csv
import importlib.util
import io
import json
from collections.abc import Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal, Protocol

import pandas as pd

TEXT_SUFFIXES = (".csv", ".tsv", ".txt")
_TEXT_ENCODINGS = ("utf-8-sig", "utf-8", "latin-1")


class TableParseError(ValueError):
    """The tabular parser could not turn the payload into rows."""


class TableParser(Protocol):
    """Parsing capability handed to the ingestion pipeline.

    ``ready`` reports whether the capability can be used yet; both parse
    methods return rows for the first sheet/table only.
    """

    @property
    def ready(self) -> bool: ...

    def parse_text(self, text: str) -> list[Mapping[str, Any]]: ...

    def parse_buffer(self, data: bytes) -> list[Mapping[str, Any]]: ...


# ── Reading ──────────────────────────────────────────────────────


def is_text_upload(path: Path) -> bool:
    return Path(path).suffix.lower() in TEXT_SUFFIXES


def read_upload(path: Path) -> str | bytes:
    """Return the content of *path*: decoded text for delimited files, bytes otherwise.

    The choice is made from the file name extension only.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If *path* is a directory, or text cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input path is a directory, not a file: {path}")

    data = path.read_bytes()
    if not is_text_upload(path):
        return data

    last_exc: Exception | None = None
    for encoding in _TEXT_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
    raise ValueError(f"Could not decode {path} as text") from last_exc


# ── Parsing ──────────────────────────────────────────────────────


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    return [
        {str(column): value for column, value in row.items()}
        for row in df.to_dict(orient="records")
    ]


class PandasTableParser:
    """``TableParser`` backed by pandas (openpyxl/xlrd for workbooks)."""

    def __init__(self, delimiter: str | None = None) -> None:
        self.delimiter = delimiter

    @property
    def ready(self) -> bool:
        return importlib.util.find_spec("openpyxl") is not None

    def parse_text(self, text: str) -> list[dict[str, Any]]:
        if not text.strip():
            return []
        sep = self.delimiter if self.delimiter else None
        engine: Literal["c", "python"] = "c" if self.delimiter else "python"
        try:
            df = pd.read_csv(
                io.StringIO(text),
                dtype="string",
                sep=sep,
                engine=engine,
                na_filter=True,
                keep_default_na=False,
                na_values=[""],
            )
        except pd.errors.EmptyDataError:
            return []
        except (pd.errors.ParserError, csv.Error, ValueError) as exc:
            raise TableParseError(f"Could not parse delimited text: {exc}") from exc
        return _frame_to_rows(df)

    def parse_buffer(self, data: bytes) -> list[dict[str, Any]]:
        try:
            df = pd.read_excel(
                io.BytesIO(data),
                sheet_name=0,
                dtype="string",
                na_filter=True,
                keep_default_na=False,
                na_values=[""],
            )
        except ImportError as exc:
            raise TableParseError(
                "Unsupported .xls input unless 'xlrd' is installed. "
                "Either convert to .xlsx or add dependency: pip install xlrd"
            ) from exc
        except Exception as exc:
            raise TableParseError(f"Could not read spreadsheet: {exc}") from exc
        return _frame_to_rows(df)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
