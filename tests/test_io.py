from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import Workbook

from sdr_finder.io import (
    PandasTableParser,
    TableParseError,
    is_text_upload,
    read_upload,
    write_json,
)
from sdr_finder.models import QueryResult


def _xlsx_bytes(*sheets: list[list[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for idx, rows in enumerate(sheets):
        if idx:
            ws = wb.create_sheet(f"Sheet{idx + 1}")
        for row in rows:
            ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ── read_upload ──────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("name", "expected"),
    [("a.csv", True), ("A.CSV", True), ("a.tsv", True), ("a.txt", True),
     ("a.xlsx", False), ("a.xls", False), ("a", False)],
)
def test_is_text_upload_uses_extension(name: str, expected: bool) -> None:
    assert is_text_upload(Path(name)) is expected


def test_read_upload_returns_text_for_csv(tmp_path: Path) -> None:
    csv_path = tmp_path / "data.csv"
    csv_path.write_text("col1,col2\n1,2\n", encoding="utf-8-sig")

    content = read_upload(csv_path)

    assert content == "col1,col2\n1,2\n"


def test_read_upload_latin1_fallback(tmp_path: Path) -> None:
    csv_path = tmp_path / "latin1.csv"
    csv_path.write_bytes("name,city\nAndré,Paris\n".encode("latin-1"))

    content = read_upload(csv_path)

    assert isinstance(content, str)
    assert "André" in content


def test_read_upload_returns_bytes_for_other_extensions(tmp_path: Path) -> None:
    xlsx_path = tmp_path / "data.xlsx"
    xlsx_path.write_bytes(b"PK\x03\x04")

    assert read_upload(xlsx_path) == b"PK\x03\x04"


def test_read_upload_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="not found"):
        read_upload(tmp_path / "nope.csv")


def test_read_upload_rejects_directory_path(tmp_path: Path) -> None:
    input_dir = tmp_path / "fake.csv"
    input_dir.mkdir()

    with pytest.raises(ValueError, match="not a file"):
        read_upload(input_dir)


# ── PandasTableParser ────────────────────────────────────────────


def test_parse_text_sniffs_delimiter_and_keeps_strings() -> None:
    rows = PandasTableParser().parse_text("Sales Level 6;SDR Name\nWest-1;Alice\n007;Bob\n")

    assert rows == [
        {"Sales Level 6": "West-1", "SDR Name": "Alice"},
        {"Sales Level 6": "007", "SDR Name": "Bob"},
    ]


def test_parse_text_uses_sniffing_and_string_dtype(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []

    def _fake_read_csv(source: object, **kwargs: object) -> pd.DataFrame:
        calls.append(kwargs)
        return pd.DataFrame({"a": ["1"]})

    monkeypatch.setattr(pd, "read_csv", _fake_read_csv)

    rows = PandasTableParser().parse_text("a\n1\n")

    assert rows == [{"a": "1"}]
    assert calls[0]["dtype"] == "string"
    assert calls[0]["sep"] is None
    assert calls[0]["engine"] == "python"


def test_parse_text_with_delimiter_uses_explicit_sep_and_c_engine(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[dict[str, object]] = []

    def _fake_read_csv(source: object, **kwargs: object) -> pd.DataFrame:
        calls.append(kwargs)
        return pd.DataFrame({"a": ["1"], "b": ["2"]})

    monkeypatch.setattr(pd, "read_csv", _fake_read_csv)

    PandasTableParser(delimiter="|").parse_text("a|b\n1|2\n")

    assert calls[0]["sep"] == "|"
    assert calls[0]["engine"] == "c"


def test_parse_text_blank_cells_become_na() -> None:
    rows = PandasTableParser(delimiter=",").parse_text("Sales Level 6,SDR\nWest-1,\n")

    assert rows[0]["Sales Level 6"] == "West-1"
    assert rows[0]["SDR"] is pd.NA


def test_parse_text_empty_document_yields_no_rows() -> None:
    assert PandasTableParser().parse_text("") == []


def test_parse_text_header_only_yields_no_rows() -> None:
    assert PandasTableParser(delimiter=",").parse_text("Sales Level 6,SDR\n") == []


def test_parse_text_wraps_parser_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fake_read_csv(source: object, **kwargs: object) -> pd.DataFrame:
        del source, kwargs
        raise pd.errors.ParserError("malformed csv")

    monkeypatch.setattr(pd, "read_csv", _fake_read_csv)

    with pytest.raises(TableParseError, match="malformed csv"):
        PandasTableParser().parse_text('not,a,valid"\n')


def test_parse_buffer_reads_first_sheet_only() -> None:
    data = _xlsx_bytes(
        [["Sales Level 6", "SDR Name"], ["West-1", "Alice"], [12345, "Bob"]],
        [["Sales Level 6", "SDR Name"], ["Hidden", "Mallory"]],
    )

    rows = PandasTableParser().parse_buffer(data)

    assert [row["SDR Name"] for row in rows] == ["Alice", "Bob"]
    assert rows[1]["Sales Level 6"] == "12345"


def test_parse_buffer_passes_first_sheet_and_string_dtype(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[dict[str, object]] = []

    def _fake_read_excel(source: object, **kwargs: object) -> pd.DataFrame:
        calls.append({"source": source, **kwargs})
        return pd.DataFrame({"a": ["1"]})

    monkeypatch.setattr(pd, "read_excel", _fake_read_excel)

    PandasTableParser().parse_buffer(b"x")

    assert isinstance(calls[0]["source"], io.BytesIO)
    assert calls[0]["sheet_name"] == 0
    assert calls[0]["dtype"] == "string"


def test_parse_buffer_missing_xlrd_raises_friendly_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _fake_read_excel(source: object, **kwargs: object) -> pd.DataFrame:
        del source, kwargs
        raise ImportError("No module named xlrd")

    monkeypatch.setattr(pd, "read_excel", _fake_read_excel)

    with pytest.raises(TableParseError, match="xlrd"):
        PandasTableParser().parse_buffer(b"\xd0\xcf\x11\xe0")


def test_parse_buffer_garbage_raises_table_parse_error() -> None:
    with pytest.raises(TableParseError):
        PandasTableParser().parse_buffer(b"this is not a workbook")


def test_table_parse_error_is_value_error() -> None:
    assert issubclass(TableParseError, ValueError)


def test_parser_ready_when_openpyxl_installed() -> None:
    assert PandasTableParser().ready is True


def test_parse_text_keeps_literal_null_words() -> None:
    rows = PandasTableParser(delimiter=",").parse_text(
        "Sales Level 6,SDR Name,Notes\nNA,Alice,None\nNULL,Bob,nan\nN/A,Cara,\n"
    )

    assert [row["Sales Level 6"] for row in rows] == ["NA", "NULL", "N/A"]
    assert [row["Notes"] for row in rows[:2]] == ["None", "nan"]
    assert rows[2]["Notes"] is pd.NA


def test_parse_text_disables_default_na_strings(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []

    def _fake_read_csv(source: object, **kwargs: object) -> pd.DataFrame:
        calls.append(kwargs)
        return pd.DataFrame({"a": ["1"]})

    monkeypatch.setattr(pd, "read_csv", _fake_read_csv)

    PandasTableParser().parse_text("a\n1\n")

    assert calls[0]["keep_default_na"] is False
    assert calls[0]["na_values"] == [""]


def test_parse_buffer_keeps_literal_null_words() -> None:
    data = _xlsx_bytes([["Sales Level 6", "SDR Name"], ["NA", "Alice"], ["NULL", None]])

    rows = PandasTableParser().parse_buffer(data)

    assert [row["Sales Level 6"] for row in rows] == ["NA", "NULL"]
    assert rows[0]["SDR Name"] == "Alice"
    assert rows[1]["SDR Name"] is pd.NA


# ── write_json ───────────────────────────────────────────────────


def test_write_json_is_atomic_and_deterministic(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "artifact.json"
    payload = {
        "b": 1,
        "a": datetime(2024, 1, 2, 3, 4, 5),
        "path": Path("foo/bar"),
    }

    out = write_json(path, payload)

    assert out == path
    text = path.read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert '"a": "2024-01-02T03:04:05"' in text
    assert '"path": "foo/bar"' in text
    assert text.index('"a"') < text.index('"b"') < text.index('"path"')
    assert not path.with_suffix(path.suffix + ".tmp").exists()


def test_write_json_serializes_query_results(tmp_path: Path) -> None:
    path = tmp_path / "results.json"

    write_json(path, {"results": [QueryResult("West-1", "Alice")]})

    text = path.read_text(encoding="utf-8")
    assert '"territoryKey": "West-1"' in text
    assert '"ownerName": "Alice"' in text


def test_write_json_raises_on_unknown_type(tmp_path: Path) -> None:
    class Unknown:
        pass

    with pytest.raises(TypeError, match="not JSON serializable"):
        write_json(tmp_path / "artifact.json", {"x": Unknown()})
