from __future__ import annotations

import pytest

from statement_ingest.streams import ColumnStreams, merge_continuations


def _starts_code(line: str) -> bool:
    return line.startswith(("ACH DEPOSIT", "ELECTRONIC PMT"))


def test_zip_rows_pairs_by_position():
    streams = ColumnStreams("date", "amount")
    streams.extend("date", ["03/01", "03/02"])
    streams.push("amount", 1.0)
    streams.push("amount", 2.0)

    assert streams.zip_rows() == [{"date": "03/01", "amount": 1.0}, {"date": "03/02", "amount": 2.0}]


def test_zip_rows_mismatch_logs_warning(caplog):
    streams = ColumnStreams("date", "amount")
    streams.extend("date", ["03/01", "03/02", "03/03"])
    streams.push("amount", 1.0)

    rows = streams.zip_rows()
    assert len(rows) == 1, "Se empareja hasta la columna más corta"
    events = [r for r in caplog.records if getattr(r, "event", None) == "column_streams_mismatch"]
    assert events and events[0].lengths == {"date": 3, "amount": 1}


def test_clear_and_has_all():
    streams = ColumnStreams("a", "b")
    streams.push("a", 1)
    assert not streams.has_all()
    streams.push("b", 2)
    assert streams.has_all()
    streams.clear()
    assert streams.lengths() == {"a": 0, "b": 0}


def test_column_streams_requires_names():
    with pytest.raises(ValueError):
        ColumnStreams()


def test_merge_continuations_joins_short_followups():
    lines = ["ELECTRONIC PMT-WEB COMCAST", "CABLE SERVICE", "ELECTRONIC PMT-WEB PECO ENERGY"]
    merged = merge_continuations(lines, slots=2, starts_new=_starts_code)
    assert merged == ["ELECTRONIC PMT-WEB COMCAST CABLE SERVICE", "ELECTRONIC PMT-WEB PECO ENERGY"]


def test_merge_continuations_keeps_lines_for_remaining_slots():
    # 3 descripciones sin prefijo para 3 fechas: no se puede fusionar nada
    lines = ["COFFEE", "BAKERY", "GROCER"]
    assert merge_continuations(lines, slots=3, starts_new=_starts_code) == lines


def test_merge_continuations_limits():
    long_line = "X" * 60
    # una línea larga no es continuación
    assert merge_continuations(["PAYEE ONE", long_line], slots=1, starts_new=_starts_code) == ["PAYEE ONE"]

    many = ["HEAD", "c1", "c2", "c3", "c4"]
    # a lo sumo 2 líneas de continuación por descripción
    assert merge_continuations(many, slots=1, starts_new=_starts_code) == ["HEAD c1 c2"]
