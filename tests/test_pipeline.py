from __future__ import annotations

import json
from pathlib import Path

import pytest

from statement_ingest import pipeline


SAMPLES = Path(__file__).resolve().parents[1] / "samples"


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    # la CLI reconfigura el logger del paquete; en tests se deja el de pytest
    monkeypatch.setattr(pipeline, "configure_logging", lambda level: None)


def test_cli_imports_and_writes_json(tmp_path, capsys):
    out = tmp_path / "out" / "result.json"
    code = pipeline.main([str(SAMPLES / "checking_export.csv"), str(SAMPLES / "generic_march.txt"), "--out", str(out)])

    assert code == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert [r["file"] for r in payload["results"]] == ["checking_export.csv", "generic_march.txt"]
    assert len(payload["transactions"]) == 6
    assert len(payload["statements"]) == 2
    # ambos archivos caen en la misma cuenta checking
    assert len(payload["accounts"]) == 1

    printed = capsys.readouterr().out
    assert "Transacciones importadas: 6" in printed


def test_cli_credit_card_with_bank(capsys):
    code = pipeline.main([str(SAMPLES / "td_credit_card.txt"), "--account-type", "CREDIT_CARD", "--bank", "TD Bank"])
    assert code == 0
    assert "Transacciones importadas: 2" in capsys.readouterr().out


def test_cli_exit_code_on_error(tmp_path, capsys):
    code = pipeline.main([str(tmp_path / "missing.csv")])

    assert code == 1
    printed = capsys.readouterr().out
    assert "No existe el archivo" in printed
