from __future__ import annotations

from pathlib import Path

import pytest

from statement_ingest.categorize import RuleCategorizer
from statement_ingest.config import Settings
from statement_ingest.ingest import IngestionService
from statement_ingest.store import InMemoryLedgerStore


SAMPLES = Path(__file__).resolve().parents[1] / "samples"


def read_sample(name: str) -> str:
    path = SAMPLES / name
    assert path.exists(), f"No existe el sample: {path}"
    return path.read_text(encoding="utf-8")


@pytest.fixture
def load_sample():
    return read_sample


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(UPLOAD_DIR=tmp_path / "uploads", PROCESSED_DIR=tmp_path / "processed")


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def service(store: InMemoryLedgerStore, settings: Settings) -> IngestionService:
    return IngestionService(store, RuleCategorizer(store, settings=settings), settings=settings)


@pytest.fixture
def write_file(tmp_path: Path):
    """Escribe un archivo de prueba en tmp_path y devuelve su ruta."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
