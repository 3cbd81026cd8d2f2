from __future__ import annotations

import re

import pytest

from statement_ingest.config import Settings
from statement_ingest.errors import UploadRejectedError
from statement_ingest.uploads import move_to_processed, save_upload, unique_filename, validate_upload


def test_validate_upload_accepts_supported(settings):
    assert validate_upload("Statement.PDF", 100, settings) == ".pdf"
    assert validate_upload("export.csv", 1, settings) == ".csv"


@pytest.mark.parametrize(
    "name, size, message",
    [
        ("photo.png", 10, "Tipo de archivo no permitido"),
        ("noext", 10, "Tipo de archivo no permitido"),
        ("empty.csv", 0, "El archivo está vacío"),
    ],
)
def test_validate_upload_rejects(settings, name, size, message):
    with pytest.raises(UploadRejectedError, match=message):
        validate_upload(name, size, settings)


def test_validate_upload_size_limit(tmp_path):
    small = Settings(UPLOAD_DIR=tmp_path, PROCESSED_DIR=tmp_path, MAX_FILE_SIZE=10)
    validate_upload("a.csv", 10, small)
    with pytest.raises(UploadRejectedError, match="tamaño máximo"):
        validate_upload("a.csv", 11, small)


def test_unique_filename():
    first = unique_filename("estado marzo.PDF")
    second = unique_filename("estado marzo.PDF")

    assert re.fullmatch(r"estado_marzo_\d{8}T\d{6}_[0-9a-f]{8}\.pdf", first)
    assert first != second


def test_save_and_move(settings):
    filename, path = save_upload(b"Date,Description,Amount\n", "export.csv", settings)

    assert path.exists()
    assert path.name == filename
    assert path.parent == settings.UPLOAD_DIR

    moved = move_to_processed(path, settings)
    assert moved.exists()
    assert not path.exists()
    assert moved.parent == settings.PROCESSED_DIR
    assert moved.read_bytes() == b"Date,Description,Amount\n"


def test_save_rejects_before_writing(settings):
    with pytest.raises(UploadRejectedError):
        save_upload(b"", "empty.csv", settings)
    assert not settings.UPLOAD_DIR.exists()
