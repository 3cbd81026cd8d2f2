from __future__ import annotations

import datetime
import uuid
from pathlib import Path
from typing import Optional, Tuple

from .config import Settings, settings as default_settings
from .errors import UploadRejectedError


def validate_upload(name: str, size: int, settings: Optional[Settings] = None) -> str:
    """Devuelve la extensión (en minúsculas) si el archivo es aceptable."""
    cfg = settings or default_settings
    ext = Path(name).suffix.lower()
    if ext not in cfg.SUPPORTED_EXTENSIONS:
        raise UploadRejectedError(
            f"Tipo de archivo no permitido: {ext or name}. "
            f"Permitidos: {', '.join(cfg.SUPPORTED_EXTENSIONS)}"
        )
    if size <= 0:
        raise UploadRejectedError("El archivo está vacío")
    if size > cfg.MAX_FILE_SIZE:
        raise UploadRejectedError(
            f"El archivo excede el tamaño máximo ({size} > {cfg.MAX_FILE_SIZE} bytes)"
        )
    return ext


def unique_filename(original: str) -> str:
    # 'estado marzo.pdf' -> 'estado_marzo_20240301T101500_1a2b3c4d.pdf'
    p = Path(original)
    stem = "_".join(p.stem.split()) or "upload"
    stamp = datetime.datetime.now().strftime("%Y%m%dT%H%M%S")
    return f"{stem}_{stamp}_{uuid.uuid4().hex[:8]}{p.suffix.lower()}"


def save_upload(content: bytes, original_name: str, settings: Optional[Settings] = None) -> Tuple[str, Path]:
    cfg = settings or default_settings
    validate_upload(original_name, len(content), cfg)

    upload_dir = Path(cfg.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    filename = unique_filename(original_name)
    path = upload_dir / filename
    path.write_bytes(content)
    return filename, path


def move_to_processed(path: Path, settings: Optional[Settings] = None) -> Path:
    cfg = settings or default_settings
    processed_dir = Path(cfg.PROCESSED_DIR)
    processed_dir.mkdir(parents=True, exist_ok=True)
    target = processed_dir / Path(path).name
    Path(path).replace(target)
    return target
