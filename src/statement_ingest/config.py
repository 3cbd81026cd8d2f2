from __future__ import annotations

from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_prefix="STATEMENT_INGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Directorios de trabajo (uploads pendientes / archivos ya procesados)
    UPLOAD_DIR: Path = Path("data/uploads")
    PROCESSED_DIR: Path = Path("data/processed")

    # Validación de uploads
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    SUPPORTED_EXTENSIONS: List[str] = [".csv", ".xls", ".xlsx", ".txt", ".pdf"]

    # Extracción / parsing
    PDF_MAX_PAGES: int = 10
    # largo máximo de la descripción guardada (los parsers nunca pasan de 255)
    MAX_DESCRIPTION_LENGTH: int = Field(255, ge=1, le=255)

    # Categorización
    NEEDS_REVIEW_CATEGORY: str = "Needs Review"
    REVIEW_CONFIDENCE_THRESHOLD: float = 0.8

    LOG_LEVEL: str = "INFO"


settings = Settings()
