from __future__ import annotations


class IngestionError(Exception):
    """Error base de la ingesta. El mensaje es el que ve el usuario."""


class DocumentNotFoundError(IngestionError):
    pass


class UnsupportedFileTypeError(IngestionError):
    def __init__(self, extension: str, supported: str = "CSV, PDF, TXT") -> None:
        self.extension = extension
        super().__init__(f"Tipo de archivo no soportado: {extension}. Formatos soportados: {supported}")


class EmptyDocumentError(IngestionError):
    pass


class UploadRejectedError(IngestionError):
    pass


class InvalidStateError(IngestionError):
    pass
