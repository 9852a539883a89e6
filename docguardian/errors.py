"""Exceptions raised by DocGuardian's external collaborators."""


class DocGuardianError(Exception):
    """Base class for all DocGuardian errors."""


class OCRError(DocGuardianError):
    """Text recognition could not be performed."""


class OCREngineUnavailableError(OCRError):
    """The OCR engine binary or service cannot be reached."""


class OCRModelLoadError(OCRError):
    """The OCR engine is present but its language model failed to load."""


class StorageError(DocGuardianError):
    """The storage collaborator failed to read or write a record."""


class ApplicationNotFoundError(StorageError):
    """No application exists with the requested id."""

    def __init__(self, application_id: str) -> None:
        super().__init__(f"Application not found: {application_id}")
        self.application_id = application_id


class DocumentNotFoundError(StorageError):
    """No document exists with the requested id."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id
