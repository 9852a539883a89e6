"""Contract for the application/document storage collaborator."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from docguardian.schemas import Application, Document, DocumentType


@dataclass(frozen=True)
class ChangeEvent:
    """Notification that a stored record changed."""

    kind: str
    application_id: str
    record_id: str


ChangeCallback = Callable[[ChangeEvent], None]


class DocumentStore(Protocol):
    """Async persistence for applications and their documents.

    Implementations raise :class:`docguardian.errors.StorageError`
    subclasses on failure.
    """

    async def insert_application(self, application: Application) -> Application: ...

    async def get_application(self, application_id: str) -> Application: ...

    async def update_application(
        self, application_id: str, changes: dict[str, Any]
    ) -> Application: ...

    async def insert_document(self, document: Document) -> Document: ...

    async def update_document(self, document_id: str, changes: dict[str, Any]) -> Document: ...

    async def select_documents(
        self,
        application_id: str,
        document_types: Iterable[DocumentType] | None = None,
    ) -> list[Document]: ...

    def subscribe(self, application_id: str, callback: ChangeCallback) -> Callable[[], None]: ...
