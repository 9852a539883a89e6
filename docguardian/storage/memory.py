"""In-process reference implementation of the storage collaborator.

Records are copied on the way in and out so callers never share mutable
state with the store.
"""

from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import Any

from docguardian.errors import ApplicationNotFoundError, DocumentNotFoundError
from docguardian.schemas import Application, Document, DocumentType, utcnow
from docguardian.storage.base import ChangeCallback, ChangeEvent
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryDocumentStore:
    """Dictionary-backed :class:`~docguardian.storage.base.DocumentStore`."""

    def __init__(self) -> None:
        self._applications: dict[str, Application] = {}
        self._documents: dict[str, Document] = {}
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)

    async def insert_application(self, application: Application) -> Application:
        stored = application.model_copy(deep=True, update={"documents": []})
        self._applications[stored.id] = stored
        for document in application.documents:
            await self.insert_document(document.model_copy(update={"application_id": stored.id}))
        logger.debug("Inserted application %s", stored.id)
        return await self.get_application(stored.id)

    async def get_application(self, application_id: str) -> Application:
        application = self._applications.get(application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        documents = await self.select_documents(application_id)
        return application.model_copy(deep=True, update={"documents": documents})

    async def update_application(
        self, application_id: str, changes: dict[str, Any]
    ) -> Application:
        current = self._applications.get(application_id)
        if current is None:
            raise ApplicationNotFoundError(application_id)
        payload = current.model_dump()
        payload.update({k: v for k, v in changes.items() if k != "documents"})
        if "updated_at" not in changes:
            payload["updated_at"] = utcnow()
        self._applications[application_id] = Application.model_validate(payload)
        self._notify(ChangeEvent("application", application_id, application_id))
        return await self.get_application(application_id)

    async def insert_document(self, document: Document) -> Document:
        if document.application_id not in self._applications:
            raise ApplicationNotFoundError(document.application_id)
        self._documents[document.id] = document.model_copy(deep=True)
        self._notify(ChangeEvent("document", document.application_id, document.id))
        return document.model_copy(deep=True)

    async def update_document(self, document_id: str, changes: dict[str, Any]) -> Document:
        current = self._documents.get(document_id)
        if current is None:
            raise DocumentNotFoundError(document_id)
        payload = current.model_dump()
        payload.update(changes)
        updated = Document.model_validate(payload)
        self._documents[document_id] = updated
        self._notify(ChangeEvent("document", updated.application_id, document_id))
        return updated.model_copy(deep=True)

    async def select_documents(
        self,
        application_id: str,
        document_types: Iterable[DocumentType] | None = None,
    ) -> list[Document]:
        wanted = set(document_types) if document_types is not None else None
        selected = [
            d.model_copy(deep=True)
            for d in self._documents.values()
            if d.application_id == application_id
            and (wanted is None or d.document_type in wanted)
        ]
        return sorted(selected, key=lambda d: d.uploaded_at)

    def subscribe(self, application_id: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register ``callback`` for changes to one application.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers[application_id].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[application_id]:
                self._subscribers[application_id].remove(callback)

        return unsubscribe

    def _notify(self, event: ChangeEvent) -> None:
        for callback in list(self._subscribers.get(event.application_id, ())):
            try:
                callback(event)
            except Exception:
                logger.exception("Change subscriber failed for %s", event.application_id)
