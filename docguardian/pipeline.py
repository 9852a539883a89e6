"""Upload-handling facade wiring OCR, the read components and the engines.

Typical use::

    pipeline = DocumentPipeline(load_config())
    application = await pipeline.register_application(Application(...))
    outcome = await pipeline.process_upload(application.id, Path("stub.pdf"))
    report = await pipeline.evaluate_compliance(application.id)
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from docguardian.classification.classifier import DocumentClassifier
from docguardian.compliance.engine import ComplianceEngine, ComplianceReport
from docguardian.compliance.rules import DEFAULT_RULES
from docguardian.errors import DocumentNotFoundError, OCRError, StorageError
from docguardian.extraction.field_extractor import FieldExtractor, mark_edited
from docguardian.ocr.tesseract_engine import (
    OCREngine,
    TesseractEngine,
    load_pages,
    recognize_document,
)
from docguardian.schemas import (
    Application,
    Document,
    DocumentType,
    Issue,
    IssueSeverity,
    utcnow,
)
from docguardian.storage.base import DocumentStore
from docguardian.storage.memory import InMemoryDocumentStore
from docguardian.utils.config import AppConfig, load_config
from docguardian.utils.logger import get_logger, setup_logging
from docguardian.validation.field_validator import (
    CompletenessReport,
    validate_extracted_fields,
)
from docguardian.validation.issue_analyzer import IssueAnalyzer
from docguardian.workflow.engine import WorkflowEngine, WorkflowResult, WorkflowStatus
from docguardian.workflow.stages import load_stages

logger = get_logger(__name__)


@dataclass
class ProcessingOutcome:
    """Everything learned about one uploaded document."""

    document_id: str | None
    success: bool
    document_type: DocumentType = DocumentType.GENERIC
    classification_confidence: float = 0.0
    reasons: list[str] = field(default_factory=list)
    completeness: CompletenessReport | None = None
    issues: list[Issue] = field(default_factory=list)
    verified: bool = False
    workflow: WorkflowResult | None = None


def is_verified(completeness: CompletenessReport, issues: list[Issue]) -> bool:
    """A document is verified when complete and free of error-severity issues."""
    return completeness.is_complete and not any(
        issue.severity == IssueSeverity.ERROR for issue in issues
    )


class DocumentPipeline:
    """Processes uploads for mortgage applications end to end.

    Args:
        config: Application configuration. Loaded from the default
            location when omitted.
        store: Storage collaborator. Defaults to an in-memory store.
        ocr_engine: OCR collaborator. Defaults to Tesseract.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        store: DocumentStore | None = None,
        ocr_engine: OCREngine | None = None,
    ) -> None:
        self.config = config or load_config()
        setup_logging(self.config.log_level)

        self.store = store if store is not None else InMemoryDocumentStore()
        self.ocr_engine = ocr_engine or TesseractEngine.from_config(self.config.ocr)
        self.classifier = DocumentClassifier.from_config(self.config.classification)
        self.extractor = FieldExtractor.from_config(self.config.extraction)
        self.analyzer = IssueAnalyzer(self.config.analysis)
        self.workflow = WorkflowEngine(
            self.store,
            load_stages(Path(self.config.workflow.stages_path)),
            self.config.workflow,
        )
        self.compliance = ComplianceEngine(DEFAULT_RULES, self.config.compliance)

    async def register_application(self, application: Application) -> Application:
        return await self.workflow.register_application(application)

    async def process_upload(
        self,
        application_id: str,
        source: Path | bytes,
        filename: str | None = None,
    ) -> ProcessingOutcome:
        """Store an upload, recognise its text and process it.

        OCR runs in a worker thread. Recognition failures are recorded on
        the document as an error issue and reported as an unsuccessful
        outcome. An upload that cannot be stored, for example because the
        application does not exist, comes back unsuccessful with no
        document id.

        Args:
            application_id: Owning application.
            source: Path to the uploaded file, or its raw bytes.
            filename: Display name; defaults to the path's name.

        Returns:
            The processing outcome for the new document.
        """
        if filename is None:
            filename = source.name if isinstance(source, Path) else "document"
        try:
            document = await self.store.insert_document(
                Document(application_id=application_id, filename=filename)
            )
        except StorageError as exc:
            logger.error("Could not store %s for application %s: %s", filename, application_id, exc)
            issue = Issue(
                severity=IssueSeverity.ERROR, message=f"Document could not be stored: {exc}"
            )
            return ProcessingOutcome(document_id=None, success=False, issues=[issue])
        logger.info("Received %s for application %s", filename, application_id)

        try:
            pages = await asyncio.to_thread(load_pages, source, self.config.ocr.pdf_dpi)
            ocr = await asyncio.to_thread(recognize_document, self.ocr_engine, pages)
        except (OCRError, OSError) as exc:
            logger.error("Text recognition failed for %s: %s", filename, exc)
            issue = Issue(severity=IssueSeverity.ERROR, message=f"Text recognition failed: {exc}")
            await self.store.update_document(
                document.id, {"issues": [issue], "processed_at": utcnow()}
            )
            return ProcessingOutcome(document_id=document.id, success=False, issues=[issue])

        return await self.process_text(document, ocr.text, ocr.confidence)

    async def process_text(
        self, document: Document, text: str, ocr_confidence: float = 100.0
    ) -> ProcessingOutcome:
        """Classify, extract, validate and analyse recognised text.

        The resulting document is handed to the workflow engine, which
        persists it and evaluates the current stage's rules.

        Args:
            document: A stored document record.
            text: Recognised text.
            ocr_confidence: Recognition confidence (0-100).

        Returns:
            The processing outcome.
        """
        classification = self.classifier.classify(text, document.filename)
        document_type = classification.document_type
        fields = self.extractor.extract(text, document_type, ocr_confidence)
        completeness = validate_extracted_fields(fields, document_type)
        issues = self.analyzer.analyze(fields, document_type)
        verified = is_verified(completeness, issues)

        await self.store.update_document(
            document.id, {"raw_text": text, "ocr_confidence": ocr_confidence}
        )
        processed = document.model_copy(
            update={
                "document_type": document_type,
                "raw_text": text,
                "ocr_confidence": ocr_confidence,
                "extracted_fields": fields,
                "issues": issues,
                "verified": verified,
                "processed_at": utcnow(),
            }
        )
        result = await self.workflow.process_document(document.application_id, processed)

        logger.info(
            "Processed %s as %s (%.2f), %d%% complete, %d issue(s)",
            document.filename,
            document_type,
            classification.confidence,
            completeness.completion_percentage,
            len(issues),
        )
        return ProcessingOutcome(
            document_id=document.id,
            success=result.success,
            document_type=document_type,
            classification_confidence=classification.confidence,
            reasons=classification.reasons,
            completeness=completeness,
            issues=issues,
            verified=verified,
            workflow=result,
        )

    async def review_document(
        self, application_id: str, document_id: str, overrides: dict[str, Any]
    ) -> Document:
        """Apply a reviewer's corrections to a document's extracted fields.

        The document is re-validated and re-analysed; the edit itself is
        flagged so it surfaces as an issue and in compliance.

        Raises:
            DocumentNotFoundError: If the application has no such document.
        """
        documents = await self.store.select_documents(application_id)
        document = next((d for d in documents if d.id == document_id), None)
        if document is None:
            raise DocumentNotFoundError(document_id)

        fields = mark_edited(document.extracted_fields, overrides)
        completeness = validate_extracted_fields(fields, document.document_type)
        issues = self.analyzer.analyze(fields, document.document_type)
        logger.info("Document %s edited by reviewer: %s", document_id, sorted(overrides))
        return await self.store.update_document(
            document_id,
            {
                "extracted_fields": fields,
                "issues": issues,
                "verified": is_verified(completeness, issues),
            },
        )

    async def evaluate_compliance(self, application_id: str) -> ComplianceReport:
        """Run the compliance rules and store the checks on the application."""
        application = await self.store.get_application(application_id)
        report = self.compliance.evaluate(application)
        await self.store.update_application(
            application_id, {"compliance_checks": report.checks}
        )
        return report

    async def get_workflow_status(self, application_id: str) -> WorkflowStatus:
        return await self.workflow.get_workflow_status(application_id)
