"""End-to-end tests for the upload pipeline."""

from pathlib import Path

import pytest
from conftest import (
    BANK_STATEMENT_TEXT,
    MORTGAGE_APPLICATION_TEXT,
    FakeOCREngine,
)

from docguardian.compliance.rules import DEFAULT_RULES
from docguardian.errors import DocumentNotFoundError, OCREngineUnavailableError
from docguardian.extraction.field_extractor import FieldExtractor
from docguardian.pipeline import DocumentPipeline, is_verified
from docguardian.schemas import (
    Document,
    DocumentType,
    ExtractionMetadata,
    Issue,
    IssueSeverity,
    StageId,
)
from docguardian.utils.config import AppConfig
from docguardian.validation.field_validator import validate_extracted_fields
from docguardian.validation.issue_analyzer import EDITED_WARNING


def _pipeline(store, engine: FakeOCREngine) -> DocumentPipeline:
    return DocumentPipeline(AppConfig(), store=store, ocr_engine=engine)


class TestIsVerified:
    """Tests for the verified rule."""

    def test_complete_without_errors(self) -> None:
        report = validate_extracted_fields({}, DocumentType.GENERIC)
        warning = Issue(severity=IssueSeverity.WARNING, message="w")
        assert is_verified(report, [warning]) is True

    def test_error_blocks_verification(self) -> None:
        report = validate_extracted_fields({}, DocumentType.GENERIC)
        error = Issue(severity=IssueSeverity.ERROR, message="e")
        assert is_verified(report, [error]) is False

    def test_incomplete_blocks_verification(self) -> None:
        report = validate_extracted_fields({}, DocumentType.BANK_STATEMENT)
        assert is_verified(report, []) is False


class TestProcessUpload:
    """Tests for DocumentPipeline.process_upload."""

    @pytest.mark.asyncio
    async def test_bank_statement_advances_asset_stage(
        self, store, make_application, png_bytes
    ) -> None:
        engine = FakeOCREngine(BANK_STATEMENT_TEXT, confidence=92.0)
        pipeline = _pipeline(store, engine)
        application = await store.insert_application(
            make_application(stage=StageId.ASSET_VERIFICATION)
        )

        outcome = await pipeline.process_upload(application.id, png_bytes, "march.png")

        assert engine.calls == 1
        assert outcome.success is True
        assert outcome.document_type == DocumentType.BANK_STATEMENT
        assert outcome.classification_confidence > 0.5
        assert outcome.completeness.completion_percentage == 100
        assert outcome.issues == []
        assert outcome.verified is True
        assert outcome.workflow.stage_changed is True
        assert outcome.workflow.stage_name == "Underwriting"

        [stored] = await store.select_documents(application.id)
        assert stored.id == outcome.document_id
        assert stored.filename == "march.png"
        assert stored.raw_text == BANK_STATEMENT_TEXT
        assert stored.ocr_confidence == 92.0
        assert stored.extracted_fields["balance"] == 45000.0
        assert stored.verified is True
        assert (await store.get_application(application.id)).stage == StageId.UNDERWRITING

    @pytest.mark.asyncio
    async def test_ocr_failure_recorded(self, store, make_application, png_bytes) -> None:
        engine = FakeOCREngine(error=OCREngineUnavailableError("tesseract is not installed"))
        pipeline = _pipeline(store, engine)
        application = await store.insert_application(make_application())

        outcome = await pipeline.process_upload(application.id, png_bytes)

        assert outcome.success is False
        assert outcome.workflow is None
        assert outcome.issues[0].severity == IssueSeverity.ERROR
        assert outcome.issues[0].message == "Text recognition failed: tesseract is not installed"
        [stored] = await store.select_documents(application.id)
        assert stored.issues == outcome.issues
        assert stored.processed_at is not None
        assert (await store.get_application(application.id)).stage == StageId.APPLICATION_INTAKE

    @pytest.mark.asyncio
    async def test_missing_file(self, store, make_application, tmp_path: Path) -> None:
        engine = FakeOCREngine(BANK_STATEMENT_TEXT)
        pipeline = _pipeline(store, engine)
        application = await store.insert_application(make_application())

        outcome = await pipeline.process_upload(application.id, tmp_path / "absent.png")

        assert outcome.success is False
        assert engine.calls == 0
        [stored] = await store.select_documents(application.id)
        assert stored.filename == "absent.png"

    @pytest.mark.asyncio
    async def test_unknown_application(self, store, png_bytes) -> None:
        engine = FakeOCREngine(BANK_STATEMENT_TEXT)
        pipeline = _pipeline(store, engine)

        outcome = await pipeline.process_upload("no-such-app", png_bytes, "statement.png")

        assert outcome.success is False
        assert outcome.document_id is None
        assert outcome.issues[0].severity == IssueSeverity.ERROR
        assert outcome.issues[0].message == (
            "Document could not be stored: Application not found: no-such-app"
        )
        assert engine.calls == 0

    @pytest.mark.asyncio
    async def test_registered_application_leaves_intake(
        self, store, make_application, png_bytes
    ) -> None:
        pipeline = _pipeline(store, FakeOCREngine(MORTGAGE_APPLICATION_TEXT))
        application = await pipeline.register_application(make_application())

        outcome = await pipeline.process_upload(application.id, png_bytes, "application.png")

        assert outcome.document_type == DocumentType.MORTGAGE_APPLICATION
        assert outcome.workflow.stage == StageId.IDENTITY_VERIFICATION


class TestProcessText:
    """Tests for DocumentPipeline.process_text."""

    @pytest.mark.asyncio
    async def test_unclassifiable_text_is_generic(self, store, make_application) -> None:
        pipeline = _pipeline(store, FakeOCREngine())
        application = await store.insert_application(make_application())
        document = await store.insert_document(Document(application_id=application.id))

        outcome = await pipeline.process_text(document, "lorem ipsum dolor", 95.0)

        assert outcome.document_type == DocumentType.GENERIC
        assert outcome.classification_confidence == 0.1
        assert outcome.completeness.is_complete is True
        assert outcome.workflow.stage == StageId.APPLICATION_INTAKE
        assert any(a.startswith("Documents requested") for a in outcome.workflow.actions)


class TestReviewDocument:
    """Tests for reviewer overrides."""

    @pytest.mark.asyncio
    async def test_override_flags_edit(self, store, make_application) -> None:
        pipeline = _pipeline(store, FakeOCREngine())
        application = await store.insert_application(make_application())
        fields = FieldExtractor().extract(
            BANK_STATEMENT_TEXT, DocumentType.BANK_STATEMENT, 92.0
        )
        document = await store.insert_document(
            Document(
                application_id=application.id,
                document_type=DocumentType.BANK_STATEMENT,
                extracted_fields=fields,
                verified=True,
            )
        )

        updated = await pipeline.review_document(
            application.id, document.id, {"balance": 50000.0}
        )

        assert updated.extracted_fields["balance"] == 50000.0
        metadata = ExtractionMetadata.model_validate_json(updated.extracted_fields["metadata"])
        assert metadata.edited is True
        assert [i.message for i in updated.issues] == [EDITED_WARNING]
        assert updated.verified is True

    @pytest.mark.asyncio
    async def test_unknown_document(self, store, make_application) -> None:
        pipeline = _pipeline(store, FakeOCREngine())
        application = await store.insert_application(make_application())
        with pytest.raises(DocumentNotFoundError):
            await pipeline.review_document(application.id, "missing", {"balance": 1.0})


class TestComplianceAndStatus:
    """Tests for the compliance and status entry points."""

    @pytest.mark.asyncio
    async def test_compliance_checks_persisted(self, store, make_application, png_bytes) -> None:
        pipeline = _pipeline(store, FakeOCREngine(BANK_STATEMENT_TEXT))
        application = await store.insert_application(make_application())
        await pipeline.process_upload(application.id, png_bytes)

        report = await pipeline.evaluate_compliance(application.id)

        stored = await store.get_application(application.id)
        assert [c.rule_id for c in stored.compliance_checks] == [r.id for r in DEFAULT_RULES]
        assert stored.compliance_checks == report.checks

    @pytest.mark.asyncio
    async def test_workflow_status(self, store, make_application) -> None:
        pipeline = _pipeline(store, FakeOCREngine())
        application = await pipeline.register_application(make_application())

        status = await pipeline.get_workflow_status(application.id)

        assert status.stage == StageId.APPLICATION_INTAKE
        assert status.progress == 14
        assert status.blockers == ["Missing required document: Mortgage Application"]
