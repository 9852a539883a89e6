"""Shared test fixtures for the DocGuardian test suite."""

import io
from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from docguardian.ocr.tesseract_engine import OCRResult
from docguardian.schemas import (
    Application,
    Document,
    DocumentType,
    ExtractionMetadata,
    StageId,
)
from docguardian.storage.memory import InMemoryDocumentStore

PAY_STUB_TEXT = (
    "ACME Corporation Inc.\n"
    "Employee Pay Stub\n"
    "Pay Date: 03/15/2024\n"
    "Employer: ACME Corporation Inc.\n"
    "Gross Pay: $4,250.00\n"
    "Net Pay: $3,100.00\n"
    "Year to Date Earnings: $25,500.00\n"
    "Salary and wages per payroll period\n"
)

BANK_STATEMENT_TEXT = (
    "First National Bank\n"
    "Bank Statement\n"
    "Account Number: 1234-5678-9012\n"
    "Statement Date: 03/31/2024\n"
    "Beginning Balance: $45,000.00\n"
    "Deposit: $3,200.00\n"
    "Withdrawal: $1,800.00\n"
    "Transaction count: 2\n"
)

ID_TEXT = (
    "Province of Ontario\n"
    "Driver License\n"
    "Name: Jane Doe\n"
    "Date of Birth: 1985-04-12\n"
    "License Number: D1234-56789-01234\n"
    "Address: 123 Main Street, Toronto\n"
    "Expiry Date: 2029-04-12\n"
    "Identification document\n"
)

MORTGAGE_APPLICATION_TEXT = (
    "Mortgage Application\n"
    "Borrower Name: Jane Doe\n"
    "SIN: 123-456-789\n"
    "Marital Status: Married\n"
    "Property Address: 45 Elm Street, Toronto\n"
    "Employer: ACME Corporation Inc.\n"
    "Annual Income: $120,000.00\n"
    "Purchase Price: $500,000.00\n"
    "Down Payment: $60,000.00\n"
    "Loan Amount: $440,000.00\n"
    "Lender: Maple Trust\n"
)

TAX_TEXT = (
    "Notice of Assessment\n"
    "Tax Year: 2023\n"
    "SIN: 123 456 789\n"
    "Total Income: $118,500.00\n"
    "Employment income reported on T4 slips\n"
)


class FakeOCREngine:
    """OCR collaborator returning canned text, or raising a canned error."""

    def __init__(
        self, text: str = "", confidence: float = 92.0, error: Exception | None = None
    ) -> None:
        self.text = text
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def recognize(self, image: np.ndarray) -> OCRResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return OCRResult(text=self.text, confidence=self.confidence)


def metadata_json(confidence: int = 90, edited: bool = False) -> str:
    """Serialised extraction metadata for hand-built field maps."""
    return ExtractionMetadata(confidence=confidence, edited=edited).model_dump_json()


def make_document(
    application_id: str,
    document_type: DocumentType,
    verified: bool = True,
    **fields: str | float,
) -> Document:
    """Build a processed document with the given extracted fields."""
    extracted: dict[str, str | float] = {"metadata": metadata_json()}
    extracted.update(fields)
    return Document(
        application_id=application_id,
        document_type=document_type,
        filename=f"{document_type.value}.pdf",
        extracted_fields=extracted,
        verified=verified,
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def make_application() -> Callable[..., Application]:
    """Factory for applications with sensible mortgage figures."""

    def factory(**overrides) -> Application:
        values = {
            "applicant_name": "Jane Doe",
            "email": "jane.doe@example.com",
            "phone": "416-555-0199",
            "property_address": "45 Elm Street, Toronto",
            "purchase_price": 500_000.0,
            "down_payment": 60_000.0,
            "loan_amount": 440_000.0,
            "stage": StageId.APPLICATION_INTAKE,
        }
        values.update(overrides)
        return Application(**values)

    return factory


@pytest.fixture
def png_bytes() -> bytes:
    """A small blank PNG upload."""
    buffer = io.BytesIO()
    Image.new("L", (60, 40), color=255).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
