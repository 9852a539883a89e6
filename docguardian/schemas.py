"""Pydantic records and enumerations shared across the pipeline."""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

METADATA_KEY = "metadata"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


class DocumentType(StrEnum):
    """Closed set of document categories understood by the pipeline."""

    MORTGAGE_APPLICATION = "mortgage_application"
    INCOME_PROOF = "income_proof"
    BANK_STATEMENT = "bank_statement"
    IDENTIFICATION = "identification"
    TAX_DOCUMENT = "tax_document"
    GENERIC = "generic"


DOCUMENT_TYPE_LABELS: dict[DocumentType, str] = {
    DocumentType.MORTGAGE_APPLICATION: "Mortgage Application",
    DocumentType.INCOME_PROOF: "Proof of Income",
    DocumentType.BANK_STATEMENT: "Bank Statement",
    DocumentType.IDENTIFICATION: "Government-Issued ID",
    DocumentType.TAX_DOCUMENT: "Tax Document",
    DocumentType.GENERIC: "Other Document",
}


class IssueSeverity(StrEnum):
    """Severity of a finding raised against a document."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ApplicationStatus(StrEnum):
    """Lifecycle status of a mortgage application."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    ON_HOLD = "on_hold"


class StageId(StrEnum):
    """Identifiers of the ordered processing stages."""

    APPLICATION_INTAKE = "application_intake"
    IDENTITY_VERIFICATION = "identity_verification"
    INCOME_VERIFICATION = "income_verification"
    ASSET_VERIFICATION = "asset_verification"
    UNDERWRITING = "underwriting"
    APPROVAL = "approval"
    CLOSING = "closing"


class RegulatoryBody(StrEnum):
    """Regulators whose rules the compliance engine evaluates."""

    FINANCIAL_CONDUCT = "financial_conduct"
    TRANSACTION_REPORTING = "transaction_reporting"
    PRUDENTIAL = "prudential"
    MORTGAGE_INSURANCE = "mortgage_insurance"


class ComplianceStatus(StrEnum):
    """Outcome of a single compliance rule."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class Issue(BaseModel):
    """A severity-tagged finding produced while analysing a document."""

    model_config = ConfigDict(frozen=True)

    severity: IssueSeverity
    message: str


class ExtractionMetadata(BaseModel):
    """Bookkeeping attached to every extracted-field map."""

    processed: datetime = Field(default_factory=utcnow)
    confidence: int = Field(ge=0, le=100)
    edited: bool = False


class Document(BaseModel):
    """An uploaded document owned by one application."""

    id: str = Field(default_factory=new_id)
    application_id: str
    document_type: DocumentType = DocumentType.GENERIC
    filename: str = "document"
    uploaded_at: datetime = Field(default_factory=utcnow)
    processed_at: datetime | None = None
    raw_text: str = ""
    ocr_confidence: float | None = None
    extracted_fields: dict[str, str | float] = Field(default_factory=dict)
    issues: list[Issue] = Field(default_factory=list)
    verified: bool = False


class ComplianceCheck(BaseModel):
    """Result of one compliance rule for one evaluation run."""

    rule_id: str
    body: RegulatoryBody
    status: ComplianceStatus
    description: str
    checked_at: datetime = Field(default_factory=utcnow)
    notes: list[str] = Field(default_factory=list)


class Application(BaseModel):
    """A mortgage application and the documents uploaded for it."""

    id: str = Field(default_factory=new_id)
    applicant_name: str = ""
    email: str = ""
    phone: str = ""
    property_address: str = ""
    annual_income: float | None = Field(default=None, ge=0)
    purchase_price: float = Field(default=0.0, ge=0)
    down_payment: float = Field(default=0.0, ge=0)
    loan_amount: float = Field(default=0.0, ge=0)
    stage: StageId = StageId.APPLICATION_INTAKE
    status: ApplicationStatus = ApplicationStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    documents: list[Document] = Field(default_factory=list)
    compliance_checks: list[ComplianceCheck] = Field(default_factory=list)
    blockers: list[str] = Field(default_factory=list)
    next_actions: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
