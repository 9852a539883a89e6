"""Fraud and inconsistency signals for extracted documents.

Every check runs independently; the returned issues follow the order in
which the checks are declared. A corrupt metadata record is reported as an
issue rather than raised.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from docguardian.schemas import (
    METADATA_KEY,
    DocumentType,
    ExtractionMetadata,
    Issue,
    IssueSeverity,
)
from docguardian.utils.config import AnalysisConfig
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)

METADATA_ERROR = "Cannot parse document metadata"
LOW_CONFIDENCE_WARNING = "Low confidence in extracted text, manual review recommended"
EDITED_WARNING = "Extracted values were edited after processing, verify against the original"


@dataclass(frozen=True)
class PresenceCheck:
    """A required-field presence check and the issue raised when it fails."""

    field: str
    severity: IssueSeverity
    message: str


PRESENCE_CHECKS: dict[DocumentType, tuple[PresenceCheck, ...]] = {
    DocumentType.INCOME_PROOF: (
        PresenceCheck("income", IssueSeverity.ERROR, "No income amount detected in document"),
        PresenceCheck(
            "statement_date", IssueSeverity.WARNING, "Statement date not found in document"
        ),
        PresenceCheck("employer", IssueSeverity.WARNING, "Employer name not found in document"),
    ),
    DocumentType.IDENTIFICATION: (
        PresenceCheck("name", IssueSeverity.ERROR, "No name detected in ID document"),
        PresenceCheck(
            "date_of_birth", IssueSeverity.ERROR, "Date of birth not found in ID document"
        ),
        PresenceCheck("id_number", IssueSeverity.WARNING, "ID number not clearly detected"),
    ),
    DocumentType.BANK_STATEMENT: (
        PresenceCheck("balance", IssueSeverity.ERROR, "No account balance detected in statement"),
        PresenceCheck(
            "statement_date", IssueSeverity.WARNING, "Statement date not found in document"
        ),
        PresenceCheck(
            "account_number", IssueSeverity.WARNING, "Account number not clearly detected"
        ),
    ),
    DocumentType.TAX_DOCUMENT: (
        PresenceCheck("income", IssueSeverity.ERROR, "No income amount detected in tax document"),
        PresenceCheck("year", IssueSeverity.WARNING, "Tax year not found in document"),
    ),
    DocumentType.MORTGAGE_APPLICATION: (
        PresenceCheck(
            "applicant_name", IssueSeverity.ERROR, "Applicant name not found in application"
        ),
        PresenceCheck("sin", IssueSeverity.WARNING, "Social insurance number not detected"),
    ),
    DocumentType.GENERIC: (),
}


class IssueAnalyzer:
    """Produces severity-tagged issues for an extracted document.

    Args:
        config: Analysis thresholds.
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config or AnalysisConfig()

    def analyze(self, fields: dict[str, Any], document_type: DocumentType) -> list[Issue]:
        """Inspect a field map and its metadata for issues.

        Args:
            fields: Extracted field map including the ``metadata`` key.
            document_type: Document type the fields were extracted for.

        Returns:
            Issues in check declaration order.
        """
        issues: list[Issue] = []

        try:
            metadata = ExtractionMetadata.model_validate_json(str(fields.get(METADATA_KEY, "")))
        except ValidationError:
            logger.warning("Unparsable metadata on %s document", document_type)
            issues.append(Issue(severity=IssueSeverity.ERROR, message=METADATA_ERROR))
        else:
            if metadata.confidence < self.config.low_confidence_threshold:
                issues.append(
                    Issue(severity=IssueSeverity.WARNING, message=LOW_CONFIDENCE_WARNING)
                )
            if metadata.edited:
                issues.append(Issue(severity=IssueSeverity.WARNING, message=EDITED_WARNING))

        for check in PRESENCE_CHECKS.get(document_type, ()):
            value = fields.get(check.field)
            if value is None or (isinstance(value, str) and not value.strip()):
                issues.append(Issue(severity=check.severity, message=check.message))

        if issues:
            logger.info("Found %d issues on %s document", len(issues), document_type)
        return issues
