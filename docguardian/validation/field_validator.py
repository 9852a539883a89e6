"""Completeness checks for extracted-field maps."""

from dataclasses import dataclass, field
from typing import Any

from docguardian.schemas import DocumentType
from docguardian.utils.amounts import round_half_up
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)


REQUIRED_FIELDS: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.MORTGAGE_APPLICATION: (
        "applicant_name",
        "sin",
        "address",
        "employer",
        "income",
    ),
    DocumentType.INCOME_PROOF: ("income", "employer", "statement_date"),
    DocumentType.BANK_STATEMENT: ("account_number", "balance", "statement_date"),
    DocumentType.IDENTIFICATION: ("name", "date_of_birth", "id_number", "address"),
    DocumentType.TAX_DOCUMENT: ("income", "year", "sin"),
    DocumentType.GENERIC: (),
}


@dataclass
class CompletenessReport:
    """How many of a document type's required fields were extracted."""

    is_complete: bool
    missing_fields: list[str] = field(default_factory=list)
    completion_percentage: int = 100


def get_required_fields(document_type: DocumentType) -> list[str]:
    """Return the required field names for a document type."""
    return list(REQUIRED_FIELDS.get(document_type, ()))


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def validate_extracted_fields(
    fields: dict[str, Any], document_type: DocumentType
) -> CompletenessReport:
    """Check an extracted-field map against its required fields.

    Args:
        fields: Extracted field map.
        document_type: Document type whose required fields apply.

    Returns:
        Completeness report. Types with no required fields are always
        complete.
    """
    required = get_required_fields(document_type)
    if not required:
        return CompletenessReport(is_complete=True)

    missing = [name for name in required if not _is_present(fields.get(name))]
    percentage = round_half_up(100 * (len(required) - len(missing)) / len(required))

    logger.debug(
        "Completeness for %s: %d%% (missing: %s)",
        document_type,
        percentage,
        ", ".join(missing) or "none",
    )
    return CompletenessReport(
        is_complete=not missing,
        missing_fields=missing,
        completion_percentage=percentage,
    )
