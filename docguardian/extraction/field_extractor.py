"""Pattern-based field extraction for mortgage documents.

Each document type has a table of target fields. A field lists one or more
regular expressions in priority order plus an optional check on the
captured value; the first capture that passes the check wins and later
patterns are not tried. Fields that never match are left out of the
result so completeness checks can see them as missing.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from docguardian.schemas import METADATA_KEY, DocumentType, ExtractionMetadata
from docguardian.utils.amounts import parse_amount, round_half_up
from docguardian.utils.config import ExtractionConfig, load_yaml_table
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)


DATE_FORMATS: list[str] = [
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
]

_MONTH = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?"
DATE_VALUE = (
    r"(\d{1,2}/\d{1,2}/\d{4}"
    r"|\d{4}-\d{2}-\d{2}"
    rf"|{_MONTH}\s+\d{{1,2}},?\s+\d{{4}}"
    rf"|\d{{1,2}}\s+{_MONTH}\s+\d{{4}})"
)
AMOUNT_VALUE = r"\$?\s*([\d,]+(?:\.\d{2})?)"
SIN_VALUE = r"(\d{3}[- ]?\d{3}[- ]?\d{3})"
NAME_VALUE = r"([A-Za-z][A-Za-z .'\-]+)"


def _check_amount(value: str) -> bool:
    amount = parse_amount(value)
    return amount is not None and amount >= 0


def _check_date(value: str) -> bool:
    cleaned = value.replace(".", "").strip()
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(cleaned, fmt)
            return True
        except ValueError:
            continue
    return False


def _check_sin(value: str) -> bool:
    return len(re.sub(r"[\s\-]", "", value)) == 9


def _check_year(value: str) -> bool:
    return value.isdigit() and 1900 <= int(value) <= 2100


def _check_account_number(value: str) -> bool:
    digits = re.sub(r"\D", "", value)
    return 4 <= len(digits) <= 20


def _check_id_number(value: str) -> bool:
    compact = value.replace("-", "")
    return (
        6 <= len(compact) <= 15
        and compact.isalnum()
        and any(ch.isdigit() for ch in compact)
    )


def _check_name(value: str) -> bool:
    return 2 <= len(value) <= 80 and sum(ch.isalpha() for ch in value) >= 2


def _check_text(value: str) -> bool:
    return any(ch.isalpha() for ch in value)


FIELD_CHECKS: dict[str, Callable[[str], bool]] = {
    "amount": _check_amount,
    "date": _check_date,
    "sin": _check_sin,
    "year": _check_year,
    "account_number": _check_account_number,
    "id_number": _check_id_number,
    "name": _check_name,
    "text": _check_text,
}


@dataclass(frozen=True)
class FieldRule:
    """Extraction patterns for one target field, in priority order."""

    field: str
    patterns: tuple[str, ...]
    check: str | None = None
    numeric: bool = False


_SIN_RULE = FieldRule(
    "sin",
    (
        rf"(?:\bSIN\b|social\s+insurance\s+number)[:#\s]*{SIN_VALUE}",
        rf"\b{SIN_VALUE}\b",
    ),
    check="sin",
)

DEFAULT_FIELD_RULES: dict[DocumentType, tuple[FieldRule, ...]] = {
    DocumentType.MORTGAGE_APPLICATION: (
        FieldRule(
            "applicant_name",
            (
                rf"(?:applicant|borrower)(?:'s)?(?:\s+full)?(?:\s+name)?\s*:\s*{NAME_VALUE}",
                rf"^\s*name\s*:\s*{NAME_VALUE}",
            ),
            check="name",
        ),
        _SIN_RULE,
        FieldRule(
            "marital_status",
            (
                r"marital\s+status\s*:\s*"
                r"(single|married|common[-\s]law|divorced|separated|widowed)",
            ),
        ),
        FieldRule(
            "address",
            (
                r"(?:property\s+address|current\s+address|home\s+address|residence)\s*:\s*([^\n]+)",
                r"^\s*address\s*:\s*([^\n]+)",
            ),
            check="text",
        ),
        FieldRule(
            "employer",
            (r"(?:employer|company)(?:\s+name)?\s*:\s*([^\n]+)",),
            check="text",
        ),
        FieldRule(
            "income",
            (
                rf"(?:annual|gross|total)\s+income[:\s]*{AMOUNT_VALUE}",
                rf"(?:income|salary)[:\s]*{AMOUNT_VALUE}",
            ),
            check="amount",
            numeric=True,
        ),
        FieldRule(
            "purchase_price",
            (rf"purchase\s+price[:\s]*{AMOUNT_VALUE}",),
            check="amount",
            numeric=True,
        ),
        FieldRule(
            "down_payment",
            (rf"down\s*payment(?:\s+amount)?[:\s]*{AMOUNT_VALUE}",),
            check="amount",
            numeric=True,
        ),
        FieldRule(
            "loan_amount",
            (rf"(?:loan|mortgage)\s+amount(?:\s+requested)?[:\s]*{AMOUNT_VALUE}",),
            check="amount",
            numeric=True,
        ),
    ),
    DocumentType.INCOME_PROOF: (
        FieldRule(
            "income",
            (
                rf"gross\s+(?:pay|earnings|income)[:\s]*{AMOUNT_VALUE}",
                rf"(?:annual\s+)?(?:salary|wages|income)[:\s]*{AMOUNT_VALUE}",
                rf"net\s+pay[:\s]*{AMOUNT_VALUE}",
                r"\$\s*([\d,]+\.\d{2})",
            ),
            check="amount",
            numeric=True,
        ),
        FieldRule(
            "statement_date",
            (
                rf"(?:pay\s+date|period\s+ending|pay\s+period\s+end(?:ing)?|statement\s+date)[:\s]*{DATE_VALUE}",
                rf"\b{DATE_VALUE}",
            ),
            check="date",
        ),
        FieldRule(
            "employer",
            (
                r"(?:employer|company|organization)(?:\s+name)?\s*:\s*([^\n]+)",
                r"^\s*(?-i:([A-Z][A-Za-z&,\. ]+(?:Inc|LLC|Ltd|Corp|Company|Co)\.?))\s*$",
            ),
            check="text",
        ),
        FieldRule(
            "ytd_earnings",
            (rf"(?:year\s+to\s+date|ytd)(?:\s+(?:gross|earnings|total))?[:\s]*{AMOUNT_VALUE}",),
            check="amount",
            numeric=True,
        ),
    ),
    DocumentType.BANK_STATEMENT: (
        FieldRule(
            "account_number",
            (r"account\s*(?:number|no\.?|#)\s*[:#]?\s*([\d\-\* ]{3,24}\d)",),
            check="account_number",
        ),
        FieldRule(
            "balance",
            (
                rf"(?:ending|closing)\s+balance[:\s]*{AMOUNT_VALUE}",
                rf"(?:beginning|opening)\s+balance[:\s]*{AMOUNT_VALUE}",
                rf"(?:available|current)?\s*balance[:\s]*{AMOUNT_VALUE}",
            ),
            check="amount",
            numeric=True,
        ),
        FieldRule(
            "statement_date",
            (
                rf"statement\s+date[:\s]*{DATE_VALUE}",
                rf"(?:period\s+ending|as\s+of|closing\s+date)[:\s]*{DATE_VALUE}",
                rf"\b{DATE_VALUE}",
            ),
            check="date",
        ),
        FieldRule(
            "institution",
            (r"^\s*(?-i:([A-Z][A-Za-z&\. ]*(?:Bank|Credit Union|Trust|Financial)))\b",),
            check="text",
        ),
    ),
    DocumentType.IDENTIFICATION: (
        FieldRule(
            "name",
            (rf"(?:full\s+)?name\s*:\s*{NAME_VALUE}",),
            check="name",
        ),
        FieldRule(
            "date_of_birth",
            (
                rf"(?:date\s+of\s+birth|\bDOB\b|birth\s*date)[:\s]*{DATE_VALUE}",
                rf"\b{DATE_VALUE}",
            ),
            check="date",
        ),
        FieldRule(
            "id_number",
            (
                r"(?:licen[cs]e|passport|\bID\b|document)\s*(?:number|no\.?|#)\s*[:#]?\s*([A-Z0-9\-]{6,20})",
                r"(?-i:\b([A-Z0-9]{6,15})\b)",
            ),
            check="id_number",
        ),
        FieldRule(
            "address",
            (
                r"address\s*:\s*([^\n]+)",
                r"\b(\d+\s+[A-Za-z0-9 ,\.]+?(?:Avenue|Lane|Road|Boulevard|Drive|Street|Ave|Ln|Rd|Blvd|Dr|St)\b\.?)",
            ),
            check="text",
        ),
        FieldRule(
            "expiry_date",
            (rf"(?:expiry|expiration|expires|\bexp\b)(?:\s+date)?[:\s]*{DATE_VALUE}",),
            check="date",
        ),
    ),
    DocumentType.TAX_DOCUMENT: (
        FieldRule(
            "income",
            (
                rf"(?:total|employment)\s+income[:\s]*{AMOUNT_VALUE}",
                rf"net\s+income[:\s]*{AMOUNT_VALUE}",
            ),
            check="amount",
            numeric=True,
        ),
        FieldRule(
            "year",
            (
                r"(?:tax(?:ation)?\s+year|year)[:\s]*((?:19|20)\d{2})",
                r"\b((?:19|20)\d{2})\s+(?:tax\s+return|notice\s+of\s+assessment|T4|T1)",
                r"\b((?:19|20)\d{2})\b",
            ),
            check="year",
        ),
        _SIN_RULE,
    ),
    DocumentType.GENERIC: (),
}


def load_field_rules(path: Path) -> dict[DocumentType, tuple[FieldRule, ...]]:
    """Load extraction tables from YAML, falling back to the defaults.

    Document types listed in the file replace the built-in table for that
    type; unlisted types keep their defaults.

    Args:
        path: Path to the extraction rules YAML file.

    Returns:
        Field rules keyed by document type.
    """
    data = load_yaml_table(path)
    if not isinstance(data, dict):
        return DEFAULT_FIELD_RULES

    rules = dict(DEFAULT_FIELD_RULES)
    for type_name, fields in data.items():
        rules[DocumentType(type_name)] = tuple(
            FieldRule(
                field=entry["field"],
                patterns=tuple(entry.get("patterns", [])),
                check=entry.get("check"),
                numeric=bool(entry.get("numeric", False)),
            )
            for entry in fields or []
        )
    logger.info("Loaded extraction rules for %d document types from %s", len(data), path)
    return rules


class FieldExtractor:
    """Extracts named fields from OCR text for a known document type.

    Args:
        rules: Field rules keyed by document type.
    """

    def __init__(
        self,
        rules: dict[DocumentType, tuple[FieldRule, ...]] = DEFAULT_FIELD_RULES,
    ) -> None:
        self.rules = rules
        self._compiled: dict[str, list[re.Pattern[str]]] = {}
        for field_rules in rules.values():
            for rule in field_rules:
                for pattern in rule.patterns:
                    if pattern not in self._compiled:
                        self._compiled[pattern] = re.compile(
                            pattern, re.IGNORECASE | re.MULTILINE
                        )

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "FieldExtractor":
        """Build an extractor from the extraction config section."""
        return cls(load_field_rules(Path(config.rules_path)))

    def extract(
        self,
        text: str,
        document_type: DocumentType,
        ocr_confidence: float = 100.0,
    ) -> dict[str, Any]:
        """Extract the fields defined for ``document_type`` from ``text``.

        Args:
            text: Raw OCR text.
            document_type: Resolved document type.
            ocr_confidence: Recognition confidence (0-100) reported by OCR.

        Returns:
            Flat field map. Unmatched fields are absent; the ``metadata``
            key always holds the serialised :class:`ExtractionMetadata`.
        """
        field_rules = self.rules.get(document_type, ())
        fields: dict[str, Any] = {}

        for rule in field_rules:
            value = self._extract_field(text or "", rule)
            if value is not None:
                fields[rule.field] = value

        confidence = _extraction_confidence(ocr_confidence, len(fields), len(field_rules))
        fields[METADATA_KEY] = ExtractionMetadata(confidence=confidence).model_dump_json()

        logger.info(
            "Extracted %d/%d fields for %s (confidence=%d)",
            len(fields) - 1,
            len(field_rules),
            document_type,
            confidence,
        )
        return fields

    def _extract_field(self, text: str, rule: FieldRule) -> str | float | None:
        """Return the first captured value for ``rule`` that passes its check."""
        check = FIELD_CHECKS.get(rule.check) if rule.check else None

        for pattern in rule.patterns:
            for match in self._compiled[pattern].finditer(text):
                raw = match.group(1) if match.groups() else match.group(0)
                value = (raw or "").strip().rstrip(",")
                if not value:
                    continue
                if check is not None and not check(value):
                    continue
                logger.debug("Field %s matched pattern %s", rule.field, pattern)
                if rule.numeric:
                    return parse_amount(value)
                return value
        return None


def _extraction_confidence(ocr_confidence: float, found: int, targeted: int) -> int:
    """Blend OCR confidence with the share of targeted fields found."""
    base = min(max(ocr_confidence, 0.0), 100.0)
    if targeted == 0:
        return round_half_up(base)
    return round_half_up(base * (0.5 + 0.5 * found / targeted))


def mark_edited(fields: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Apply human corrections to an extracted-field map.

    The returned map carries ``edited=True`` in its metadata so downstream
    consumers can tell reviewed values from raw extraction.

    Args:
        fields: Field map produced by :meth:`FieldExtractor.extract`.
        overrides: Field values entered by a reviewer.

    Returns:
        A new field map; ``fields`` is left untouched.
    """
    updated = {k: v for k, v in fields.items() if k != METADATA_KEY}
    updated.update({k: v for k, v in overrides.items() if k != METADATA_KEY})

    try:
        metadata = ExtractionMetadata.model_validate_json(str(fields.get(METADATA_KEY, "")))
    except ValidationError:
        metadata = ExtractionMetadata(confidence=0)
    updated[METADATA_KEY] = metadata.model_copy(update={"edited": True}).model_dump_json()
    return updated
