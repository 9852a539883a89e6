"""Document-type classification from OCR text and filenames.

Scores every known pattern set by the share of its keywords and regular
expressions found in the text or filename, then weights the score by the
set's confidence. Pattern sets are plain data and can be replaced from a
YAML file.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

from docguardian.schemas import DocumentType
from docguardian.utils.config import ClassificationConfig, load_yaml_table
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)

KEYWORD_WEIGHT = 0.6
PATTERN_WEIGHT = 0.4
NO_MATCH_REASON = "No specific document pattern detected"


@dataclass(frozen=True)
class PatternSet:
    """Keywords and regular expressions identifying one document type."""

    document_type: DocumentType
    keywords: tuple[str, ...]
    patterns: tuple[str, ...]
    confidence: float


@dataclass
class ClassificationResult:
    """Outcome of classifying a document."""

    document_type: DocumentType
    confidence: float
    reasons: list[str] = field(default_factory=list)


DEFAULT_PATTERN_SETS: tuple[PatternSet, ...] = (
    PatternSet(
        DocumentType.MORTGAGE_APPLICATION,
        keywords=(
            "mortgage application",
            "loan application",
            "borrower",
            "lender",
            "property address",
            "purchase price",
        ),
        patterns=(
            r"mortgage\s+application",
            r"loan\s+application",
            r"borrower.*name",
            r"property.*address",
            r"purchase\s+price",
        ),
        confidence=0.9,
    ),
    PatternSet(
        DocumentType.INCOME_PROOF,
        keywords=(
            "pay stub",
            "paystub",
            "payroll",
            "salary",
            "wages",
            "gross pay",
            "net pay",
            "year to date",
        ),
        patterns=(
            r"pay\s*stub",
            r"payroll",
            r"gross\s+pay",
            r"net\s+pay",
            r"year\s+to\s+date",
            r"ytd",
            r"earnings",
        ),
        confidence=0.85,
    ),
    PatternSet(
        DocumentType.BANK_STATEMENT,
        keywords=(
            "bank statement",
            "account statement",
            "balance",
            "deposit",
            "withdrawal",
            "transaction",
        ),
        patterns=(
            r"bank\s+statement",
            r"account\s+statement",
            r"beginning\s+balance",
            r"ending\s+balance",
            r"transaction",
            r"deposit",
            r"withdrawal",
        ),
        confidence=0.8,
    ),
    PatternSet(
        DocumentType.IDENTIFICATION,
        keywords=(
            "drivers license",
            "driver license",
            "passport",
            "identification",
            "date of birth",
            "license number",
        ),
        patterns=(
            r"driver.*license",
            r"passport",
            r"identification",
            r"date\s+of\s+birth",
            r"license.*number",
            r"id.*number",
        ),
        confidence=0.9,
    ),
    PatternSet(
        DocumentType.TAX_DOCUMENT,
        keywords=(
            "tax return",
            "notice of assessment",
            "t4",
            "t1",
            "employment income",
            "total income",
        ),
        patterns=(
            r"tax\s+return",
            r"notice\s+of\s+assessment",
            r"t4.*employment",
            r"t1.*general",
            r"total\s+income",
            r"employment\s+income",
        ),
        confidence=0.85,
    ),
)


def load_pattern_sets(path: Path) -> tuple[PatternSet, ...]:
    """Load pattern sets from YAML, falling back to the built-in table.

    The YAML maps each document type to ``keywords``, ``patterns`` and
    ``confidence``.

    Args:
        path: Path to the pattern YAML file.

    Returns:
        Pattern sets in declaration order.
    """
    data = load_yaml_table(path)
    if not isinstance(data, dict):
        return DEFAULT_PATTERN_SETS

    pattern_sets = tuple(
        PatternSet(
            document_type=DocumentType(name),
            keywords=tuple(k.lower() for k in entry.get("keywords", [])),
            patterns=tuple(entry.get("patterns", [])),
            confidence=float(entry.get("confidence", 1.0)),
        )
        for name, entry in data.items()
    )
    logger.info("Loaded %d classification pattern sets from %s", len(pattern_sets), path)
    return pattern_sets


class DocumentClassifier:
    """Assigns a document type to OCR text.

    Classification is a pure function of ``(text, filename)``.

    Args:
        pattern_sets: Pattern sets to score, in tie-breaking order.
        fallback_confidence: Confidence reported for ``generic`` when
            nothing matches.
    """

    def __init__(
        self,
        pattern_sets: tuple[PatternSet, ...] = DEFAULT_PATTERN_SETS,
        fallback_confidence: float = 0.1,
    ) -> None:
        self.pattern_sets = pattern_sets
        self.fallback_confidence = fallback_confidence
        self._compiled = {
            ps.document_type: [(p, re.compile(p, re.IGNORECASE)) for p in ps.patterns]
            for ps in pattern_sets
        }

    @classmethod
    def from_config(cls, config: ClassificationConfig) -> "DocumentClassifier":
        """Build a classifier from the classification config section."""
        return cls(
            pattern_sets=load_pattern_sets(Path(config.patterns_path)),
            fallback_confidence=config.fallback_confidence,
        )

    def classify(self, text: str, filename: str | None = None) -> ClassificationResult:
        """Classify a document by its text and optional filename.

        Args:
            text: Raw OCR text.
            filename: Original upload filename, if known.

        Returns:
            The best-scoring document type with its confidence and the
            keywords and patterns that matched.
        """
        best: ClassificationResult | None = None
        best_score = 0.0

        for pattern_set in self.pattern_sets:
            score, reasons = self._score(pattern_set, text or "", filename or "")
            if score > best_score:
                best_score = score
                best = ClassificationResult(
                    document_type=pattern_set.document_type,
                    confidence=min(max(score, 0.0), 1.0),
                    reasons=reasons,
                )

        if best is None:
            logger.debug("No pattern matched for %s", filename or "<text>")
            return ClassificationResult(
                document_type=DocumentType.GENERIC,
                confidence=self.fallback_confidence,
                reasons=[NO_MATCH_REASON],
            )

        logger.info(
            "Classified %s as %s (confidence=%.2f)",
            filename or "<text>",
            best.document_type,
            best.confidence,
        )
        return best

    def _score(
        self, pattern_set: PatternSet, text: str, filename: str
    ) -> tuple[float, list[str]]:
        """Score one pattern set against the text and filename."""
        reasons: list[str] = []
        lower_text = text.lower()
        lower_filename = filename.lower()

        keyword_hits = 0
        for keyword in pattern_set.keywords:
            if keyword in lower_text or keyword in lower_filename:
                keyword_hits += 1
                reasons.append(f'Found keyword: "{keyword}"')

        pattern_hits = 0
        for source, regex in self._compiled[pattern_set.document_type]:
            if regex.search(text) or regex.search(filename):
                pattern_hits += 1
                reasons.append(f"Matched pattern: {source}")

        score = 0.0
        if pattern_set.keywords:
            score += keyword_hits / len(pattern_set.keywords) * KEYWORD_WEIGHT
        if pattern_set.patterns:
            score += pattern_hits / len(pattern_set.patterns) * PATTERN_WEIGHT
        return score * pattern_set.confidence, reasons
