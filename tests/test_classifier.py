"""Tests for document-type classification."""

from pathlib import Path

import pytest
import yaml
from conftest import (
    BANK_STATEMENT_TEXT,
    ID_TEXT,
    MORTGAGE_APPLICATION_TEXT,
    PAY_STUB_TEXT,
    TAX_TEXT,
)

from docguardian.classification.classifier import (
    DEFAULT_PATTERN_SETS,
    NO_MATCH_REASON,
    DocumentClassifier,
    PatternSet,
    load_pattern_sets,
)
from docguardian.schemas import DocumentType
from docguardian.utils.config import ClassificationConfig


class TestDocumentClassifier:
    """Tests for the DocumentClassifier class."""

    def setup_method(self) -> None:
        self.classifier = DocumentClassifier()

    def test_pay_stub_is_income_proof(self) -> None:
        result = self.classifier.classify(PAY_STUB_TEXT)
        assert result.document_type == DocumentType.INCOME_PROOF
        assert result.confidence > 0.5
        assert NO_MATCH_REASON not in result.reasons
        assert 'Found keyword: "pay stub"' in result.reasons
        assert 'Found keyword: "gross pay"' in result.reasons
        assert 'Found keyword: "year to date"' in result.reasons

    def test_bank_statement(self) -> None:
        result = self.classifier.classify(BANK_STATEMENT_TEXT, "statement.pdf")
        assert result.document_type == DocumentType.BANK_STATEMENT
        assert result.confidence > 0.5

    def test_identification(self) -> None:
        result = self.classifier.classify(ID_TEXT)
        assert result.document_type == DocumentType.IDENTIFICATION

    def test_mortgage_application(self) -> None:
        result = self.classifier.classify(MORTGAGE_APPLICATION_TEXT)
        assert result.document_type == DocumentType.MORTGAGE_APPLICATION

    def test_tax_document(self) -> None:
        result = self.classifier.classify(TAX_TEXT)
        assert result.document_type == DocumentType.TAX_DOCUMENT

    def test_minimal_text_score(self) -> None:
        # 3 of 8 keywords and 3 of 7 patterns, weighted by 0.85
        result = self.classifier.classify("pay stub gross pay year to date")
        expected = (0.6 * 3 / 8 + 0.4 * 3 / 7) * 0.85
        assert result.document_type == DocumentType.INCOME_PROOF
        assert result.confidence == pytest.approx(expected)

    def test_filename_contributes(self) -> None:
        result = self.classifier.classify("", "passport_scan.png")
        assert result.document_type == DocumentType.IDENTIFICATION
        assert 'Found keyword: "passport"' in result.reasons
        assert "Matched pattern: passport" in result.reasons

    def test_empty_input_is_generic(self) -> None:
        result = self.classifier.classify("")
        assert result.document_type == DocumentType.GENERIC
        assert result.confidence == 0.1
        assert result.reasons == [NO_MATCH_REASON]

    def test_unrelated_text_is_generic(self) -> None:
        result = self.classifier.classify("Lorem ipsum dolor sit amet", "notes.txt")
        assert result.document_type == DocumentType.GENERIC

    def test_deterministic(self) -> None:
        first = self.classifier.classify(BANK_STATEMENT_TEXT, "statement.pdf")
        second = self.classifier.classify(BANK_STATEMENT_TEXT, "statement.pdf")
        assert first == second

    def test_confidence_clamped(self) -> None:
        overweight = PatternSet(
            DocumentType.TAX_DOCUMENT, keywords=("tax",), patterns=(r"tax",), confidence=3.0
        )
        result = DocumentClassifier((overweight,)).classify("tax")
        assert result.confidence == 1.0

    def test_ties_go_to_first_declared(self) -> None:
        sets = (
            PatternSet(DocumentType.TAX_DOCUMENT, ("slip",), (), 1.0),
            PatternSet(DocumentType.INCOME_PROOF, ("slip",), (), 1.0),
        )
        result = DocumentClassifier(sets).classify("slip")
        assert result.document_type == DocumentType.TAX_DOCUMENT

    def test_custom_fallback_confidence(self) -> None:
        classifier = DocumentClassifier(fallback_confidence=0.25)
        assert classifier.classify("").confidence == 0.25


class TestLoadPatternSets:
    """Tests for loading pattern sets from YAML."""

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        assert load_pattern_sets(tmp_path / "missing.yaml") is DEFAULT_PATTERN_SETS

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "classification.yaml"
        path.write_text(
            yaml.dump(
                {
                    "bank_statement": {
                        "keywords": ["Relevé"],
                        "patterns": [r"relev[ée]\s+bancaire"],
                        "confidence": 0.7,
                    }
                }
            )
        )
        sets = load_pattern_sets(path)
        assert len(sets) == 1
        assert sets[0].document_type == DocumentType.BANK_STATEMENT
        assert sets[0].keywords == ("relevé",)

        classifier = DocumentClassifier.from_config(ClassificationConfig(patterns_path=str(path)))
        result = classifier.classify("Relevé bancaire mensuel")
        assert result.document_type == DocumentType.BANK_STATEMENT
        assert result.confidence == pytest.approx(0.7)
