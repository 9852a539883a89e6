"""Tests for pattern-based field extraction."""

import json
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

from docguardian.extraction.field_extractor import (
    FIELD_CHECKS,
    FieldExtractor,
    FieldRule,
    load_field_rules,
    mark_edited,
)
from docguardian.schemas import DocumentType, ExtractionMetadata
from docguardian.utils.config import ExtractionConfig


def _metadata(fields: dict) -> ExtractionMetadata:
    return ExtractionMetadata.model_validate_json(fields["metadata"])


class TestFieldExtractor:
    """Tests for the FieldExtractor class."""

    def setup_method(self) -> None:
        self.extractor = FieldExtractor()

    def test_bank_statement_fields(self) -> None:
        fields = self.extractor.extract(BANK_STATEMENT_TEXT, DocumentType.BANK_STATEMENT, 90.0)
        assert fields["account_number"] == "1234-5678-9012"
        assert fields["balance"] == 45000.0
        assert fields["statement_date"] == "03/31/2024"
        assert fields["institution"] == "First National Bank"
        assert _metadata(fields).confidence == 90

    def test_ending_balance_preferred(self) -> None:
        text = "Beginning Balance: $1,000.00\nEnding Balance: $2,500.50\n"
        fields = self.extractor.extract(text, DocumentType.BANK_STATEMENT)
        assert fields["balance"] == 2500.5

    def test_income_proof_fields(self) -> None:
        fields = self.extractor.extract(PAY_STUB_TEXT, DocumentType.INCOME_PROOF)
        assert fields["income"] == 4250.0
        assert fields["statement_date"] == "03/15/2024"
        assert fields["employer"] == "ACME Corporation Inc."
        assert fields["ytd_earnings"] == 25500.0

    def test_identification_fields(self) -> None:
        fields = self.extractor.extract(ID_TEXT, DocumentType.IDENTIFICATION)
        assert fields["name"] == "Jane Doe"
        assert fields["date_of_birth"] == "1985-04-12"
        assert fields["id_number"] == "D1234-56789-01234"
        assert fields["address"] == "123 Main Street, Toronto"
        assert fields["expiry_date"] == "2029-04-12"

    def test_mortgage_application_fields(self) -> None:
        fields = self.extractor.extract(
            MORTGAGE_APPLICATION_TEXT, DocumentType.MORTGAGE_APPLICATION
        )
        assert fields["applicant_name"] == "Jane Doe"
        assert fields["sin"] == "123-456-789"
        assert fields["marital_status"] == "Married"
        assert fields["address"] == "45 Elm Street, Toronto"
        assert fields["income"] == 120000.0
        assert fields["purchase_price"] == 500000.0
        assert fields["down_payment"] == 60000.0
        assert fields["loan_amount"] == 440000.0

    def test_tax_document_fields(self) -> None:
        fields = self.extractor.extract(TAX_TEXT, DocumentType.TAX_DOCUMENT)
        assert fields["income"] == 118500.0
        assert fields["year"] == "2023"
        assert fields["sin"] == "123 456 789"

    def test_missing_fields_are_absent(self) -> None:
        fields = self.extractor.extract("Gross Pay: $4,250.00", DocumentType.INCOME_PROOF)
        assert fields["income"] == 4250.0
        assert "employer" not in fields
        assert "statement_date" not in fields
        assert "" not in fields.values()

    def test_confidence_scales_with_fields_found(self) -> None:
        # 1 of 4 income-proof fields: 90 x (0.5 + 0.5 x 0.25)
        fields = self.extractor.extract("Gross Pay: $4,250.00", DocumentType.INCOME_PROOF, 90.0)
        assert _metadata(fields).confidence == 56

    def test_generic_keeps_ocr_confidence(self) -> None:
        fields = self.extractor.extract("anything", DocumentType.GENERIC, 87.5)
        assert set(fields) == {"metadata"}
        metadata = _metadata(fields)
        assert metadata.confidence == 88
        assert metadata.edited is False

    def test_failed_check_tries_next_match(self) -> None:
        text = "Date of Birth: 99/99/9999\nIssued 2020-01-15\n"
        fields = self.extractor.extract(text, DocumentType.IDENTIFICATION)
        assert fields["date_of_birth"] == "2020-01-15"

    def test_metadata_is_json(self) -> None:
        fields = self.extractor.extract(TAX_TEXT, DocumentType.TAX_DOCUMENT)
        raw = json.loads(fields["metadata"])
        assert set(raw) == {"processed", "confidence", "edited"}

    def test_empty_text(self) -> None:
        fields = self.extractor.extract("", DocumentType.BANK_STATEMENT, 80.0)
        assert set(fields) == {"metadata"}
        assert _metadata(fields).confidence == 40


class TestFieldChecks:
    """Tests for the value check predicates."""

    @pytest.mark.parametrize(
        "check,value,expected",
        [
            ("amount", "45,000.00", True),
            ("amount", "abc", False),
            ("date", "March 15, 2024", True),
            ("date", "13/45/2024", False),
            ("sin", "123 456 789", True),
            ("sin", "12345678", False),
            ("year", "2023", True),
            ("year", "1850", False),
            ("account_number", "****1234", True),
            ("id_number", "ABCDEF", False),
            ("name", "J", False),
        ],
    )
    def test_check(self, check: str, value: str, expected: bool) -> None:
        assert FIELD_CHECKS[check](value) is expected


class TestMarkEdited:
    """Tests for applying reviewer overrides."""

    def test_overrides_and_flags_edit(self) -> None:
        fields = FieldExtractor().extract(PAY_STUB_TEXT, DocumentType.INCOME_PROOF, 95.0)
        updated = mark_edited(fields, {"income": 4300.0})

        assert updated["income"] == 4300.0
        assert fields["income"] == 4250.0
        metadata = _metadata(updated)
        assert metadata.edited is True
        assert metadata.confidence == _metadata(fields).confidence

    def test_metadata_cannot_be_overridden(self) -> None:
        fields = FieldExtractor().extract("", DocumentType.GENERIC)
        updated = mark_edited(fields, {"metadata": "{}"})
        assert _metadata(updated).edited is True

    def test_corrupt_metadata_is_replaced(self) -> None:
        updated = mark_edited({"income": 10.0, "metadata": "not json"}, {})
        metadata = _metadata(updated)
        assert metadata.edited is True
        assert metadata.confidence == 0


class TestLoadFieldRules:
    """Tests for loading extraction tables from YAML."""

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        rules = load_field_rules(tmp_path / "missing.yaml")
        assert DocumentType.BANK_STATEMENT in rules

    def test_yaml_replaces_one_type(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text(
            yaml.dump(
                {
                    "generic": [
                        {
                            "field": "reference",
                            "patterns": [r"ref(?:erence)?\s*:\s*(\w+)"],
                            "check": "text",
                        }
                    ]
                }
            )
        )
        rules = load_field_rules(path)
        assert rules[DocumentType.GENERIC] == (
            FieldRule("reference", (r"ref(?:erence)?\s*:\s*(\w+)",), "text", False),
        )
        assert len(rules[DocumentType.TAX_DOCUMENT]) == 3

        extractor = FieldExtractor.from_config(ExtractionConfig(rules_path=str(path)))
        fields = extractor.extract("Reference: ABC123", DocumentType.GENERIC)
        assert fields["reference"] == "ABC123"
