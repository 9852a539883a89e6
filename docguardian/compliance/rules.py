"""Fixed compliance rule table evaluated against an application snapshot.

Each rule is a pure validator from ``(application, config)`` to a
:class:`RuleOutcome`. Issues make a rule fail, warnings make it need
review; recommendations are remediation text collected into the report.
Ratios are computed with ``Decimal`` so threshold comparisons are exact.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum

from docguardian.schemas import (
    METADATA_KEY,
    Application,
    Document,
    DocumentType,
    ExtractionMetadata,
    RegulatoryBody,
)
from docguardian.utils.amounts import to_decimal
from docguardian.utils.config import ComplianceConfig

HUNDRED = Decimal(100)


class RuleSeverity(StrEnum):
    """How serious a breach of a compliance rule is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class RuleOutcome:
    """What a single validator found."""

    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.issues


Validator = Callable[[Application, ComplianceConfig], RuleOutcome]


@dataclass(frozen=True)
class ComplianceRule:
    """One entry of the compliance rule table."""

    id: str
    name: str
    description: str
    body: RegulatoryBody
    severity: RuleSeverity
    validate: Validator


def _documents(application: Application, *types: DocumentType) -> list[Document]:
    return [d for d in application.documents if d.document_type in types]


def _decimal(value: float) -> Decimal:
    return to_decimal(value) or Decimal(0)


def _documented_incomes(application: Application, *types: DocumentType) -> list[Decimal]:
    incomes = []
    for document in _documents(application, *types):
        amount = to_decimal(document.extracted_fields.get("income"))
        if amount is not None:
            incomes.append(amount)
    return incomes


def _normalise_name(name: str) -> str:
    return "".join(name.lower().split())


def minimum_down_payment(price: Decimal, config: ComplianceConfig) -> Decimal:
    """Smallest insurable down payment for a purchase price.

    The base percentage applies up to the tier threshold and the upper-tier
    percentage to the portion above it. High-value properties need the
    high-value percentage of the whole price.
    """
    tier = _decimal(config.down_payment_tier_threshold)
    base = _decimal(config.min_down_payment_percent) / HUNDRED
    if price <= tier:
        return price * base
    if price <= _decimal(config.down_payment_high_value_threshold):
        upper = _decimal(config.down_payment_upper_tier_percent) / HUNDRED
        return tier * base + (price - tier) * upper
    return price * _decimal(config.down_payment_high_value_percent) / HUNDRED


def check_down_payment_minimum(
    application: Application, config: ComplianceConfig
) -> RuleOutcome:
    """Down payment against the tiered minimum for the purchase price."""
    outcome = RuleOutcome()
    price = _decimal(application.purchase_price)
    if price <= 0:
        outcome.warnings.append("Purchase price is missing; down payment ratio cannot be computed")
        outcome.recommendations.append("Record the property purchase price")
        return outcome

    down_payment = _decimal(application.down_payment)
    ratio = down_payment / price * HUNDRED
    required = minimum_down_payment(price, config)
    warning_level = required * _decimal(config.down_payment_warning_factor)

    if down_payment < required:
        if price <= _decimal(config.down_payment_tier_threshold):
            minimum = _decimal(config.min_down_payment_percent)
            message = f"Down payment of {ratio:.1f}% is below the minimum {minimum:.0f}% required"
        elif price <= _decimal(config.down_payment_high_value_threshold):
            message = (
                f"Down payment of ${down_payment:,.0f} is below the required ${required:,.0f}"
            )
        else:
            minimum = _decimal(config.down_payment_high_value_percent)
            threshold = _decimal(config.down_payment_high_value_threshold)
            message = (
                f"Down payment of {ratio:.1f}% is below the minimum {minimum:.0f}% "
                f"for properties over ${threshold:,.0f}"
            )
        outcome.issues.append(message)
        outcome.recommendations.append("Increase the down payment to meet the minimum requirement")
    elif down_payment < warning_level:
        outcome.warnings.append(
            f"Down payment of ${down_payment:,.0f} is close to the required minimum "
            f"of ${required:,.0f}"
        )
        outcome.recommendations.append("Confirm the down payment funds are fully available")
    return outcome


def check_debt_to_income(application: Application, config: ComplianceConfig) -> RuleOutcome:
    """Loan amount against documented income across income-proof documents."""
    outcome = RuleOutcome()
    income = sum(_documented_incomes(application, DocumentType.INCOME_PROOF), Decimal(0))
    if income <= 0:
        outcome.warnings.append("Debt-to-income ratio is indeterminate: no documented income")
        outcome.recommendations.append("Upload proof of income to compute the debt-to-income ratio")
        return outcome

    ratio = _decimal(application.loan_amount) / income * HUNDRED
    cap = _decimal(config.max_debt_to_income_percent)
    warning_level = cap * _decimal(config.debt_to_income_warning_factor)

    if ratio > cap:
        outcome.issues.append(
            f"Debt-to-income ratio of {ratio:.1f}% exceeds the maximum {cap:.0f}%"
        )
        outcome.recommendations.append("Reduce the loan amount or document additional income")
    elif ratio > warning_level:
        outcome.warnings.append(
            f"Debt-to-income ratio of {ratio:.1f}% is above {warning_level:.1f}% of income"
        )
        outcome.recommendations.append("Review the applicant's existing debt obligations")
    return outcome


def check_large_transaction(application: Application, config: ComplianceConfig) -> RuleOutcome:
    outcome = RuleOutcome()
    threshold = _decimal(config.large_transaction_threshold)
    if _decimal(application.loan_amount) > threshold:
        outcome.warnings.append(
            f"Loan amount exceeds the {threshold:,.0f} reporting threshold"
        )
        outcome.recommendations.append("File a large transaction report")
    return outcome


def check_identity_verification(
    application: Application, config: ComplianceConfig
) -> RuleOutcome:
    """Government ID is on file, complete, and matches the applicant."""
    outcome = RuleOutcome()
    id_documents = _documents(application, DocumentType.IDENTIFICATION)
    if not id_documents:
        outcome.issues.append("No government-issued identification provided")
        outcome.recommendations.append("Obtain valid government identification")
        return outcome

    fields = id_documents[0].extracted_fields
    missing = [name for name in ("name", "date_of_birth", "id_number") if not fields.get(name)]
    if missing:
        outcome.warnings.append(f"Missing required ID fields: {', '.join(missing)}")
        outcome.recommendations.append("Obtain a clearer identification document")

    id_name = fields.get("name")
    if application.applicant_name and isinstance(id_name, str) and id_name:
        if _normalise_name(application.applicant_name) != _normalise_name(id_name):
            outcome.warnings.append("Name mismatch between application and identification")
            outcome.recommendations.append("Confirm legal name matches all documents")
    return outcome


def check_income_verification(
    application: Application, config: ComplianceConfig
) -> RuleOutcome:
    """Income is documented and consistent with what the applicant stated."""
    outcome = RuleOutcome()
    if not _documents(application, DocumentType.INCOME_PROOF, DocumentType.TAX_DOCUMENT):
        outcome.issues.append("No income verification documents provided")
        outcome.recommendations.append("Upload recent pay stubs or tax returns")
        return outcome

    stated = to_decimal(application.annual_income)
    incomes = _documented_incomes(
        application, DocumentType.INCOME_PROOF, DocumentType.TAX_DOCUMENT
    )
    if not stated or not incomes:
        return outcome

    average = sum(incomes, Decimal(0)) / len(incomes)
    variance = abs(average - stated) / stated * HUNDRED
    if variance > _decimal(config.income_variance_tolerance_percent):
        outcome.warnings.append(
            f"Income variance of {variance:.1f}% between reported and documented income"
        )
        outcome.recommendations.append("Resolve the income discrepancy")
    return outcome


def check_down_payment_source(
    application: Application, config: ComplianceConfig
) -> RuleOutcome:
    outcome = RuleOutcome()
    if application.down_payment > 0 and not _documents(application, DocumentType.BANK_STATEMENT):
        outcome.warnings.append("No bank statements provided to verify down payment source")
        outcome.recommendations.append("Provide bank statements for down payment verification")
    return outcome


def check_document_authenticity(
    application: Application, config: ComplianceConfig
) -> RuleOutcome:
    """Documents show no sign of editing and were read with enough confidence."""
    outcome = RuleOutcome()
    for document in application.documents:
        label = document.document_type.value
        raw = document.extracted_fields.get(METADATA_KEY)
        if isinstance(raw, str):
            metadata = ExtractionMetadata.model_validate_json(raw)
            if metadata.edited:
                outcome.issues.append(f"Document {label} shows signs of recent modification")
                outcome.recommendations.append(f"Verify authenticity of {label}")
            if metadata.confidence < config.min_document_confidence:
                outcome.warnings.append(
                    f"Low OCR confidence ({metadata.confidence}%) for {label}"
                )
                outcome.recommendations.append(f"Obtain clearer copy of {label}")
        if not document.verified:
            outcome.recommendations.append(f"Manual verification recommended for {label}")
    return outcome


DEFAULT_RULES: tuple[ComplianceRule, ...] = (
    ComplianceRule(
        id="DOWN_PAYMENT_MINIMUM",
        name="Minimum Down Payment",
        description="Down payment meets the insurable minimum share of the purchase price",
        body=RegulatoryBody.MORTGAGE_INSURANCE,
        severity=RuleSeverity.CRITICAL,
        validate=check_down_payment_minimum,
    ),
    ComplianceRule(
        id="DEBT_TO_INCOME",
        name="Debt-to-Income Ratio",
        description="Loan amount is serviceable from documented income",
        body=RegulatoryBody.PRUDENTIAL,
        severity=RuleSeverity.CRITICAL,
        validate=check_debt_to_income,
    ),
    ComplianceRule(
        id="LARGE_TRANSACTION_REPORT",
        name="Large Transaction Reporting",
        description="Transactions above the reporting threshold are reported",
        body=RegulatoryBody.TRANSACTION_REPORTING,
        severity=RuleSeverity.MEDIUM,
        validate=check_large_transaction,
    ),
    ComplianceRule(
        id="IDENTITY_VERIFICATION",
        name="Identity Verification Requirements",
        description="Customer identification meets reporting-agency requirements",
        body=RegulatoryBody.TRANSACTION_REPORTING,
        severity=RuleSeverity.CRITICAL,
        validate=check_identity_verification,
    ),
    ComplianceRule(
        id="INCOME_VERIFICATION",
        name="Income Verification Requirements",
        description="Income documentation meets regulatory standards",
        body=RegulatoryBody.FINANCIAL_CONDUCT,
        severity=RuleSeverity.CRITICAL,
        validate=check_income_verification,
    ),
    ComplianceRule(
        id="DOWN_PAYMENT_SOURCE",
        name="Down Payment Source Verification",
        description="Down payment funds are supported by bank statements",
        body=RegulatoryBody.MORTGAGE_INSURANCE,
        severity=RuleSeverity.HIGH,
        validate=check_down_payment_source,
    ),
    ComplianceRule(
        id="DOCUMENT_AUTHENTICITY",
        name="Document Authenticity Verification",
        description="Documents show no signs of tampering",
        body=RegulatoryBody.FINANCIAL_CONDUCT,
        severity=RuleSeverity.HIGH,
        validate=check_document_authenticity,
    ),
)
