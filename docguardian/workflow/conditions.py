"""Pure predicates deciding whether an automation rule applies.

Nothing here touches storage: every predicate reads a :class:`RuleContext`
snapshot, so rule logic can be tested without a store.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from docguardian.schemas import Application, Document, DocumentType
from docguardian.utils.amounts import parse_amount
from docguardian.workflow.stages import AutomationRule, Condition, Stage

DEFAULT_VARIANCE_THRESHOLD = 20.0
DEFAULT_MINIMUM_ASSET_RATIO = 0.05


@dataclass
class RuleContext:
    """Everything a rule condition may look at."""

    stage: Stage
    application: Application
    documents: list[Document] = field(default_factory=list)
    new_document: Document | None = None

    def in_scope(self) -> list[Document]:
        """Matching documents plus the newly processed one, without duplicates."""
        scoped = list(self.documents)
        if self.new_document is not None and all(
            d.id != self.new_document.id for d in scoped
        ):
            scoped.append(self.new_document)
        return scoped

    def of_type(self, document_type: DocumentType) -> list[Document]:
        return [d for d in self.in_scope() if d.document_type == document_type]


def missing_document_types(stage: Stage, documents: list[Document]) -> list[DocumentType]:
    """Required document types of ``stage`` with no matching document."""
    present = {d.document_type for d in documents}
    return [t for t in stage.required_document_types if t not in present]


def numeric_values(documents: list[Document], field_name: str) -> list[float]:
    """Collect the numeric values of ``field_name`` across documents."""
    values = []
    for document in documents:
        value = parse_amount(document.extracted_fields.get(field_name))
        if value is not None:
            values.append(value)
    return values


def all_required_documents_uploaded(ctx: RuleContext, params: dict[str, Any]) -> bool:
    return not missing_document_types(ctx.stage, ctx.in_scope())


def required_documents_missing(ctx: RuleContext, params: dict[str, Any]) -> bool:
    return bool(missing_document_types(ctx.stage, ctx.in_scope()))


def income_variance_high(ctx: RuleContext, params: dict[str, Any]) -> bool:
    """Income figures across income-proof documents disagree beyond a threshold.

    Needs at least two numeric values and a positive minimum.
    """
    threshold = float(params.get("threshold", DEFAULT_VARIANCE_THRESHOLD))
    incomes = numeric_values(ctx.of_type(DocumentType.INCOME_PROOF), "income")
    if len(incomes) < 2:
        return False
    low, high = min(incomes), max(incomes)
    if low <= 0:
        return False
    return (high - low) / low * 100 > threshold


def _asset_position(ctx: RuleContext, params: dict[str, Any]) -> tuple[list[float], float]:
    ratio = float(params.get("minimum_ratio", DEFAULT_MINIMUM_ASSET_RATIO))
    balances = numeric_values(ctx.of_type(DocumentType.BANK_STATEMENT), "balance")
    return balances, ratio * ctx.application.purchase_price


def assets_insufficient(ctx: RuleContext, params: dict[str, Any]) -> bool:
    """Documented balances do not cover the minimum share of the purchase price."""
    balances, required = _asset_position(ctx, params)
    return sum(balances) < required


def assets_sufficient(ctx: RuleContext, params: dict[str, Any]) -> bool:
    balances, required = _asset_position(ctx, params)
    return bool(balances) and sum(balances) >= required


def _verified(document_type: DocumentType) -> Callable[[RuleContext, dict], bool]:
    def predicate(ctx: RuleContext, params: dict[str, Any]) -> bool:
        return any(d.verified for d in ctx.of_type(document_type))

    return predicate


def documents_verified(ctx: RuleContext, params: dict[str, Any]) -> bool:
    """Some document in scope is verified.

    With ``all_required`` set, every required type of the stage needs a
    verified document instead.
    """
    scoped = ctx.in_scope()
    if not params.get("all_required", False):
        return any(d.verified for d in scoped)
    verified_types = {d.document_type for d in scoped if d.verified}
    return all(t in verified_types for t in ctx.stage.required_document_types)


CONDITIONS: dict[Condition, Callable[[RuleContext, dict[str, Any]], bool]] = {
    Condition.ALL_REQUIRED_DOCUMENTS_UPLOADED: all_required_documents_uploaded,
    Condition.REQUIRED_DOCUMENTS_MISSING: required_documents_missing,
    Condition.INCOME_VARIANCE_HIGH: income_variance_high,
    Condition.ASSETS_INSUFFICIENT: assets_insufficient,
    Condition.ASSETS_SUFFICIENT: assets_sufficient,
    Condition.IDENTITY_VERIFIED: _verified(DocumentType.IDENTIFICATION),
    Condition.INCOME_VERIFIED: _verified(DocumentType.INCOME_PROOF),
    Condition.ASSETS_VERIFIED: _verified(DocumentType.BANK_STATEMENT),
    Condition.DOCUMENTS_VERIFIED: documents_verified,
}


def evaluate_condition(rule: AutomationRule, ctx: RuleContext) -> bool:
    """Evaluate ``rule``'s condition against a context snapshot."""
    return CONDITIONS[rule.condition](ctx, rule.parameters)
