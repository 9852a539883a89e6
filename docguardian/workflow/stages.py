"""Stage and automation-rule tables for the mortgage stage machine.

The tables are immutable configuration: built once at start-up, either
from the defaults below or from a YAML file, and passed by reference to
the workflow engine and to anything that reports on workflow status.
"""

from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docguardian.schemas import DocumentType, StageId
from docguardian.utils.config import load_yaml_table
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)


class Condition(StrEnum):
    """Closed vocabulary of automation-rule conditions."""

    ALL_REQUIRED_DOCUMENTS_UPLOADED = "all_required_documents_uploaded"
    REQUIRED_DOCUMENTS_MISSING = "required_documents_missing"
    INCOME_VARIANCE_HIGH = "income_variance_high"
    ASSETS_INSUFFICIENT = "assets_insufficient"
    ASSETS_SUFFICIENT = "assets_sufficient"
    IDENTITY_VERIFIED = "identity_verified"
    INCOME_VERIFIED = "income_verified"
    ASSETS_VERIFIED = "assets_verified"
    DOCUMENTS_VERIFIED = "documents_verified"


class Action(StrEnum):
    """Effects an automation rule can have when its condition holds."""

    ADVANCE_STAGE = "advance_stage"
    FLAG_REVIEW = "flag_review"
    REQUEST_DOCUMENTS = "request_documents"
    NOTIFY_AGENT = "notify_agent"


class AutomationRule(BaseModel):
    """A condition/action pair scoped to one stage."""

    model_config = ConfigDict(frozen=True)

    condition: Condition
    action: Action
    parameters: dict[str, Any] = Field(default_factory=dict)


class Stage(BaseModel):
    """One ordered step in an application's lifecycle."""

    model_config = ConfigDict(frozen=True)

    id: StageId
    name: str
    order: int = Field(ge=1)
    required_document_types: tuple[DocumentType, ...] = ()
    rules: tuple[AutomationRule, ...] = ()
    next_actions: tuple[str, ...] = ()


def _rule(condition: Condition, action: Action, **parameters: Any) -> AutomationRule:
    return AutomationRule(condition=condition, action=action, parameters=parameters)


DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage(
        id=StageId.APPLICATION_INTAKE,
        name="Application Intake",
        order=1,
        required_document_types=(DocumentType.MORTGAGE_APPLICATION,),
        rules=(
            _rule(
                Condition.REQUIRED_DOCUMENTS_MISSING,
                Action.REQUEST_DOCUMENTS,
                message="Upload the signed mortgage application",
            ),
            _rule(Condition.ALL_REQUIRED_DOCUMENTS_UPLOADED, Action.ADVANCE_STAGE),
        ),
        next_actions=(
            "Collect applicant information",
            "Upload the signed mortgage application",
        ),
    ),
    Stage(
        id=StageId.IDENTITY_VERIFICATION,
        name="Identity Verification",
        order=2,
        required_document_types=(DocumentType.IDENTIFICATION,),
        rules=(
            _rule(
                Condition.REQUIRED_DOCUMENTS_MISSING,
                Action.REQUEST_DOCUMENTS,
                message="Upload a government-issued photo ID",
            ),
            _rule(Condition.IDENTITY_VERIFIED, Action.ADVANCE_STAGE),
        ),
        next_actions=(
            "Upload a government-issued photo ID",
            "Confirm legal name matches the application",
        ),
    ),
    Stage(
        id=StageId.INCOME_VERIFICATION,
        name="Income Verification",
        order=3,
        required_document_types=(DocumentType.INCOME_PROOF, DocumentType.TAX_DOCUMENT),
        rules=(
            _rule(
                Condition.INCOME_VARIANCE_HIGH,
                Action.FLAG_REVIEW,
                threshold=20,
                reason="Income varies significantly across documents",
            ),
            _rule(
                Condition.REQUIRED_DOCUMENTS_MISSING,
                Action.REQUEST_DOCUMENTS,
                message="Upload recent pay stubs and the latest tax assessment",
            ),
            _rule(Condition.ALL_REQUIRED_DOCUMENTS_UPLOADED, Action.ADVANCE_STAGE),
        ),
        next_actions=(
            "Upload recent pay stubs",
            "Upload the latest notice of assessment",
        ),
    ),
    Stage(
        id=StageId.ASSET_VERIFICATION,
        name="Asset Verification",
        order=4,
        required_document_types=(DocumentType.BANK_STATEMENT,),
        rules=(
            _rule(
                Condition.ASSETS_INSUFFICIENT,
                Action.REQUEST_DOCUMENTS,
                minimum_ratio=0.05,
                message="Upload statements for all accounts holding the down payment",
            ),
            _rule(
                Condition.ASSETS_INSUFFICIENT,
                Action.NOTIFY_AGENT,
                minimum_ratio=0.05,
                message="Documented assets are below the minimum down payment",
            ),
            _rule(Condition.ASSETS_SUFFICIENT, Action.ADVANCE_STAGE, minimum_ratio=0.05),
        ),
        next_actions=(
            "Upload the last 90 days of bank statements",
            "Document the source of the down payment",
        ),
    ),
    Stage(
        id=StageId.UNDERWRITING,
        name="Underwriting",
        order=5,
        required_document_types=(
            DocumentType.MORTGAGE_APPLICATION,
            DocumentType.IDENTIFICATION,
            DocumentType.INCOME_PROOF,
            DocumentType.BANK_STATEMENT,
        ),
        rules=(
            _rule(
                Condition.REQUIRED_DOCUMENTS_MISSING,
                Action.FLAG_REVIEW,
                reason="Underwriting file is missing supporting documents",
            ),
            _rule(
                Condition.DOCUMENTS_VERIFIED,
                Action.NOTIFY_AGENT,
                message="Application file is ready for underwriter review",
            ),
            _rule(Condition.DOCUMENTS_VERIFIED, Action.ADVANCE_STAGE, all_required=True),
        ),
        next_actions=(
            "Analyze financial information",
            "Calculate debt service ratios",
            "Run compliance evaluation",
        ),
    ),
    Stage(
        id=StageId.APPROVAL,
        name="Approval",
        order=6,
        rules=(_rule(Condition.DOCUMENTS_VERIFIED, Action.ADVANCE_STAGE),),
        next_actions=(
            "Send approval letter",
            "Clear outstanding conditions",
        ),
    ),
    Stage(
        id=StageId.CLOSING,
        name="Closing",
        order=7,
        rules=(_rule(Condition.DOCUMENTS_VERIFIED, Action.ADVANCE_STAGE),),
        next_actions=(
            "Sign closing documents",
            "Transfer funds",
        ),
    ),
)


def sort_stages(stages: tuple[Stage, ...] | list[Stage]) -> tuple[Stage, ...]:
    """Return stages ordered by ``order``, rejecting duplicate orders or ids.

    Raises:
        ValueError: If two stages share an order or an id.
    """
    ordered = tuple(sorted(stages, key=lambda s: s.order))
    if len({s.order for s in ordered}) != len(ordered):
        raise ValueError("Stage orders must be unique")
    if len({s.id for s in ordered}) != len(ordered):
        raise ValueError("Stage ids must be unique")
    return ordered


def load_stages(path: Path) -> tuple[Stage, ...]:
    """Load the stage table from YAML, falling back to the defaults.

    The YAML holds a list of stage mappings with the same fields as
    :class:`Stage`.

    Args:
        path: Path to the stage table YAML file.

    Returns:
        Stages sorted by order.
    """
    data = load_yaml_table(path)
    if not isinstance(data, list):
        return DEFAULT_STAGES

    stages = sort_stages([Stage.model_validate(item) for item in data])
    logger.info("Loaded %d workflow stages from %s", len(stages), path)
    return stages
