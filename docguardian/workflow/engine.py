"""Stage machine driving a mortgage application through its lifecycle.

For each newly processed document the engine persists the document,
records its completeness, and evaluates the current stage's automation
rules in declared order. ``advance_stage`` ends the cycle as soon as it
runs; the other actions let evaluation continue. Cycles for the same
application are serialised with a per-application lock so two concurrent
uploads cannot both advance the stage.
"""

import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from docguardian.schemas import (
    DOCUMENT_TYPE_LABELS,
    Application,
    ApplicationStatus,
    Document,
    DocumentType,
    StageId,
    utcnow,
)
from docguardian.storage.base import DocumentStore
from docguardian.utils.amounts import round_half_up
from docguardian.utils.config import WorkflowConfig
from docguardian.utils.logger import get_logger
from docguardian.validation.field_validator import validate_extracted_fields
from docguardian.workflow.conditions import (
    RuleContext,
    evaluate_condition,
    missing_document_types,
)
from docguardian.workflow.stages import (
    DEFAULT_STAGES,
    Action,
    AutomationRule,
    Stage,
    sort_stages,
)

logger = get_logger(__name__)

WORKFLOW_FAILED = "Workflow automation failed"
COMPLETED_ALL_STAGES = "Application has completed all stages"
PROCESSING_NORMALLY = "Processing normally"


@dataclass
class WorkflowResult:
    """Outcome of one automation cycle."""

    success: bool
    actions: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    stage: StageId | None = None
    stage_name: str | None = None
    stage_changed: bool = False


@dataclass
class WorkflowStatus:
    """Read-side summary of where an application stands."""

    application_id: str
    stage: StageId
    stage_name: str
    progress: int
    next_stage: StageId | None
    is_complete: bool
    blockers: list[str]
    next_actions: list[str]
    estimated_completion: datetime


class WorkflowEngine:
    """Evaluates automation rules and moves applications between stages.

    Args:
        store: Storage collaborator.
        stages: Stage table shared with status reporting.
        config: Workflow settings.
    """

    def __init__(
        self,
        store: DocumentStore,
        stages: tuple[Stage, ...] = DEFAULT_STAGES,
        config: WorkflowConfig | None = None,
    ) -> None:
        self.store = store
        self.stages = sort_stages(stages)
        self.config = config or WorkflowConfig()
        self._by_id = {s.id: s for s in self.stages}
        self._by_order = {s.order: s for s in self.stages}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    def stage(self, stage_id: StageId) -> Stage:
        """Look up a stage definition.

        Raises:
            KeyError: If the stage is not part of this engine's table.
        """
        return self._by_id[stage_id]

    def next_stage(self, stage: Stage) -> Stage | None:
        return self._by_order.get(stage.order + 1)

    def progress_for(self, stage: Stage) -> int:
        return round_half_up(100 * stage.order / len(self.stages))

    @asynccontextmanager
    async def _application_lock(self, application_id: str) -> AsyncIterator[None]:
        """Serialise cycles for one application.

        The lock is dropped once no cycle holds or waits on it.
        """
        lock = self._locks.setdefault(application_id, asyncio.Lock())
        self._lock_users[application_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[application_id] -= 1
            if not self._lock_users[application_id]:
                del self._lock_users[application_id]
                del self._locks[application_id]

    async def register_application(self, application: Application) -> Application:
        """Store a new application positioned at the first stage."""
        first = self.stages[0]
        prepared = application.model_copy(
            update={
                "stage": first.id,
                "status": ApplicationStatus.PENDING,
                "progress": 0,
                "next_actions": list(first.next_actions),
            }
        )
        stored = await self.store.insert_application(prepared)
        logger.info("Registered application %s at stage %s", stored.id, first.id)
        return stored

    async def process_document(self, application_id: str, document: Document) -> WorkflowResult:
        """Run one automation cycle for a newly processed document.

        Never raises for ordinary failures: storage or rule errors come
        back as an unsuccessful :class:`WorkflowResult`, and whatever was
        persisted before the failure stays persisted.

        Args:
            application_id: Owning application.
            document: The classified, extracted and analysed document.

        Returns:
            The cycle's outcome and action log.
        """
        async with self._application_lock(application_id):
            try:
                return await self._run_cycle(application_id, document)
            except Exception as exc:
                logger.exception("Workflow automation failed for %s", application_id)
                return WorkflowResult(
                    success=False,
                    actions=[f"Workflow error: {exc}"],
                    issues=[WORKFLOW_FAILED],
                )

    async def _run_cycle(self, application_id: str, document: Document) -> WorkflowResult:
        actions: list[str] = []

        stored = await self.store.update_document(
            document.id,
            {
                "document_type": document.document_type,
                "extracted_fields": document.extracted_fields,
                "issues": document.issues,
                "verified": document.verified,
                "processed_at": document.processed_at or utcnow(),
            },
        )

        completeness = validate_extracted_fields(stored.extracted_fields, stored.document_type)
        entry = f"Document completeness: {completeness.completion_percentage}%"
        if completeness.missing_fields:
            entry += f" (missing: {', '.join(completeness.missing_fields)})"
        actions.append(entry)

        application = await self.store.get_application(application_id)
        stage = self.stage(application.stage)
        matching = await self.store.select_documents(
            application_id, stage.required_document_types
        )
        ctx = RuleContext(
            stage=stage, application=application, documents=matching, new_document=stored
        )
        issues = [issue.message for issue in stored.issues]
        flagged: list[str] = []

        for rule in stage.rules:
            if not evaluate_condition(rule, ctx):
                continue
            logger.debug("Rule %s -> %s fired for %s", rule.condition, rule.action, application_id)

            if rule.action == Action.ADVANCE_STAGE:
                result = await self._advance(ctx.application, stage, actions, flagged)
                result.issues = issues
                return result
            if rule.action == Action.FLAG_REVIEW:
                reason = rule.parameters.get(
                    "reason", f"Condition {rule.condition} requires review"
                )
                ctx.application = await self._flag_review(ctx.application, reason, actions)
                flagged.append(reason)
            elif rule.action == Action.REQUEST_DOCUMENTS:
                actions.append(f"Documents requested: {self._request_message(rule, ctx)}")
            elif rule.action == Action.NOTIFY_AGENT:
                message = rule.parameters.get("message", f"Review needed at {stage.name}")
                actions.append(f"Agent notified: {message}")

        return WorkflowResult(
            success=True,
            actions=actions,
            issues=issues,
            stage=stage.id,
            stage_name=stage.name,
        )

    async def _advance(
        self,
        application: Application,
        stage: Stage,
        actions: list[str],
        flagged: list[str],
    ) -> WorkflowResult:
        """Move to the next stage.

        Blockers belong to the stage being left, so only reasons flagged
        in this same cycle carry over.
        """
        target = self.next_stage(stage)
        if target is None:
            actions.append(COMPLETED_ALL_STAGES)
            logger.info("Application %s is at the final stage", application.id)
            return WorkflowResult(
                success=True, actions=actions, stage=stage.id, stage_name=stage.name
            )

        now = utcnow()
        changes = {
            "stage": target.id,
            "progress": max(application.progress, self.progress_for(target)),
            "next_actions": list(target.next_actions),
            "blockers": list(flagged),
            "last_activity": now,
        }
        if application.status == ApplicationStatus.PENDING or (
            application.status == ApplicationStatus.UNDER_REVIEW and not flagged
        ):
            changes["status"] = ApplicationStatus.IN_PROGRESS
        await self.store.update_application(application.id, changes)

        actions.append(f"Advanced from {stage.name} to {target.name}")
        logger.info("Application %s advanced %s -> %s", application.id, stage.id, target.id)
        return WorkflowResult(
            success=True,
            actions=actions,
            stage=target.id,
            stage_name=target.name,
            stage_changed=True,
        )

    async def _flag_review(
        self, application: Application, reason: str, actions: list[str]
    ) -> Application:
        blockers = list(application.blockers)
        if reason not in blockers:
            blockers.append(reason)
        updated = await self.store.update_application(
            application.id,
            {
                "status": ApplicationStatus.UNDER_REVIEW,
                "blockers": blockers,
                "last_activity": utcnow(),
            },
        )
        actions.append(f"Flagged for manual review: {reason}")
        logger.info("Application %s flagged for review: %s", application.id, reason)
        return updated

    @staticmethod
    def _request_message(rule: AutomationRule, ctx: RuleContext) -> str:
        if "message" in rule.parameters:
            return rule.parameters["message"]
        missing = missing_document_types(ctx.stage, ctx.in_scope())
        return ", ".join(DOCUMENT_TYPE_LABELS[t] for t in missing) or "additional documents"

    async def get_workflow_status(self, application_id: str) -> WorkflowStatus:
        """Recompute an application's workflow status from persisted state.

        Args:
            application_id: Application to report on.

        Returns:
            Current stage, progress, blockers, next actions and an
            estimated completion date.
        """
        application = await self.store.get_application(application_id)
        stage = self.stage(application.stage)
        matching = await self.store.select_documents(
            application_id, stage.required_document_types
        )

        missing = missing_document_types(stage, matching)
        unverified = [
            t
            for t in stage.required_document_types
            if t not in missing
            and not any(d.verified for d in matching if d.document_type == t)
        ]

        blockers = [f"Missing required document: {_label(t)}" for t in missing]
        blockers += [f"{_label(t)} has not been verified" for t in unverified]
        blockers += [b for b in application.blockers if b not in blockers]

        next_actions = [f"Upload {_label(t)}" for t in missing]
        next_actions += [f"Review and verify {_label(t)}" for t in unverified]
        if not next_actions:
            next_actions = (
                ["Resolve items flagged for manual review"] if blockers else [PROCESSING_NORMALLY]
            )

        progress = self.progress_for(stage)
        remaining_days = round_half_up(
            self.config.average_processing_days * (1 - progress / 100)
        )
        target = self.next_stage(stage)

        return WorkflowStatus(
            application_id=application.id,
            stage=stage.id,
            stage_name=stage.name,
            progress=progress,
            next_stage=target.id if target else None,
            is_complete=target is None and not blockers,
            blockers=blockers,
            next_actions=next_actions,
            estimated_completion=utcnow() + timedelta(days=remaining_days),
        )


def _label(document_type: DocumentType) -> str:
    return DOCUMENT_TYPE_LABELS[document_type]
