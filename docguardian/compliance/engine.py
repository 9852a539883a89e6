"""Runs the compliance rule table and aggregates a verdict.

The engine holds no mutable state, so one instance can evaluate any
number of applications concurrently.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from docguardian.compliance.rules import DEFAULT_RULES, ComplianceRule, RuleOutcome
from docguardian.schemas import (
    Application,
    ComplianceCheck,
    ComplianceStatus,
    RegulatoryBody,
    utcnow,
)
from docguardian.utils.config import ComplianceConfig
from docguardian.utils.logger import get_logger

logger = get_logger(__name__)

BODY_TITLES: dict[RegulatoryBody, str] = {
    RegulatoryBody.FINANCIAL_CONDUCT: "Financial Conduct Regulator",
    RegulatoryBody.TRANSACTION_REPORTING: "Transaction Reporting Agency",
    RegulatoryBody.PRUDENTIAL: "Prudential Regulator",
    RegulatoryBody.MORTGAGE_INSURANCE: "Mortgage Insurer",
}

STATUS_MARKERS: dict[ComplianceStatus, str] = {
    ComplianceStatus.PASSED: "PASSED",
    ComplianceStatus.WARNING: "WARNING",
    ComplianceStatus.FAILED: "FAILED",
}


class OverallCompliance(StrEnum):
    """Aggregate verdict over every rule."""

    COMPLIANT = "compliant"
    NEEDS_REVIEW = "needs_review"
    NON_COMPLIANT = "non_compliant"


@dataclass
class ComplianceReport:
    """Result of one evaluation run."""

    application_id: str
    status: OverallCompliance
    checks: list[ComplianceCheck]
    recommendations: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utcnow)

    def render(self) -> str:
        """Render the report as Markdown, grouped by regulatory body."""
        lines = [
            "# Mortgage Application Compliance Report",
            "",
            f"- Application ID: {self.application_id}",
            f"- Generated: {self.generated_at:%Y-%m-%d %H:%M:%S} UTC",
            f"- Status: {self.status.value.replace('_', ' ').upper()}",
            "",
        ]

        for body, title in BODY_TITLES.items():
            checks = [c for c in self.checks if c.body == body]
            if not checks:
                continue
            lines.append(f"## {title}")
            lines.append("")
            for check in checks:
                lines.append(
                    f"- **{check.rule_id}** [{STATUS_MARKERS[check.status]}]: {check.description}"
                )
                lines.extend(f"  - {note}" for note in check.notes)
            lines.append("")

        if self.recommendations:
            lines.append("## Recommendations")
            lines.append("")
            lines.extend(f"{i}. {rec}" for i, rec in enumerate(self.recommendations, start=1))
            lines.append("")

        lines.append("_This report was generated automatically by the DocGuardian compliance engine._")
        return "\n".join(lines) + "\n"


def classify_outcome(outcome: RuleOutcome) -> ComplianceStatus:
    if outcome.issues:
        return ComplianceStatus.FAILED
    if outcome.warnings:
        return ComplianceStatus.WARNING
    return ComplianceStatus.PASSED


def aggregate_status(checks: list[ComplianceCheck]) -> OverallCompliance:
    statuses = {c.status for c in checks}
    if ComplianceStatus.FAILED in statuses:
        return OverallCompliance.NON_COMPLIANT
    if ComplianceStatus.WARNING in statuses:
        return OverallCompliance.NEEDS_REVIEW
    return OverallCompliance.COMPLIANT


class ComplianceEngine:
    """Evaluates an application snapshot against a fixed rule table.

    Args:
        rules: The rule table, evaluated in order.
        config: Thresholds passed to every validator.
    """

    def __init__(
        self,
        rules: tuple[ComplianceRule, ...] = DEFAULT_RULES,
        config: ComplianceConfig | None = None,
    ) -> None:
        self.rules = rules
        self.config = config or ComplianceConfig()

    def evaluate(self, application: Application) -> ComplianceReport:
        """Run every rule against ``application``.

        A validator that raises is recorded as a ``warning`` check rather
        than aborting the run.

        Args:
            application: Application snapshot including its documents.

        Returns:
            Per-rule checks, the overall verdict and de-duplicated
            recommendations.
        """
        checks: list[ComplianceCheck] = []
        recommendations: list[str] = []

        for rule in self.rules:
            try:
                outcome = rule.validate(application, self.config)
            except Exception as exc:
                logger.exception("Compliance rule %s raised", rule.id)
                outcome = RuleOutcome(
                    warnings=[f"Error validating {rule.name}: {exc}"],
                    recommendations=[f"Manual review required for {rule.name}"],
                )

            status = classify_outcome(outcome)
            checks.append(
                ComplianceCheck(
                    rule_id=rule.id,
                    body=rule.body,
                    status=status,
                    description=rule.description,
                    notes=outcome.issues + outcome.warnings,
                )
            )
            logger.debug("Rule %s -> %s", rule.id, status)
            for recommendation in outcome.recommendations:
                if recommendation not in recommendations:
                    recommendations.append(recommendation)

        report = ComplianceReport(
            application_id=application.id,
            status=aggregate_status(checks),
            checks=checks,
            recommendations=recommendations,
        )
        logger.info("Compliance for %s: %s", application.id, report.status)
        return report
