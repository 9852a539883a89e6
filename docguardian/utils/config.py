"""Configuration management for DocGuardian.

Loads and validates YAML configuration with defaults for OCR,
classification, extraction, issue analysis, workflow automation and
compliance thresholds.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR collaborator."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3
    pdf_dpi: int = 300


class ClassificationConfig(BaseModel):
    """Configuration for document-type classification."""

    patterns_path: str = "configs/classification.yaml"
    fallback_confidence: float = Field(default=0.1, ge=0.0, le=1.0)


class ExtractionConfig(BaseModel):
    """Configuration for pattern-based field extraction."""

    rules_path: str = "configs/extraction_rules.yaml"


class AnalysisConfig(BaseModel):
    """Configuration for the issue analyzer."""

    low_confidence_threshold: int = Field(default=60, ge=0, le=100)


class WorkflowConfig(BaseModel):
    """Configuration for the stage machine."""

    stages_path: str = "configs/stages.yaml"
    average_processing_days: float = Field(default=30.0, ge=0.0)


class ComplianceConfig(BaseModel):
    """Thresholds used by the compliance rule table."""

    min_down_payment_percent: float = 5.0
    down_payment_tier_threshold: float = 500_000.0
    down_payment_upper_tier_percent: float = 10.0
    down_payment_high_value_threshold: float = 1_000_000.0
    down_payment_high_value_percent: float = 20.0
    down_payment_warning_factor: float = 1.2
    max_debt_to_income_percent: float = 44.0
    debt_to_income_warning_factor: float = 0.8
    large_transaction_threshold: float = 10_000.0
    income_variance_tolerance_percent: float = 15.0
    min_document_confidence: int = 70


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    compliance: ComplianceConfig = Field(default_factory=ComplianceConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()


def load_yaml_table(path: Path) -> dict | list | None:
    """Read an optional YAML data table.

    Args:
        path: Location of the table.

    Returns:
        Parsed YAML content, or ``None`` when the file is missing or empty.
    """
    if not path.exists():
        logger.debug("No table file at %s", path)
        return None
    with open(path) as f:
        return yaml.safe_load(f) or None
