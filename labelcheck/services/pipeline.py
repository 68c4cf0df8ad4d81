"""
Label validation pipeline

Extraction -> quality gate -> AI correction/extraction -> regulatory
cross-check -> aggregator, under one run deadline.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional

from labelcheck.core.enums import Severity, Stage
from labelcheck.core.logging import bind_run_context, clear_run_context, get_logger
from labelcheck.models.domain import (
    ComplianceVerdict,
    ExtractionResult,
    Finding,
    QualityAssessment,
    RegulatoryCheckResult,
    StageReport,
    ValidationRecord,
)
from labelcheck.models.requests import LabelJob
from labelcheck.observability.metrics import active_runs, record_verdict
from labelcheck.services.aggregator import aggregate
from labelcheck.services.ai_validation import AIValidationService, validation_report
from labelcheck.services.quality_gate import assess_quality, quality_report
from labelcheck.services.regulatory_check import RegulatoryCheckService
from labelcheck.services.text_extraction import TextExtractionService

logger = get_logger(__name__)


@dataclass
class RunState:
    """Everything one run has produced so far"""
    reports: List[StageReport] = field(default_factory=list)
    extraction: Optional[ExtractionResult] = None
    quality: Optional[QualityAssessment] = None
    validation: Optional[ValidationRecord] = None
    regulatory: Optional[RegulatoryCheckResult] = None
    current_stage: Stage = Stage.EXTRACTION

    @property
    def corrected_text(self) -> str:
        if self.validation is not None and self.validation.corrected_text:
            return self.validation.corrected_text
        if self.extraction is not None:
            return self.extraction.text
        return ""

    @property
    def ingredients(self) -> List[str]:
        if self.regulatory is not None and self.regulatory.ingredients:
            return list(self.regulatory.ingredients)
        if self.validation is not None:
            return list(self.validation.extracted.ingredients)
        return []


def extraction_report(extraction: ExtractionResult) -> StageReport:
    """
    Findings for the extraction stage

    The stage counts as run even when the engine failed; a failure or an
    image without text is an ERROR so the label goes to review.
    """
    if extraction.success and extraction.text.strip():
        return StageReport(stage=Stage.EXTRACTION, ran=True)
    if extraction.success:
        return StageReport(
            stage=Stage.EXTRACTION,
            ran=True,
            findings=[Finding(
                type="OCR_NO_TEXT",
                severity=Severity.ERROR,
                message="No text could be read from the label image",
                source="OCR Engine",
                source_tag="OCR-ERROR",
                stage=Stage.EXTRACTION,
                details={"image_source": extraction.image_source},
            )],
        )
    return StageReport(
        stage=Stage.EXTRACTION,
        ran=True,
        findings=[Finding(
            type="OCR_FAILED",
            severity=Severity.ERROR,
            message=f"Text extraction failed: {extraction.error}",
            source="OCR Engine",
            source_tag="OCR-ERROR",
            stage=Stage.EXTRACTION,
            details={"image_source": extraction.image_source},
        )],
    )


def timeout_report(timeout_s: float, stage: Stage) -> StageReport:
    return StageReport(
        stage=Stage.PIPELINE,
        ran=False,
        findings=[Finding(
            type="PIPELINE_TIMEOUT",
            severity=Severity.ERROR,
            message=f"Label validation did not finish within {timeout_s:g}s (stopped during {stage.value})",
            source="Label Validation Pipeline",
            source_tag="PIPELINE",
            stage=Stage.PIPELINE,
            details={"timeout_s": timeout_s, "stage": stage.value},
        )],
    )


class LabelValidationPipeline:
    """Runs the stages for one label and returns the verdict"""

    def __init__(
        self,
        extraction: TextExtractionService,
        ai_validation: AIValidationService,
        regulatory: RegulatoryCheckService,
        timeout_s: Optional[float] = 300.0,
    ):
        self.extraction = extraction
        self.ai_validation = ai_validation
        self.regulatory = regulatory
        self.timeout_s = timeout_s

    async def run(self, job: LabelJob) -> ComplianceVerdict:
        """
        Validate one label

        Never raises for stage failures; cancellation from the caller
        propagates after in-flight tool processes are killed.
        """
        start_time = time.time()
        state = RunState()
        bind_run_context(workflow_id=job.workflow_id, filename=job.filename)
        active_runs.inc()
        logger.info("Label validation started", label_type=job.label_type, regulations=job.regulations)

        try:
            try:
                if self.timeout_s:
                    await asyncio.wait_for(self._run_stages(job, state), timeout=self.timeout_s)
                else:
                    await self._run_stages(job, state)
            except asyncio.TimeoutError:
                logger.error(
                    "Label validation timed out",
                    timeout_s=self.timeout_s,
                    stage=state.current_stage.value,
                )
                state.reports.append(timeout_report(self.timeout_s, state.current_stage))

            verdict = aggregate(
                state.reports,
                workflow_id=job.workflow_id,
                filename=job.filename,
                corrected_text=state.corrected_text,
                ingredients=state.ingredients,
                quality_tier=state.quality.tier if state.quality else None,
            )
            duration = time.time() - start_time
            record_verdict(verdict.status.value, duration)
            logger.info(
                "Label validation completed",
                status=verdict.status.value,
                findings=len(verdict.findings),
                blocking=len(verdict.blocking_findings),
                recommendations=len(verdict.recommendations),
                duration_ms=int(duration * 1000),
            )
            return verdict
        finally:
            active_runs.dec()
            clear_run_context()

    async def _run_stages(self, job: LabelJob, state: RunState) -> None:
        state.current_stage = Stage.EXTRACTION
        extraction = await self.extraction.extract(job)
        state.extraction = extraction
        state.reports.append(extraction_report(extraction))
        if not extraction.success:
            return

        state.current_stage = Stage.QUALITY
        state.quality = assess_quality(extraction)
        state.reports.append(quality_report(state.quality))
        logger.info("Quality assessed", tier=state.quality.tier.value, issues=len(state.quality.issues))

        if not extraction.text.strip():
            logger.warning("No text extracted, skipping AI validation")
            return

        state.current_stage = Stage.AI_VALIDATION
        state.validation = await self.ai_validation.validate(
            extraction.text, state.quality, extraction.detected_sections
        )
        state.reports.append(validation_report(state.validation))

        state.current_stage = Stage.REGULATORY
        state.regulatory = await self.regulatory.check(state.validation)
        state.reports.append(state.regulatory.to_report())
