"""
AI correction and extraction stage

Sends OCR text to a language model, gets back a verbatim correction plus a
structured regulatory record, and never raises: every failure mode ends in a
well-formed ValidationRecord.
"""
import time
from typing import Dict, List, Optional

from labelcheck.core.enums import AIProvider, Severity, Stage
from labelcheck.core.logging import get_logger
from labelcheck.core.results import Ok
from labelcheck.models.domain import (
    Finding,
    QualityAssessment,
    StageReport,
    StructuredLabel,
    ValidationRecord,
)
from labelcheck.models.responses import StructuredExtraction, TextCorrection
from labelcheck.observability.metrics import record_stage
from labelcheck.services.prompts import (
    build_correction_prompt,
    build_extraction_prompt,
    build_validation_prompt,
)
from labelcheck.services.provider_policy import FallbackPolicy, PolicyOutcome
from labelcheck.services.response_parser import (
    parse_structured_label,
    parse_validation_response,
)

logger = get_logger(__name__)

PARSE_FAILURE_CONFIDENCE = 0.4
PARTIAL_OUTAGE_CONFIDENCE = 0.4
FULL_OUTAGE_CONFIDENCE = 0.3

SOURCE = "AI Validation"


class AIValidationService:
    """AI correction and extraction over an ordered provider policy"""

    def __init__(self, policy: FallbackPolicy, max_tokens: int = 4000, temperature: float = 0.1):
        self.policy = policy
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def validate(
        self,
        ocr_text: str,
        quality: Optional[QualityAssessment] = None,
        sections: Optional[Dict[str, str]] = None,
    ) -> ValidationRecord:
        """
        Correct and extract a label

        Args:
            ocr_text: Text from the extraction stage
            quality: Quality gate output, passed to the model as context
            sections: Sections detected by keyword matching

        Returns:
            ValidationRecord; success=False for every degraded outcome
        """
        start_time = time.time()
        logger.info("Starting AI validation", text_length=len(ocr_text or ""))

        try:
            prompt = build_validation_prompt(ocr_text, quality, sections)
            outcome = await self.policy.complete(
                prompt, max_tokens=self.max_tokens, temperature=self.temperature
            )
            record = self._record_from_outcome(outcome, ocr_text)
        except Exception as e:
            logger.error("AI validation failed", error=str(e), exc_info=True)
            record = ValidationRecord(
                success=False,
                is_valid=False,
                confidence=0.0,
                corrected_text=ocr_text or "",
                ocr_issues_found=[f"AI validation error: {str(e)}"],
                completeness_score=0,
                compliance_issues=["AI validation failed - manual review required"],
                recommendations=["Retry AI validation or perform manual review"],
                ai_provider=AIProvider.NONE,
                errors={"unexpected": str(e)},
            )

        record = record.model_copy(update={
            "original_text": ocr_text or "",
            "input_quality": quality.tier if quality else None,
            "input_confidence": quality.confidence if quality else None,
            "processing_time_ms": int((time.time() - start_time) * 1000),
        })

        record_stage("ai_validation", "success" if record.success else "degraded")
        logger.info(
            "AI validation completed",
            success=record.success,
            provider=record.ai_provider.value,
            valid=record.is_valid,
            confidence=round(record.confidence, 2),
            ingredients=len(record.extracted.ingredients),
            ocr_issues=len(record.ocr_issues_found),
            processing_time_ms=record.processing_time_ms,
        )
        return record

    def _record_from_outcome(self, outcome: PolicyOutcome, ocr_text: str) -> ValidationRecord:
        if not outcome.answered:
            return self._outage_record(outcome, ocr_text)

        parsed = parse_validation_response(outcome.completion)
        if isinstance(parsed, Ok):
            payload = parsed.value
            return ValidationRecord(
                success=True,
                is_valid=payload.is_valid,
                confidence=payload.confidence,
                corrected_text=payload.corrected_text,
                extracted=payload.extracted_information,
                ocr_issues_found=payload.ocr_issues_found,
                completeness_score=payload.completeness_score,
                compliance_issues=payload.compliance_issues,
                recommendations=payload.recommendations,
                quality_improvement=payload.quality_improvement,
                ai_provider=outcome.slot,
                ai_model=outcome.model,
                errors=outcome.errors,
            )

        logger.warning(
            "Could not parse AI response as JSON",
            provider=outcome.provider_name,
            reason=parsed.reason,
        )
        errors = dict(outcome.errors)
        errors[outcome.slot.value] = parsed.reason
        return ValidationRecord(
            success=False,
            is_valid=False,
            confidence=PARSE_FAILURE_CONFIDENCE,
            corrected_text=ocr_text or "",
            ocr_issues_found=["Could not parse AI validation response"],
            completeness_score=4,
            compliance_issues=["AI response parsing failed"],
            recommendations=["Manual review recommended"],
            ai_provider=outcome.slot,
            ai_model=outcome.model,
            errors=errors,
            raw_response=parsed.raw,
        )

    @staticmethod
    def _outage_record(outcome: PolicyOutcome, ocr_text: str) -> ValidationRecord:
        if outcome.unconfigured:
            confidence = PARTIAL_OUTAGE_CONFIDENCE
            ocr_issues = ["Configured AI providers failed and no fallback provider is available"]
            compliance = ["AI validation partially unavailable"]
            recommendations = ["Configure a fallback AI provider or perform manual review"]
        else:
            confidence = FULL_OUTAGE_CONFIDENCE
            ocr_issues = ["All AI providers failed to process"]
            compliance = ["AI validation unavailable"]
            recommendations = ["Manual review required"]

        return ValidationRecord(
            success=False,
            is_valid=False,
            confidence=confidence,
            corrected_text=ocr_text or "",
            ocr_issues_found=ocr_issues,
            completeness_score=round(confidence * 10),
            compliance_issues=compliance,
            recommendations=recommendations,
            ai_provider=AIProvider.NONE,
            errors=dict(outcome.errors),
        )

    async def correct_text(self, ocr_text: str) -> TextCorrection:
        """
        Plain OCR error correction

        Returns the original text when no provider answers.
        """
        try:
            outcome = await self.policy.complete(
                build_correction_prompt(ocr_text),
                max_tokens=self.max_tokens // 2,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error("OCR text correction failed", error=str(e))
            return TextCorrection(original_text=ocr_text, corrected_text=ocr_text, error=str(e))

        if not outcome.answered or not (outcome.completion or "").strip():
            error = "; ".join(f"{slot}: {msg}" for slot, msg in outcome.errors.items()) or "Empty response"
            logger.warning("OCR text correction unavailable", error=error)
            return TextCorrection(original_text=ocr_text, corrected_text=ocr_text, error=error)

        logger.info("OCR text correction completed", provider=outcome.slot.value)
        return TextCorrection(
            original_text=ocr_text,
            corrected_text=outcome.completion.strip(),
            ai_provider=outcome.slot,
        )

    async def extract_structured_info(self, label_text: str) -> StructuredExtraction:
        """
        Structured extraction from already corrected text

        Returns an empty StructuredLabel plus an error when extraction fails.
        """
        try:
            outcome = await self.policy.complete(
                build_extraction_prompt(label_text),
                max_tokens=self.max_tokens // 2,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error("Structured extraction failed", error=str(e))
            return StructuredExtraction(error=str(e))

        if not outcome.answered:
            error = "; ".join(f"{slot}: {msg}" for slot, msg in outcome.errors.items())
            return StructuredExtraction(error=error or "No AI provider available")

        parsed = parse_structured_label(outcome.completion)
        if not isinstance(parsed, Ok):
            logger.warning("Could not parse structured information", reason=parsed.reason)
            return StructuredExtraction(
                ai_provider=outcome.slot,
                error=f"Could not parse structured information: {parsed.reason}",
            )

        logger.info("Structured extraction completed", ingredients=len(parsed.value.ingredients))
        return StructuredExtraction(structured=parsed.value, ai_provider=outcome.slot)


def validation_report(record: ValidationRecord) -> StageReport:
    """Findings for a validation record"""
    findings: List[Finding] = []
    recommendations: List[Finding] = []
    source = f"{SOURCE} ({record.ai_model})" if record.ai_model else SOURCE

    if not record.success:
        parse_failure = record.ai_provider != AIProvider.NONE
        findings.append(Finding(
            type="AI_VALIDATION_UNAVAILABLE",
            severity=Severity.ERROR,
            message=(
                "AI response could not be parsed - manual review required"
                if parse_failure
                else "AI validation unavailable - manual review required"
            ),
            source=source,
            source_tag="AI-PARSE" if parse_failure else "AI-PROVIDER",
            stage=Stage.AI_VALIDATION,
            details={"errors": dict(record.errors), "provider": record.ai_provider.value},
        ))
        for text in record.recommendations:
            recommendations.append(_finding("AI_RECOMMENDATION", Severity.INFO, text, source, "AI-RECOMMENDATION"))
        return StageReport(
            stage=Stage.AI_VALIDATION, ran=True, findings=findings, recommendations=recommendations
        )

    for issue in record.compliance_issues:
        findings.append(_finding("AI_COMPLIANCE_ISSUE", Severity.COMPLIANCE, issue, source, "AI-COMPLIANCE"))

    if not record.is_valid and not record.compliance_issues:
        findings.append(_finding(
            "AI_LABEL_INVALID",
            Severity.WARNING,
            "AI validation marked the label as not valid without naming an issue",
            source,
            "AI-COMPLIANCE",
        ))

    for issue in record.ocr_issues_found:
        findings.append(_finding("OCR_CORRECTION", Severity.INFO, issue, source, "AI-OCR"))

    for text in record.recommendations:
        recommendations.append(_finding("AI_RECOMMENDATION", Severity.INFO, text, source, "AI-RECOMMENDATION"))

    return StageReport(
        stage=Stage.AI_VALIDATION, ran=True, findings=findings, recommendations=recommendations
    )


def _finding(type_: str, severity: Severity, message: str, source: str, source_tag: str) -> Finding:
    return Finding(
        type=type_,
        severity=severity,
        message=message,
        source=source,
        source_tag=source_tag,
        stage=Stage.AI_VALIDATION,
    )
