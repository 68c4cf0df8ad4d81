"""
Quality gate - scores extraction output

Pure functions, no I/O. The gate never blocks the pipeline; it only tells
downstream stages how far to trust the text.
"""
import re
from typing import List

from labelcheck.core.enums import QualityTier, Severity, Stage
from labelcheck.models.domain import ExtractionResult, Finding, QualityAssessment, StageReport

POOR_CONFIDENCE = 0.70
GOOD_CONFIDENCE = 0.85
EXCELLENT_MAX_LOW_WORD_RATIO = 0.1
HIGH_LOW_WORD_RATIO = 0.2
MIN_TEXT_LENGTH = 50
MAX_ARTIFACT_DENSITY = 0.02

ARTIFACT_PATTERN = re.compile(r"[|}{~`@#$^*+=\\]")

SOURCE = "OCR Quality Gate"
SOURCE_TAG = "OCR-QUALITY"


def artifact_density(text: str) -> float:
    """Share of characters that are typical recognition artifacts"""
    if not text:
        return 0.0
    return len(ARTIFACT_PATTERN.findall(text)) / len(text)


def assess_quality(extraction: ExtractionResult) -> QualityAssessment:
    """
    Score an extraction result

    Args:
        extraction: Output of the extraction stage

    Returns:
        QualityAssessment with tier, issues and recommendations
    """
    confidence = extraction.confidence
    ratio = extraction.low_confidence_word_ratio
    text = extraction.text or ""
    issues: List[str] = []
    recommendations: List[str] = []

    if confidence < POOR_CONFIDENCE:
        tier = QualityTier.POOR
        issues.append("Low overall confidence")
        recommendations.append("Consider image preprocessing or manual review")
    elif confidence < GOOD_CONFIDENCE:
        tier = QualityTier.FAIR
        issues.append("Moderate confidence")
        recommendations.append("Verify critical sections manually")
    elif ratio < EXCELLENT_MAX_LOW_WORD_RATIO:
        tier = QualityTier.EXCELLENT
    else:
        tier = QualityTier.GOOD

    if ratio > HIGH_LOW_WORD_RATIO:
        issues.append("High number of low-confidence words")
        recommendations.append("Review text for accuracy")

    if not text.strip():
        tier = QualityTier.POOR
        issues.append("No text detected")
        recommendations.append("Check if image contains readable text")
    elif len(text) < MIN_TEXT_LENGTH:
        tier = QualityTier.POOR
        issues.append("Very short text extracted")
        recommendations.append("Check if image contains readable text")

    if artifact_density(text) > MAX_ARTIFACT_DENSITY:
        issues.append("Contains OCR artifacts")
        recommendations.append("Rescan the label with better lighting or focus")

    return QualityAssessment(
        tier=tier,
        confidence=confidence,
        issues=issues,
        recommendations=recommendations,
        low_confidence_word_ratio=ratio,
    )


def quality_report(assessment: QualityAssessment) -> StageReport:
    """
    Findings for a quality assessment

    Issues are warnings on a poor extraction and informational otherwise.
    """
    issue_severity = Severity.WARNING if assessment.tier == QualityTier.POOR else Severity.INFO
    details = {"tier": assessment.tier.value, "confidence": round(assessment.confidence, 3)}

    findings = [
        Finding(
            type="OCR_QUALITY_ISSUE",
            severity=issue_severity,
            message=issue,
            source=SOURCE,
            source_tag=SOURCE_TAG,
            stage=Stage.QUALITY,
            details=details,
        )
        for issue in assessment.issues
    ]
    recommendations = [
        Finding(
            type="OCR_QUALITY_RECOMMENDATION",
            severity=Severity.INFO,
            message=recommendation,
            source=SOURCE,
            source_tag=SOURCE_TAG,
            stage=Stage.QUALITY,
        )
        for recommendation in assessment.recommendations
    ]
    return StageReport(
        stage=Stage.QUALITY, ran=True, findings=findings, recommendations=recommendations
    )
