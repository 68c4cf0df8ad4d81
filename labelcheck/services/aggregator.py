"""
Compliance aggregator - stage reports to one verdict

Pure: concatenates what the stages found and derives the status from
severities. It never re-validates anything.
"""
from typing import List, Optional, Sequence

from labelcheck.core.enums import ComplianceStatus, QualityTier, Stage
from labelcheck.models.domain import ComplianceVerdict, Finding, StageCompletion, StageReport


def verdict_status(findings: Sequence[Finding]) -> ComplianceStatus:
    """REQUIRES_REVIEW as soon as one finding is COMPLIANCE or ERROR"""
    if any(finding.is_blocking for finding in findings):
        return ComplianceStatus.REQUIRES_REVIEW
    return ComplianceStatus.APPROVED


def aggregate(
    reports: Sequence[StageReport],
    workflow_id: Optional[str] = None,
    filename: Optional[str] = None,
    corrected_text: str = "",
    ingredients: Optional[List[str]] = None,
    quality_tier: Optional[QualityTier] = None,
) -> ComplianceVerdict:
    """
    Build the verdict for a run

    Args:
        reports: Stage reports in pipeline order
        workflow_id: Run identifier
        filename: Label file name
        corrected_text: Best available label text
        ingredients: Ingredients the regulatory stage saw
        quality_tier: Quality gate tier

    Returns:
        ComplianceVerdict
    """
    findings: List[Finding] = []
    recommendations: List[Finding] = []
    for report in reports:
        findings.extend(report.findings)
        recommendations.extend(report.recommendations)

    ran = {report.stage for report in reports if report.ran}

    return ComplianceVerdict(
        workflow_id=workflow_id,
        filename=filename,
        status=verdict_status(findings),
        findings=findings,
        recommendations=recommendations,
        stage_completion=StageCompletion(
            extraction=Stage.EXTRACTION in ran,
            ai_validation=Stage.AI_VALIDATION in ran,
            regulatory_check=Stage.REGULATORY in ran,
        ),
        corrected_text=corrected_text,
        ingredients=list(ingredients or []),
        quality_tier=quality_tier,
    )
