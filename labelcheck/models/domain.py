"""
Domain models - records passed between pipeline stages
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from labelcheck.core.enums import (
    AIProvider,
    BLOCKING_SEVERITIES,
    ComplianceStatus,
    QualityTier,
    Severity,
    Stage,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BoundingBox(BaseModel):
    """Word position in pixels"""
    model_config = ConfigDict(frozen=True)

    x0: int = Field(..., description="Left")
    y0: int = Field(..., description="Top")
    x1: int = Field(..., description="Right")
    y1: int = Field(..., description="Bottom")


class OCRWord(BaseModel):
    """Single recognized word"""
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Word text as recognized")
    confidence: float = Field(..., ge=0.0, le=100.0, description="Engine confidence (0-100)")
    bbox: Optional[BoundingBox] = Field(None, description="Word position")


class ExtractionResult(BaseModel):
    """Text extraction output for one image"""
    model_config = ConfigDict(frozen=True)

    success: bool = Field(True, description="Whether the engine produced a result")
    error: Optional[str] = Field(None, description="Failure reason when success is False")
    filename: Optional[str] = Field(None, description="Uploaded file name")
    image_source: str = Field("buffer", description="url, path or 'buffer'")
    text: str = Field("", description="Full recognized text")
    confidence: float = Field(0.0, ge=0.0, le=1.0, description="Mean confidence rescaled to 0-1")
    mean_confidence: float = Field(0.0, ge=0.0, le=100.0, description="Engine mean confidence (0-100)")
    words: List[OCRWord] = Field(default_factory=list)
    lines: List[str] = Field(default_factory=list, description="Non-empty recognized lines")
    total_words: int = 0
    low_confidence_words: int = 0
    average_word_confidence: float = 0.0
    detected_sections: Dict[str, str] = Field(default_factory=dict)
    processing_time_ms: int = 0
    extracted_at: datetime = Field(default_factory=utc_now)

    @property
    def low_confidence_word_ratio(self) -> float:
        if self.total_words <= 0:
            return 0.0
        return self.low_confidence_words / self.total_words

    @classmethod
    def failed(
        cls,
        error: str,
        filename: Optional[str] = None,
        image_source: str = "buffer",
        processing_time_ms: int = 0,
    ) -> "ExtractionResult":
        return cls(
            success=False,
            error=error,
            filename=filename,
            image_source=image_source,
            processing_time_ms=processing_time_ms,
        )


class QualityAssessment(BaseModel):
    """Quality gate output"""
    model_config = ConfigDict(frozen=True)

    tier: QualityTier
    confidence: float = Field(..., ge=0.0, le=1.0)
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    low_confidence_word_ratio: float = 0.0


class StructuredLabel(BaseModel):
    """Regulatory fields extracted from label text. Every field is optional."""
    model_config = ConfigDict(populate_by_name=True)

    product_name: Optional[str] = Field(None, alias="productName")
    brand_name: Optional[str] = Field(None, alias="brandName")
    ingredients: List[str] = Field(default_factory=list)
    active_ingredients: List[str] = Field(default_factory=list, alias="activeIngredients")
    allergens: List[str] = Field(default_factory=list)
    nutritional_info: Dict[str, str] = Field(default_factory=dict, alias="nutritionalInfo")
    warnings: List[str] = Field(default_factory=list)
    directions: Optional[str] = None
    claims: List[str] = Field(default_factory=list)
    net_weight: Optional[str] = Field(None, alias="netWeight")

    @field_validator(
        "ingredients", "active_ingredients", "allergens", "warnings", "claims",
        mode="before",
    )
    @classmethod
    def coerce_string_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value.strip()] if value.strip() else []
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        return [str(value)]

    @field_validator("nutritional_info", mode="before")
    @classmethod
    def coerce_nutrition(cls, value: Any) -> Dict[str, str]:
        if not value or not isinstance(value, dict):
            return {}
        # nested maps (otherVitamins etc.) are flattened with a dotted key
        flat = {}
        for key, item in value.items():
            if item is None:
                continue
            if isinstance(item, dict):
                for sub_key, sub_item in item.items():
                    if sub_item is not None:
                        flat[f"{key}.{sub_key}"] = str(sub_item)
            else:
                flat[str(key)] = str(item)
        return flat

    @field_validator("product_name", "brand_name", "directions", "net_weight", mode="before")
    @classmethod
    def coerce_optional_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            value = "; ".join(str(item) for item in value)
        value = str(value).strip()
        return value or None


class ValidationRecord(BaseModel):
    """AI correction and extraction output"""
    success: bool = Field(..., description="False for every degraded/stub result")
    is_valid: bool = False
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    corrected_text: str = ""
    original_text: str = ""
    extracted: StructuredLabel = Field(default_factory=StructuredLabel)
    ocr_issues_found: List[str] = Field(default_factory=list)
    completeness_score: float = Field(0.0, ge=0.0, le=10.0)
    compliance_issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    quality_improvement: str = "None"
    ai_provider: AIProvider = AIProvider.NONE
    ai_model: Optional[str] = None
    errors: Dict[str, str] = Field(default_factory=dict, description="Per-provider failure messages")
    raw_response: Optional[str] = Field(None, description="Truncated model output kept on parse failure")
    input_quality: Optional[QualityTier] = None
    input_confidence: Optional[float] = None
    processing_time_ms: int = 0
    validated_at: datetime = Field(default_factory=utc_now)


class Finding(BaseModel):
    """Normalized issue or recommendation emitted by a stage"""
    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    message: str
    source: str
    source_tag: str
    stage: Stage
    ingredient: Optional[str] = None
    claim: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def is_blocking(self) -> bool:
        return self.severity in BLOCKING_SEVERITIES


class StageReport(BaseModel):
    """What one stage contributed to the verdict"""
    stage: Stage
    ran: bool
    findings: List[Finding] = Field(default_factory=list)
    recommendations: List[Finding] = Field(default_factory=list)


class RegulatoryCheckResult(BaseModel):
    """Regulatory cross-check output, keeps the inputs it was computed from"""
    ran: bool
    ingredients: List[str] = Field(default_factory=list)
    claims: List[str] = Field(default_factory=list)
    issues: List[Finding] = Field(default_factory=list)
    recommendations: List[Finding] = Field(default_factory=list)
    processing_time_ms: int = 0

    def to_report(self) -> StageReport:
        return StageReport(
            stage=Stage.REGULATORY,
            ran=self.ran,
            findings=list(self.issues),
            recommendations=list(self.recommendations),
        )


class StageCompletion(BaseModel):
    """Which stages actually ran"""
    extraction: bool = False
    ai_validation: bool = False
    regulatory_check: bool = False


class ComplianceVerdict(BaseModel):
    """Terminal artifact of a pipeline run"""
    workflow_id: Optional[str] = None
    filename: Optional[str] = None
    status: ComplianceStatus
    findings: List[Finding] = Field(default_factory=list)
    recommendations: List[Finding] = Field(default_factory=list)
    stage_completion: StageCompletion = Field(default_factory=StageCompletion)
    corrected_text: str = ""
    ingredients: List[str] = Field(default_factory=list)
    quality_tier: Optional[QualityTier] = None
    completed_at: datetime = Field(default_factory=utc_now)

    @property
    def blocking_findings(self) -> List[Finding]:
        return [finding for finding in self.findings if finding.is_blocking]
