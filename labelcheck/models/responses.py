"""
Pydantic models for language model responses
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from labelcheck.core.enums import AIProvider
from labelcheck.models.domain import StructuredLabel, utc_now

REQUIRED_VALIDATION_KEYS = ("isValid", "confidence", "correctedText", "extractedInformation")


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return [str(value)]


class AIValidationPayload(BaseModel):
    """Validation JSON as returned by the model"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_valid: bool = Field(..., alias="isValid")
    confidence: float = Field(..., ge=0.0, le=1.0)
    corrected_text: str = Field(..., alias="correctedText")
    extracted_information: StructuredLabel = Field(..., alias="extractedInformation")
    ocr_issues_found: List[str] = Field(default_factory=list, alias="ocrIssuesFound")
    completeness_score: float = Field(0.0, ge=0.0, le=10.0, alias="completenessScore")
    compliance_issues: List[str] = Field(default_factory=list, alias="complianceIssues")
    recommendations: List[str] = Field(default_factory=list)
    quality_improvement: str = Field("None", alias="qualityImprovement")

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, v: Any) -> Any:
        # some models answer on a 0-100 scale
        if isinstance(v, (int, float)) and 1.0 < v <= 100.0:
            return v / 100.0
        return v

    @field_validator("completeness_score", mode="before")
    @classmethod
    def clamp_completeness(cls, v: Any) -> Any:
        if v is None:
            return 0.0
        if isinstance(v, (int, float)):
            return max(0.0, min(10.0, float(v)))
        return v

    @field_validator("extracted_information", mode="before")
    @classmethod
    def empty_extraction(cls, v: Any) -> Any:
        return v if v is not None else {}

    @field_validator("ocr_issues_found", "compliance_issues", "recommendations", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("quality_improvement", mode="before")
    @classmethod
    def coerce_quality_improvement(cls, v: Any) -> str:
        return str(v) if v is not None else "None"


class TextCorrection(BaseModel):
    """Result of a plain correction pass"""
    original_text: str
    corrected_text: str
    ai_provider: AIProvider = AIProvider.NONE
    error: Optional[str] = None
    corrected_at: datetime = Field(default_factory=utc_now)


class StructuredExtraction(BaseModel):
    """Result of an extraction-only pass"""
    structured: StructuredLabel = Field(default_factory=StructuredLabel)
    ai_provider: AIProvider = AIProvider.NONE
    error: Optional[str] = None
    extracted_at: datetime = Field(default_factory=utc_now)
