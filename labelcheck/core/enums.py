"""
Enums for type safety
"""
from enum import Enum


class OCREngine(str, Enum):
    """OCR engines"""
    TESSERACT = "tesseract"


class ImageFormat(str, Enum):
    """Image formats"""
    JPG = "jpg"
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    TIFF = "tiff"
    BMP = "bmp"


class QualityTier(str, Enum):
    """OCR quality tiers assigned by the quality gate"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Severity(str, Enum):
    """Finding severities"""
    INFO = "INFO"
    WARNING = "WARNING"
    COMPLIANCE = "COMPLIANCE"  # label fails a regulatory rule
    ERROR = "ERROR"  # a stage could not do its job


BLOCKING_SEVERITIES = frozenset({Severity.COMPLIANCE, Severity.ERROR})


class ComplianceStatus(str, Enum):
    """Final verdict status"""
    APPROVED = "APPROVED"
    REQUIRES_REVIEW = "REQUIRES_REVIEW"


class AIProvider(str, Enum):
    """Language model provider slot that produced a validation record"""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    NONE = "none"


class Stage(str, Enum):
    """Pipeline stages, used as finding provenance"""
    EXTRACTION = "extraction"
    QUALITY = "quality"
    AI_VALIDATION = "ai_validation"
    REGULATORY = "regulatory"
    PIPELINE = "pipeline"


class SectionName(str, Enum):
    """Regulatory label sections detected in OCR text"""
    INGREDIENTS = "ingredients"
    DIRECTIONS = "directions"
    WARNINGS = "warnings"
    CAUTION = "caution"
    DOSAGE = "dosage"
    ACTIVE_INGREDIENTS = "active_ingredients"
    INACTIVE_INGREDIENTS = "inactive_ingredients"


class RegulatoryTool(str, Enum):
    """Tools exposed by the regulatory data server"""
    VALIDATE_INGREDIENTS = "validate_ingredients"
    CHECK_ADDITIVE_STATUS = "check_additive_status"
    VALIDATE_NUTRITIONAL_CLAIMS = "validate_nutritional_claims"
    CHECK_ALLERGEN_REQUIREMENTS = "check_allergen_requirements"


class TransportMode(str, Enum):
    """How the regulatory tool server is reached"""
    SUBPROCESS = "subprocess"  # one process per call
    POOL = "pool"  # long-lived workers
