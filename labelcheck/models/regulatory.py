"""
Payloads returned by the regulatory data tools

The tool server speaks camelCase JSON; these models decode it once at the
boundary.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ToolPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IngredientValidation(_ToolPayload):
    """Result for a single ingredient"""
    ingredient: str
    fda_approved: bool = Field(False, alias="fdaApproved")
    gras_status: Optional[str] = Field(None, alias="grasStatus")
    safety_level: Optional[str] = Field(None, alias="safetyLevel")
    warnings: List[str] = Field(default_factory=list)
    regulatory_notes: List[str] = Field(default_factory=list, alias="regulatoryNotes")
    source: Optional[str] = None
    error: Optional[str] = Field(None, description="Lookup failure for this ingredient")

    @property
    def is_gras(self) -> bool:
        return (self.gras_status or "").upper() == "GRAS"


class IngredientSummary(_ToolPayload):
    total_ingredients: int = Field(0, alias="totalIngredients")
    approved: int = 0
    warnings: int = 0
    source: Optional[str] = None


class IngredientValidationReport(_ToolPayload):
    """validate_ingredients payload"""
    validation_results: List[IngredientValidation] = Field(
        default_factory=list, alias="validationResults"
    )
    summary: Optional[IngredientSummary] = None


class ClaimValidation(_ToolPayload):
    """Verdict for a single nutritional claim"""
    claim: str
    is_valid: bool = Field(False, alias="isValid")
    reason: str = ""
    fda_source: Optional[str] = Field(None, alias="fdaSource")


class ClaimValidationReport(_ToolPayload):
    """validate_nutritional_claims payload"""
    claim_validations: List[ClaimValidation] = Field(
        default_factory=list, alias="claimValidations"
    )
    source: Optional[str] = None


class AdditiveStatus(_ToolPayload):
    """check_additive_status payload"""
    additive: str
    status: str = "UNKNOWN"
    cfr: Optional[str] = None
    source: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.status.upper() == "APPROVED"


class AllergenFinding(_ToolPayload):
    ingredient: str
    allergen: str
    requirement: str = ""
    regulation: Optional[str] = None


class AllergenReport(_ToolPayload):
    """check_allergen_requirements payload"""
    allergen_findings: List[AllergenFinding] = Field(
        default_factory=list, alias="allergenFindings"
    )
    total_ingredients: int = Field(0, alias="totalIngredients")
    allergens_found: int = Field(0, alias="allergensFound")
    compliance_status: Optional[str] = Field(None, alias="complianceStatus")
