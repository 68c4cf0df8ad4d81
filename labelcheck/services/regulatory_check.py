"""
Regulatory cross-check stage

Sends extracted ingredients, claims and allergen statements to the regulatory
tool server and turns its answers into findings. Never raises: tool
failures become warnings.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from labelcheck.core.enums import RegulatoryTool, Severity, Stage
from labelcheck.core.logging import get_logger
from labelcheck.core.results import Ok, ParseError, TransportError
from labelcheck.infrastructure.regulatory.client import RegulatoryClient
from labelcheck.models.domain import Finding, RegulatoryCheckResult, ValidationRecord
from labelcheck.models.regulatory import (
    AdditiveStatus,
    AllergenReport,
    ClaimValidationReport,
    IngredientValidationReport,
)
from labelcheck.observability.metrics import record_stage

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

Findings = Tuple[List[Finding], List[Finding]]

SERVICE_UNAVAILABLE_MESSAGE = "FDA validation service temporarily unavailable - manual review recommended"

INGREDIENT_SOURCE = "FDA Food Data Central"
SERVER_SOURCE = "FDA MCP Server"
CLAIMS_SOURCE = "FDA Nutrition Labeling Guidelines"
ALLERGEN_SOURCE = "FDA Allergen Labeling Requirements"

INGREDIENT_TAG = "FDA-INGREDIENT"
GRAS_TAG = "FDA-GRAS"
CLAIMS_TAG = "FDA-CLAIMS"
ALLERGEN_TAG = "FDA-ALLERGEN"
ADDITIVE_TAG = "FDA-ADDITIVE"

# words that count as declaring a major allergen in the label's allergen statement
ALLERGEN_DECLARATIONS = {
    "milk": ("milk", "dairy"),
    "eggs": ("egg",),
    "fish": ("fish",),
    "shellfish": ("shellfish", "crustacean"),
    "tree nuts": ("tree nut", "almond", "walnut", "cashew", "pecan", "hazelnut"),
    "peanuts": ("peanut",),
    "wheat": ("wheat", "gluten"),
    "soybeans": ("soy",),
}


def _finding(type_: str, severity: Severity, message: str, source: str, source_tag: str, **extra: Any) -> Finding:
    return Finding(
        type=type_,
        severity=severity,
        message=message,
        source=source,
        source_tag=source_tag,
        stage=Stage.REGULATORY,
        **extra,
    )


def failure_finding(result: Union[ParseError, TransportError], source_tag: str, tool: str) -> Finding:
    """Warning for a tool call that produced nothing usable"""
    if isinstance(result, TransportError) and result.timed_out:
        return _finding(
            "FDA_SERVICE_UNAVAILABLE",
            Severity.WARNING,
            SERVICE_UNAVAILABLE_MESSAGE,
            SERVER_SOURCE,
            source_tag,
            details={"tool": tool, "cause": result.cause},
        )
    if isinstance(result, TransportError):
        details = {"tool": tool, "cause": result.cause}
    else:
        details = {"tool": tool, "reason": result.reason, "raw": result.raw}
    return _finding(
        "FDA_SERVICE_ERROR",
        Severity.WARNING,
        f"FDA validation service error - manual review recommended ({details.get('cause') or details.get('reason')})",
        SERVER_SOURCE,
        source_tag,
        details=details,
    )


def is_declared(allergen: str, declared: Sequence[str]) -> bool:
    """Whether the label's allergen statement mentions a major allergen"""
    statement = " ".join(declared).lower()
    if not statement:
        return False
    words = ALLERGEN_DECLARATIONS.get(allergen, (allergen,))
    return any(word in statement for word in words)


class RegulatoryCheckService:
    """
    Cross-checks a validation record against the regulatory tool server
    """

    def __init__(
        self,
        client: RegulatoryClient,
        check_claims: bool = True,
        check_allergens: bool = True,
    ):
        self.client = client
        self.check_claims = check_claims
        self.check_allergens = check_allergens

    async def check(self, record: ValidationRecord) -> RegulatoryCheckResult:
        """
        Run every enabled check for a validation record

        Args:
            record: AI stage output

        Returns:
            RegulatoryCheckResult; ran=False when there was nothing to validate
        """
        start_time = time.time()
        label = record.extracted
        ingredients = list(label.ingredients)
        claims = list(label.claims)

        if not ingredients:
            logger.info("No ingredients to validate, skipping regulatory check")
            record_stage("regulatory", "skipped")
            return RegulatoryCheckResult(
                ran=False,
                claims=claims,
                issues=[_finding(
                    "FDA_NO_INGREDIENTS",
                    Severity.INFO,
                    "No ingredients to validate",
                    "FDA Ingredient Database",
                    INGREDIENT_TAG,
                )],
            )

        logger.info("Starting regulatory check", ingredients=len(ingredients), claims=len(claims))

        checks = [self.validate_ingredients(ingredients)]
        if self.check_claims:
            checks.append(self.validate_claims(claims, label.nutritional_info))
        if self.check_allergens:
            checks.append(self.check_allergen_declarations(ingredients, label.allergens))

        issues: List[Finding] = []
        recommendations: List[Finding] = []
        for check_issues, check_recommendations in await asyncio.gather(*checks):
            issues.extend(check_issues)
            recommendations.extend(check_recommendations)

        result = RegulatoryCheckResult(
            ran=True,
            ingredients=ingredients,
            claims=claims,
            issues=issues,
            recommendations=recommendations,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )
        degraded = any(i.type in ("FDA_SERVICE_UNAVAILABLE", "FDA_SERVICE_ERROR", "FDA_RESPONSE_INVALID") for i in issues)
        record_stage("regulatory", "degraded" if degraded else "success")
        logger.info(
            "Regulatory check completed",
            issues=len(issues),
            compliance_issues=sum(1 for i in issues if i.severity == Severity.COMPLIANCE),
            recommendations=len(recommendations),
            processing_time_ms=result.processing_time_ms,
        )
        return result

    async def _call(
        self, tool: RegulatoryTool, arguments: Dict[str, Any], model: Type[M], source_tag: str
    ) -> Union[M, Finding]:
        result = await self.client.call_tool(tool.value, arguments)
        if not isinstance(result, Ok):
            return failure_finding(result, source_tag, tool.value)
        try:
            return model.model_validate(result.value)
        except ValidationError as e:
            logger.warning("Unexpected tool payload", tool=tool.value, errors=e.error_count())
            return _finding(
                "FDA_RESPONSE_INVALID",
                Severity.WARNING,
                "FDA validation service returned an unexpected response - manual review recommended",
                SERVER_SOURCE,
                source_tag,
                details={"tool": tool.value, "errors": e.error_count()},
            )

    async def validate_ingredients(self, ingredients: List[str]) -> Findings:
        """Per-ingredient approval, safety warnings and GRAS status"""
        report = await self._call(
            RegulatoryTool.VALIDATE_INGREDIENTS,
            {"ingredients": ingredients},
            IngredientValidationReport,
            INGREDIENT_TAG,
        )
        if isinstance(report, Finding):
            return [report], []

        issues: List[Finding] = []
        recommendations: List[Finding] = []

        for item in report.validation_results:
            source = item.source or INGREDIENT_SOURCE
            if item.error:
                issues.append(_finding(
                    "FDA_INGREDIENT_LOOKUP_FAILED",
                    Severity.WARNING,
                    f'Could not look up ingredient "{item.ingredient}": {item.error}',
                    source,
                    INGREDIENT_TAG,
                    ingredient=item.ingredient,
                ))
                continue

            if item.fda_approved:
                recommendations.append(_finding(
                    "FDA_INGREDIENT_APPROVED",
                    Severity.INFO,
                    f'Ingredient "{item.ingredient}" found in FDA database',
                    source,
                    INGREDIENT_TAG,
                    ingredient=item.ingredient,
                ))
            else:
                issues.append(_finding(
                    "FDA_INGREDIENT_NOT_APPROVED",
                    Severity.WARNING,
                    f'Ingredient "{item.ingredient}" not found in FDA approved database',
                    source,
                    INGREDIENT_TAG,
                    ingredient=item.ingredient,
                ))

            for warning in item.warnings:
                issues.append(_finding(
                    "FDA_INGREDIENT_WARNING",
                    Severity.WARNING,
                    warning,
                    source,
                    INGREDIENT_TAG,
                    ingredient=item.ingredient,
                ))

            if not item.is_gras:
                recommendations.append(_finding(
                    "FDA_GRAS_RECOMMENDATION",
                    Severity.INFO,
                    f'Verify GRAS (Generally Recognized as Safe) status for "{item.ingredient}"',
                    SERVER_SOURCE,
                    GRAS_TAG,
                    ingredient=item.ingredient,
                ))

        if report.summary is not None:
            summary = report.summary
            recommendations.append(_finding(
                "FDA_VALIDATION_SUMMARY",
                Severity.INFO,
                f"FDA validation completed: {summary.approved}/{summary.total_ingredients} "
                f"ingredients approved, {summary.warnings} warnings found",
                SERVER_SOURCE,
                INGREDIENT_TAG,
                details={
                    "approved": summary.approved,
                    "total_ingredients": summary.total_ingredients,
                    "warnings": summary.warnings,
                },
            ))
        return issues, recommendations

    async def validate_claims(self, claims: List[str], nutritional_info: Optional[Dict[str, str]] = None) -> Findings:
        """Nutritional claims against per-serving thresholds"""
        if not claims:
            return [], [_finding(
                "FDA_NO_CLAIMS",
                Severity.INFO,
                "No nutritional claims detected - no FDA validation required",
                "FDA Claims Validation",
                CLAIMS_TAG,
            )]

        report = await self._call(
            RegulatoryTool.VALIDATE_NUTRITIONAL_CLAIMS,
            {"claims": claims, "nutritionalData": dict(nutritional_info or {})},
            ClaimValidationReport,
            CLAIMS_TAG,
        )
        if isinstance(report, Finding):
            return [report], []

        issues: List[Finding] = []
        recommendations: List[Finding] = []
        for validation in report.claim_validations:
            source = validation.fda_source or CLAIMS_SOURCE
            if validation.is_valid:
                recommendations.append(_finding(
                    "FDA_VALID_CLAIM", Severity.INFO, validation.reason, source, CLAIMS_TAG,
                    claim=validation.claim,
                ))
            else:
                issues.append(_finding(
                    "FDA_INVALID_CLAIM", Severity.COMPLIANCE, validation.reason, source, CLAIMS_TAG,
                    claim=validation.claim,
                ))
        return issues, recommendations

    async def check_allergen_declarations(self, ingredients: List[str], declared: Sequence[str]) -> Findings:
        """Major allergens in the ingredients against the label's allergen statement"""
        report = await self._call(
            RegulatoryTool.CHECK_ALLERGEN_REQUIREMENTS,
            {"ingredients": ingredients},
            AllergenReport,
            ALLERGEN_TAG,
        )
        if isinstance(report, Finding):
            return [report], []

        issues: List[Finding] = []
        recommendations: List[Finding] = []
        seen = set()
        for item in report.allergen_findings:
            if item.allergen in seen:
                continue
            seen.add(item.allergen)
            source = item.regulation or ALLERGEN_SOURCE
            if is_declared(item.allergen, declared):
                recommendations.append(_finding(
                    "FDA_ALLERGEN_DECLARED",
                    Severity.INFO,
                    f"Major allergen {item.allergen} is declared on the label",
                    source,
                    ALLERGEN_TAG,
                    ingredient=item.ingredient,
                ))
            else:
                issues.append(_finding(
                    "FDA_UNDECLARED_ALLERGEN",
                    Severity.WARNING,
                    f'Ingredient "{item.ingredient}" contains {item.allergen}, which is not declared. '
                    f"{item.requirement}".strip(),
                    source,
                    ALLERGEN_TAG,
                    ingredient=item.ingredient,
                    details={"allergen": item.allergen},
                ))
        return issues, recommendations

    async def check_additive_status(self, additive: str) -> Union[AdditiveStatus, Finding]:
        """
        Approval status and CFR reference of a food additive

        Returns:
            AdditiveStatus, or a warning finding when the tool gave no usable answer
        """
        status = await self._call(
            RegulatoryTool.CHECK_ADDITIVE_STATUS,
            {"additive": additive},
            AdditiveStatus,
            ADDITIVE_TAG,
        )
        if isinstance(status, AdditiveStatus):
            logger.info("Additive checked", additive=additive, status=status.status, cfr=status.cfr)
        return status
