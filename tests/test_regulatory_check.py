import asyncio
import json

from fakes import REFERENCE_SERVER_COMMAND, SLEEPING_SERVER_COMMAND
from labelcheck.core.enums import AIProvider, Severity, Stage
from labelcheck.infrastructure.regulatory.client import RegulatoryClient
from labelcheck.infrastructure.regulatory.transport import SubprocessToolTransport, ToolTransport
from labelcheck.models.domain import StructuredLabel, ValidationRecord
from labelcheck.models.regulatory import AdditiveStatus
from labelcheck.services.regulatory_check import RegulatoryCheckService, is_declared


def record(ingredients, claims=None, nutrition=None, allergens=None):
    return ValidationRecord(
        success=True,
        is_valid=True,
        confidence=0.9,
        ai_provider=AIProvider.PRIMARY,
        extracted=StructuredLabel(
            ingredients=ingredients,
            claims=claims or [],
            nutritional_info=nutrition or {},
            allergens=allergens or [],
        ),
    )


def reference_service(**kwargs):
    client = RegulatoryClient(SubprocessToolTransport(REFERENCE_SERVER_COMMAND), timeout_s=30)
    return RegulatoryCheckService(client, **kwargs)


def check(service, validation_record):
    return asyncio.run(service.check(validation_record))


def types_of(findings):
    return [f.type for f in findings]


def test_common_ingredients_pass():
    result = check(reference_service(), record(["water", "salt", "sugar"]))

    assert result.ran
    assert result.ingredients == ["water", "salt", "sugar"]
    assert not [f for f in result.issues if f.severity == Severity.COMPLIANCE]
    summary = [f for f in result.recommendations if f.type == "FDA_VALIDATION_SUMMARY"][0]
    assert summary.details["approved"] == 3
    assert summary.details["total_ingredients"] == 3
    assert "FDA_NO_CLAIMS" in types_of(result.recommendations)


def test_no_ingredients_skips_the_tool():
    class ExplodingTransport(ToolTransport):
        async def request(self, message, timeout_s):
            raise AssertionError("tool must not be called")

    service = RegulatoryCheckService(RegulatoryClient(ExplodingTransport()))

    result = check(service, record([]))

    assert not result.ran
    assert types_of(result.issues) == ["FDA_NO_INGREDIENTS"]
    assert result.issues[0].severity == Severity.INFO
    assert result.issues[0].message == "No ingredients to validate"


def test_invalid_claim_is_a_compliance_issue():
    result = check(
        reference_service(),
        record(["oats"], claims=["Low Fat", "Low Sodium"], nutrition={"totalFat": "5g", "sodium": "90mg"}),
    )

    invalid = [f for f in result.issues if f.type == "FDA_INVALID_CLAIM"]
    assert len(invalid) == 1
    assert invalid[0].severity == Severity.COMPLIANCE
    assert invalid[0].claim == "Low Fat"
    assert "3g" in invalid[0].message
    valid = [f for f in result.recommendations if f.type == "FDA_VALID_CLAIM"]
    assert [f.claim for f in valid] == ["Low Sodium"]


def test_ingredient_findings_keep_the_ingredient():
    result = check(reference_service(check_claims=False, check_allergens=False), record(["Whole Milk", "xanthan gum"]))

    warning = [f for f in result.issues if f.type == "FDA_INGREDIENT_WARNING"][0]
    assert warning.ingredient == "Whole Milk"
    assert warning.severity == Severity.WARNING
    gras = [f for f in result.recommendations if f.type == "FDA_GRAS_RECOMMENDATION"]
    assert [f.ingredient for f in gras] == ["xanthan gum"]
    assert all(f.stage == Stage.REGULATORY for f in result.issues + result.recommendations)


def test_undeclared_allergen_is_a_warning():
    result = check(reference_service(check_claims=False), record(["wheat flour", "peanuts"], allergens=["Contains wheat"]))

    undeclared = [f for f in result.issues if f.type == "FDA_UNDECLARED_ALLERGEN"]
    declared = [f for f in result.recommendations if f.type == "FDA_ALLERGEN_DECLARED"]
    assert [f.details["allergen"] for f in undeclared] == ["peanuts"]
    assert undeclared[0].severity == Severity.WARNING
    assert [f.ingredient for f in declared] == ["wheat flour"]


def test_is_declared_accepts_common_wording():
    assert is_declared("soybeans", ["Contains: Soy, Milk"])
    assert is_declared("eggs", ["CONTAINS EGG"])
    assert not is_declared("peanuts", ["Contains milk"])
    assert not is_declared("milk", [])


def test_timeout_becomes_service_unavailable_warning():
    client = RegulatoryClient(SubprocessToolTransport(SLEEPING_SERVER_COMMAND), timeout_s=0.5)
    service = RegulatoryCheckService(client, check_claims=False, check_allergens=False)

    result = check(service, record(["salt"]))

    assert result.ran
    assert types_of(result.issues) == ["FDA_SERVICE_UNAVAILABLE"]
    issue = result.issues[0]
    assert issue.severity == Severity.WARNING
    assert issue.message == "FDA validation service temporarily unavailable - manual review recommended"


class LineTransport(ToolTransport):
    def __init__(self, text):
        self.text = text

    async def request(self, message, timeout_s):
        return json.dumps({
            "jsonrpc": "2.0",
            "id": message["id"],
            "result": {"content": [{"type": "text", "text": self.text}]},
        })


def test_unparsable_payload_becomes_service_error():
    service = RegulatoryCheckService(RegulatoryClient(LineTransport("Error: database offline")), check_claims=False, check_allergens=False)

    result = check(service, record(["salt"]))

    assert types_of(result.issues) == ["FDA_SERVICE_ERROR"]
    assert result.issues[0].severity == Severity.WARNING


def test_payload_of_the_wrong_shape_is_reported():
    bad = json.dumps({"validationResults": [{"fdaApproved": True}]})
    service = RegulatoryCheckService(RegulatoryClient(LineTransport(bad)), check_claims=False, check_allergens=False)

    result = check(service, record(["salt"]))

    assert types_of(result.issues) == ["FDA_RESPONSE_INVALID"]


def test_lookup_failure_is_a_warning_not_a_rejection():
    payload = json.dumps({
        "validationResults": [{"ingredient": "salt", "error": "network down"}],
        "summary": {"totalIngredients": 1, "approved": 0, "warnings": 0},
    })
    service = RegulatoryCheckService(RegulatoryClient(LineTransport(payload)), check_claims=False, check_allergens=False)

    result = check(service, record(["salt"]))

    assert types_of(result.issues) == ["FDA_INGREDIENT_LOOKUP_FAILED"]
    assert result.issues[0].ingredient == "salt"


def test_additive_status():
    service = reference_service()

    status = asyncio.run(service.check_additive_status("Citric Acid"))

    assert isinstance(status, AdditiveStatus)
    assert status.is_approved
    assert status.cfr == "21 CFR 182.6033"


def test_to_report_carries_everything():
    result = check(reference_service(), record(["water"]))

    report = result.to_report()

    assert report.stage == Stage.REGULATORY
    assert report.ran
    assert report.findings == result.issues
    assert report.recommendations == result.recommendations
