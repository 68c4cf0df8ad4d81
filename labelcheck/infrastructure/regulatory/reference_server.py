"""
Reference regulatory tool server

Speaks newline-delimited JSON-RPC 2.0 on stdin/stdout and exposes four tools:
validate_ingredients, check_additive_status, validate_nutritional_claims and
check_allergen_requirements. Tool payloads are JSON strings carried in
``result.content[0].text``.

Runs one request per process (stdin closed after the request) or as a
long-lived worker (one request per line). Logs go to stderr so stdout only
ever carries responses.

Ingredient lookups hit FoodData Central when FDA_API_KEY is set, otherwise
every ingredient is treated as found.

Run directly: python reference_server.py
"""
import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
import structlog

SERVER_NAME = "fda-validation-server"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSION = "2024-11-05"

FOOD_DATA_CENTRAL_URL = "https://api.nal.usda.gov/fdc/v1/foods/search"
LOOKUP_TIMEOUT_S = 10

KNOWN_GRAS = [
    "salt", "sugar", "water", "wheat flour", "corn starch", "soybean oil",
    "milk", "eggs", "butter", "vanilla extract", "baking soda", "yeast",
    "vinegar", "citric acid", "ascorbic acid", "sodium chloride",
]

MAJOR_ALLERGENS = [
    "milk", "eggs", "fish", "shellfish", "tree nuts", "peanuts", "wheat", "soybeans",
]

ARTIFICIAL_MARKERS = ["artificial", "fdc", "red dye", "yellow dye"]
PRESERVATIVES = ["sodium benzoate", "potassium sorbate", "bht", "bha"]

ADDITIVES = {
    "citric acid": {"status": "APPROVED", "cfr": "21 CFR 182.6033"},
    "ascorbic acid": {"status": "APPROVED", "cfr": "21 CFR 182.3013"},
    "sodium benzoate": {"status": "APPROVED", "cfr": "21 CFR 184.1733"},
    "yellow 5": {"status": "APPROVED", "cfr": "21 CFR 74.705"},
    "red 40": {"status": "APPROVED", "cfr": "21 CFR 74.340"},
}

# claim -> (nutrient, comparison, limit, unit), checked in order
CLAIM_THRESHOLDS = [
    ("fat free", "totalFat", "lt", 0.5, "g"),
    ("low fat", "totalFat", "le", 3, "g"),
    ("sodium free", "sodium", "lt", 5, "mg"),
    ("low sodium", "sodium", "le", 140, "mg"),
    ("high fiber", "dietaryFiber", "ge", 5, "g"),
    ("good source of fiber", "dietaryFiber", "ge", 2.5, "g"),
]

FALCPA = "Food Allergen Labeling and Consumer Protection Act (FALCPA)"
CLAIMS_SOURCE = "FDA Nutrition Labeling Guidelines"

NUMBER = re.compile(r"\d+(?:\.\d+)?")

logger = structlog.get_logger("reference_server")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def setup_logging(level: str = "INFO") -> None:
    """structlog to stderr; stdout is reserved for responses"""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


class ToolError(Exception):
    """Tool-level failure, reported as an isError result"""
    pass


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def check_gras_status(ingredient: str) -> Dict[str, Any]:
    normalized = ingredient.lower().strip()
    is_gras = bool(normalized) and any(
        gras in normalized or normalized in gras for gras in KNOWN_GRAS
    )
    return {
        "status": "GRAS" if is_gras else "REQUIRES_REVIEW",
        "notes": (
            "Generally Recognized as Safe"
            if is_gras
            else "Not found in common GRAS ingredients - manual review recommended"
        ),
    }


def safety_check(ingredient: str) -> Dict[str, Any]:
    normalized = ingredient.lower()
    warnings = [
        f"Contains {allergen} - Major allergen requiring disclosure"
        for allergen in MAJOR_ALLERGENS
        if allergen in normalized
    ]
    notes = []

    if any(marker in normalized for marker in ARTIFICIAL_MARKERS):
        warnings.append("Contains artificial additives - verify FDA approval status")
    if any(preservative in normalized for preservative in PRESERVATIVES):
        notes.append("Contains preservatives - generally recognized as safe in specified amounts")

    return {"level": "WARNING" if warnings else "SAFE", "warnings": warnings, "notes": notes}


def search_food_data_central(
    ingredient: str, api_key: Optional[str], session: Optional[requests.Session] = None
) -> Dict[str, Any]:
    """
    Look an ingredient up in FoodData Central

    Without an API key every ingredient counts as found.

    Raises:
        requests.RequestException: lookup failed
    """
    if not api_key:
        return {"found": True, "source": "offline"}

    http = session or requests
    response = http.get(
        FOOD_DATA_CENTRAL_URL,
        params={"api_key": api_key, "query": ingredient, "pageSize": 5},
        timeout=LOOKUP_TIMEOUT_S,
    )
    response.raise_for_status()
    data = response.json()
    foods = data.get("foods") or []
    return {
        "found": bool(foods),
        "totalHits": data.get("totalHits", 0),
        "fdcId": foods[0].get("fdcId") if foods else None,
        "source": "FDA Food Data Central",
    }


def parse_amount(value: Any) -> Optional[float]:
    """First number in a nutrition value ("5g", "140 mg", 2.5)"""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = NUMBER.search(str(value))
    return float(match.group(0)) if match else None


def _lookup_nutrient(nutritional_data: Dict[str, Any], nutrient: str) -> Any:
    if nutrient in nutritional_data:
        return nutritional_data[nutrient]
    wanted = nutrient.lower()
    for key, value in nutritional_data.items():
        if str(key).replace("_", "").replace(" ", "").lower() == wanted:
            return value
    return None


def _meets(actual: float, comparison: str, limit: float) -> bool:
    if comparison == "lt":
        return actual < limit
    if comparison == "le":
        return actual <= limit
    return actual >= limit


def _shortfall(comparison: str) -> str:
    return {"lt": "is not below", "le": "exceeds", "ge": "is below"}[comparison]


def validate_single_claim(claim: str, nutritional_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Check one nutritional claim against the per-serving thresholds"""
    nutritional_data = nutritional_data or {}
    normalized = claim.lower()
    is_valid = False
    reason = "Claim not recognized or cannot be validated"

    for claim_type, nutrient, comparison, limit, unit in CLAIM_THRESHOLDS:
        if claim_type not in normalized:
            continue
        actual = parse_amount(_lookup_nutrient(nutritional_data, nutrient))
        if actual is None:
            reason = f'Claim cannot be verified for "{claim_type}": {nutrient} not declared'
        elif _meets(actual, comparison, limit):
            is_valid = True
            reason = f'Claim meets FDA requirements for "{claim_type}"'
        else:
            reason = (
                f'Claim does not meet FDA requirements for "{claim_type}": '
                f"{nutrient} {actual:g}{unit} {_shortfall(comparison)} {limit:g}{unit} per serving"
            )
        break

    return {"claim": claim, "isValid": is_valid, "reason": reason, "fdaSource": CLAIMS_SOURCE}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

def _string_list(arguments: Dict[str, Any], key: str) -> List[str]:
    value = arguments.get(key)
    if not isinstance(value, list):
        raise ToolError(f"'{key}' must be a list of strings")
    return [str(item) for item in value]


def validate_ingredients(arguments: Dict[str, Any]) -> Dict[str, Any]:
    ingredients = _string_list(arguments, "ingredients")
    api_key = os.environ.get("FDA_API_KEY")
    results = []

    for ingredient in ingredients:
        try:
            search = search_food_data_central(ingredient, api_key)
        except (requests.RequestException, ValueError) as e:
            logger.warning("ingredient lookup failed", ingredient=ingredient, error=str(e))
            results.append({"ingredient": ingredient, "error": str(e), "validatedAt": _now()})
            continue

        gras = check_gras_status(ingredient)
        safety = safety_check(ingredient)
        results.append({
            "ingredient": ingredient,
            "fdaApproved": search["found"],
            "grasStatus": gras["status"],
            "safetyLevel": safety["level"],
            "warnings": safety["warnings"],
            "regulatoryNotes": safety["notes"],
            "source": "FDA Food Data Central",
            "validatedAt": _now(),
        })

    return {
        "validationResults": results,
        "summary": {
            "totalIngredients": len(ingredients),
            "approved": sum(1 for r in results if r.get("fdaApproved")),
            "warnings": sum(1 for r in results if r.get("warnings")),
            "source": "FDA MCP Validation Server",
        },
    }


def check_additive_status(arguments: Dict[str, Any]) -> Dict[str, Any]:
    additive = arguments.get("additive")
    if not isinstance(additive, str) or not additive.strip():
        raise ToolError("'additive' must be a non-empty string")
    entry = ADDITIVES.get(additive.lower().strip(), {
        "status": "UNKNOWN",
        "cfr": "Not found - manual verification required",
    })
    return {
        "additive": additive,
        **entry,
        "source": "FDA Food Additive Database",
        "checkedAt": _now(),
    }


def validate_nutritional_claims(arguments: Dict[str, Any]) -> Dict[str, Any]:
    claims = _string_list(arguments, "claims")
    nutritional_data = arguments.get("nutritionalData") or {}
    if not isinstance(nutritional_data, dict):
        raise ToolError("'nutritionalData' must be an object")
    return {
        "claimValidations": [validate_single_claim(claim, nutritional_data) for claim in claims],
        "source": "FDA Nutritional Claims Validation",
        "validatedAt": _now(),
    }


def check_allergen_requirements(arguments: Dict[str, Any]) -> Dict[str, Any]:
    ingredients = _string_list(arguments, "ingredients")
    findings = [
        {
            "ingredient": ingredient,
            "allergen": allergen,
            "requirement": f'Must be disclosed as "Contains {allergen}" per FDA regulations',
            "regulation": FALCPA,
        }
        for ingredient in ingredients
        for allergen in MAJOR_ALLERGENS
        if allergen in ingredient.lower()
    ]
    return {
        "allergenFindings": findings,
        "totalIngredients": len(ingredients),
        "allergensFound": len(findings),
        "complianceStatus": "LABELING_REQUIRED" if findings else "COMPLIANT",
        "source": "FDA Allergen Labeling Requirements",
        "checkedAt": _now(),
    }


def _array_schema(name: str, description: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": "array", "items": {"type": "string"}, "description": description}},
        "required": [name],
    }


TOOLS: Dict[str, Dict[str, Any]] = {
    "validate_ingredients": {
        "handler": validate_ingredients,
        "description": "Validate ingredients against FDA databases and GRAS list",
        "inputSchema": _array_schema("ingredients", "List of ingredients to validate"),
    },
    "check_additive_status": {
        "handler": check_additive_status,
        "description": "Check food additive approval status with FDA",
        "inputSchema": {
            "type": "object",
            "properties": {"additive": {"type": "string", "description": "Name of food additive to check"}},
            "required": ["additive"],
        },
    },
    "validate_nutritional_claims": {
        "handler": validate_nutritional_claims,
        "description": "Validate nutritional claims against FDA guidelines",
        "inputSchema": {
            "type": "object",
            "properties": {
                "claims": {"type": "array", "items": {"type": "string"}},
                "nutritionalData": {"type": "object"},
            },
            "required": ["claims"],
        },
    },
    "check_allergen_requirements": {
        "handler": check_allergen_requirements,
        "description": "Validate allergen labeling requirements",
        "inputSchema": _array_schema("ingredients", "Ingredients to check for allergen requirements"),
    },
}


# ---------------------------------------------------------------------------
# JSON-RPC
# ---------------------------------------------------------------------------

def _text_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def _error(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def call_tool(params: Dict[str, Any]) -> Dict[str, Any]:
    name = params.get("name")
    arguments = params.get("arguments") or {}
    tool = TOOLS.get(name)
    try:
        if tool is None:
            raise ToolError(f"Unknown tool: {name}")
        if not isinstance(arguments, dict):
            raise ToolError("Tool arguments must be an object")
        payload = tool["handler"](arguments)
    except ToolError as e:
        logger.warning("tool call rejected", tool=name, error=str(e))
        return _text_result(f"Error: {e}", is_error=True)
    logger.info("tool call handled", tool=name)
    return _text_result(json.dumps(payload, indent=2))


def _list_tools(_params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "tools": [
            {"name": name, "description": tool["description"], "inputSchema": tool["inputSchema"]}
            for name, tool in TOOLS.items()
        ]
    }


def _initialize(_params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
    }


METHODS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "initialize": _initialize,
    "tools/list": _list_tools,
    "tools/call": call_tool,
}


def handle_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Handle one request line

    Returns:
        Response object, or None for notifications
    """
    try:
        request = json.loads(line)
    except json.JSONDecodeError as e:
        return _error(None, -32700, f"Parse error: {e.msg}")
    if not isinstance(request, dict) or request.get("jsonrpc") != "2.0" or "method" not in request:
        return _error(request.get("id") if isinstance(request, dict) else None, -32600, "Invalid Request")

    request_id = request.get("id")
    method = METHODS.get(request["method"])
    if "id" not in request:
        # notification
        return None
    if method is None:
        return _error(request_id, -32601, f"Method not found: {request['method']}")

    params = request.get("params") or {}
    if not isinstance(params, dict):
        return _error(request_id, -32602, "Invalid params")
    try:
        result = method(params)
    except Exception as e:
        logger.error("request failed", method=request["method"], error=str(e), exc_info=True)
        return _error(request_id, -32603, f"Internal error: {e}")
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def serve(stdin=None, stdout=None) -> None:
    """Answer request lines until stdin closes"""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    logger.info("regulatory tool server running on stdio", offline=not os.environ.get("FDA_API_KEY"))

    for line in stdin:
        if not line.strip():
            continue
        response = handle_line(line)
        if response is not None:
            stdout.write(json.dumps(response) + "\n")
            stdout.flush()


def main() -> None:
    setup_logging(os.environ.get("LOG_LEVEL", "INFO"))
    serve()


if __name__ == "__main__":
    main()
