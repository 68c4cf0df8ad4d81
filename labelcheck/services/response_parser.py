"""
Decoding of language model completions into typed payloads
"""
import json
import re
from typing import Any, Iterator, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from labelcheck.core.results import Ok, ParseError
from labelcheck.models.domain import StructuredLabel
from labelcheck.models.responses import AIValidationPayload, REQUIRED_VALIDATION_KEYS

FENCED_JSON = re.compile(r"```(?:json)?[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.S | re.I)

RAW_RESPONSE_LIMIT = 500

M = TypeVar("M", bound=BaseModel)


def _balanced_objects(text: str) -> Iterator[str]:
    """Yield every top-level {...} span, honoring JSON string escapes"""
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]


def extract_json_object(text: str) -> Tuple[Optional[dict], str]:
    """
    Find a JSON object in a completion

    Tries, in order: a fenced code block, a brace-matching scan, the whole
    body.

    Returns:
        (object, "") on success, (None, reason) otherwise
    """
    if not text or not text.strip():
        return None, "Empty response"

    for match in FENCED_JSON.finditer(text):
        try:
            value = json.loads(match.group(1))
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value, ""

    for candidate in _balanced_objects(text):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value, ""

    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        return None, f"No JSON object found: {e.msg}"
    if not isinstance(value, dict):
        return None, f"Expected a JSON object, got {type(value).__name__}"
    return value, ""


def _decode(raw: str, data: Any, model: Type[M]) -> Union[Ok[M], ParseError]:
    try:
        return Ok(model.model_validate(data))
    except ValidationError as e:
        return ParseError(raw=truncate(raw), reason=f"Invalid response shape: {e.error_count()} error(s)")


def parse_validation_response(text: str) -> Union[Ok[AIValidationPayload], ParseError]:
    """
    Decode a validation completion

    A JSON object missing any of isValid, confidence, correctedText or
    extractedInformation is a parse failure, not a sparse result.
    """
    data, reason = extract_json_object(text)
    if data is None:
        return ParseError(raw=truncate(text), reason=reason)

    missing = [key for key in REQUIRED_VALIDATION_KEYS if key not in data]
    if missing:
        return ParseError(
            raw=truncate(text),
            reason=f"Missing required keys: {', '.join(missing)}",
        )
    return _decode(text, data, AIValidationPayload)


def parse_structured_label(text: str) -> Union[Ok[StructuredLabel], ParseError]:
    """Decode an extraction-only completion"""
    data, reason = extract_json_object(text)
    if data is None:
        return ParseError(raw=truncate(text), reason=reason)
    # tolerate the validation envelope
    if "extractedInformation" in data and isinstance(data["extractedInformation"], dict):
        data = data["extractedInformation"]
    return _decode(text, data, StructuredLabel)


def truncate(text: str, limit: int = RAW_RESPONSE_LIMIT) -> str:
    if text is None:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."
