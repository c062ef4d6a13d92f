# reviewpilot/processors/code_extractor.py
import json
import re
from typing import Any, Dict

from jsonschema import validate as jsonschema_validate, ValidationError as SchemaError

from reviewpilot import monitoring
from reviewpilot.errors import ParseError

CODE_RESPONSE_SCHEMA = {
    "type": "object",
    "required": ["code", "code_type", "description"],
    "properties": {
        "code": {"type": "string"},
        "code_type": {"type": "string"},
        "description": {"type": "string"},
    },
}

# First fenced block, optionally tagged json. The closing fence must start a line.
_FENCE_RE = re.compile(r"```[ \t]*(?:json)?[ \t]*\n(.*?)^[ \t]*```", re.DOTALL | re.MULTILINE)

_decoder = json.JSONDecoder()


def _decode_candidate(raw_text: str) -> Any:
    """
    Strict decoding, no guessing:
    - a fenced block, when present, is the only candidate and must be JSON in full
    - otherwise decode exactly one object starting at the first '{'
    """
    fenced = _FENCE_RE.search(raw_text)
    if fenced:
        return json.loads(fenced.group(1))

    first = raw_text.find("{")
    if first == -1:
        raise ValueError("no JSON object found")
    obj, _end = _decoder.raw_decode(raw_text, first)
    return obj


def extract_structured(raw_text: str) -> Dict[str, str]:
    """
    Decode the generated-code object out of model output.

    Returns {"code", "code_type", "description"}. code_type is passed through
    unchecked; the deployment client enforces the allowed set.
    Raises ParseError (carrying the raw text) when nothing decodes.
    """
    raw_text = raw_text or ""
    try:
        parsed = _decode_candidate(raw_text)
    except ValueError as e:
        monitoring.inc_code_extraction("decode_fail")
        raise ParseError(f"Failed to parse JSON from model response: {e}", raw=raw_text)

    try:
        jsonschema_validate(instance=parsed, schema=CODE_RESPONSE_SCHEMA)
    except SchemaError as ve:
        monitoring.inc_code_extraction("schema_fail")
        raise ParseError(f"Response JSON failed schema validation: {ve.message}", raw=raw_text)

    monitoring.inc_code_extraction("success")
    return {
        "code": parsed["code"],
        "code_type": parsed["code_type"],
        "description": parsed["description"],
    }
