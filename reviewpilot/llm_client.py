# reviewpilot/llm_client.py
"""
Client for the generative-language API (Gemini `generateContent`).

Returns from call_gemini() a standardized dict:
{
  "text": "<first candidate text, or empty string>",
  "model": "<model used>",
  "response_id": "<responseId if available>",
  "raw": <decoded response body>
}

Configuration lives in reviewpilot.config (GEMINI_API_KEY, GEMINI_MODEL,
GEMINI_BASE_URL, MOCK_GEMINI).

Usage:
  from reviewpilot import llm_client
  prompt = await llm_client.generate_prompt("button too small")
  generated = await llm_client.generate_code(prompt)
"""

import json
import time
from typing import Any, Dict

import httpx

from reviewpilot import config
from reviewpilot import monitoring
from reviewpilot import transport
from reviewpilot.errors import UpstreamError, require
from reviewpilot.processors import code_extractor

TEMPERATURE = 0.7
PROMPT_MAX_TOKENS = 1024
CODE_MAX_TOKENS = 2048

PROMPT_PREAMBLE = "Create an actionable implementation prompt from this review:\n"

CODE_RULES = """
You generate small front-end changes for a WordPress site from an implementation prompt.

Rules:
1. Output only CSS, JavaScript or HTML. No PHP, no server-side code.
2. The code must be self-contained and safe to inject into every page of the site.
3. Return exactly one fenced JSON block and nothing else:
```json
{"code": "<the code>", "code_type": "css|js|html", "description": "<one sentence>"}
```
4. "code_type" must be one of "css", "js" or "html".
5. Escape quotes and newlines inside "code" so the block is valid JSON.
"""


def _endpoint() -> str:
    return f"{config.GEMINI_BASE_URL}/models/{config.GEMINI_MODEL}:generateContent"


def _first_candidate_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    first = candidates[0] if isinstance(candidates, list) else None
    content = first.get("content") if isinstance(first, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts or not isinstance(parts, list) or not isinstance(parts[0], dict):
        return ""
    text = parts[0].get("text")
    return text if isinstance(text, str) else ""


def _mock_gemini(text: str, max_tokens: int) -> Dict[str, Any]:
    """
    Deterministic mock used in local dev. Prompt requests echo the review back;
    code requests answer with a fenced code object.
    """
    if text.startswith(CODE_RULES):
        body = text[len(CODE_RULES):].strip()
        payload = {
            "code": "/* " + body[:200].replace("*/", "") + " */",
            "code_type": "css",
            "description": "Mock change (MOCK_GEMINI=true).",
        }
        out = "```json\n" + json.dumps(payload) + "\n```"
    else:
        out = "Implement: " + text[len(PROMPT_PREAMBLE):].strip()
    rid = f"mock-{config.GEMINI_MODEL}-{int(time.time() * 1000)}"
    return {"text": out[: max_tokens * 4], "model": config.GEMINI_MODEL, "response_id": rid, "raw": {"mock": True}}


async def call_gemini(text: str, max_tokens: int, temperature: float = TEMPERATURE) -> Dict[str, Any]:
    """
    One generateContent request with a single text part. Never retried.
    Raises UpstreamError on transport failure or non-2xx.
    """
    if config.MOCK_GEMINI:
        return _mock_gemini(text, max_tokens)

    payload = {
        "contents": [{"parts": [{"text": text}]}],
        "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
    }
    headers = {"x-goog-api-key": config.GEMINI_API_KEY, "Content-Type": "application/json"}

    start = time.time()
    try:
        async with transport.async_client(timeout=config.GEMINI_TIMEOUT) as client:
            resp = await client.post(_endpoint(), json=payload, headers=headers)
    except httpx.HTTPError as e:
        monitoring.observe_upstream(start, "gemini", "transport_error")
        monitoring.logger.warning("Gemini request failed", extra={"error": str(e)})
        raise UpstreamError(f"Generative API request failed: {e}")

    if not resp.is_success:
        monitoring.observe_upstream(start, "gemini", f"http_{resp.status_code}")
        monitoring.logger.warning("Gemini returned error status", extra={"upstream_status": resp.status_code})
        raise UpstreamError(
            f"Generative API returned {resp.status_code}",
            upstream_status=resp.status_code,
            upstream_body=transport.response_body(resp),
        )

    monitoring.observe_upstream(start, "gemini", "success")
    data = transport.response_body(resp)
    return {
        "text": _first_candidate_text(data),
        "model": config.GEMINI_MODEL,
        "response_id": data.get("responseId") if isinstance(data, dict) else None,
        "raw": data,
    }


async def generate_prompt(review_text: str) -> str:
    """Turn a free-text review into an implementation prompt ("" when no candidates)."""
    require(review_text, "Review required")
    resp = await call_gemini(f'{PROMPT_PREAMBLE}"{review_text}"', max_tokens=PROMPT_MAX_TOKENS)
    return resp["text"]


async def generate_code(prompt_text: str) -> Dict[str, str]:
    """Generate code for a prompt; returns {"code", "code_type", "description"}."""
    require(prompt_text, "Prompt required")
    resp = await call_gemini(f"{CODE_RULES}\nPrompt:\n{prompt_text}", max_tokens=CODE_MAX_TOKENS)
    return code_extractor.extract_structured(resp["text"])
