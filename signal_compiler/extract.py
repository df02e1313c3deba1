# signal_compiler/extract.py
from __future__ import annotations

import json
import re
from typing import Any, Dict

from pydantic import ValidationError

from signal_schemas.schemas_signal import CandidateResponse

from .exceptions import InferenceMalformedResponseError
from .logging_utils import get_logger

LOGGER = get_logger(__name__)

RESPONSE_KEYS = ("signals", "conflicts", "drops", "next_checks")

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_json_strict(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of model output.

    Accepts the bare object, the object inside a ```json fence, or the first
    {...} span. Truncated output is not repaired.
    """
    text = (text or "").strip()
    if not text:
        raise InferenceMalformedResponseError("Empty model output")

    # 1) direct parse
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        obj = None

    # 2) fenced block
    if obj is None:
        m = _FENCE_RE.match(text)
        if m:
            try:
                obj = json.loads(m.group(1))
            except json.JSONDecodeError:
                obj = None

    # 3) try first {...} span
    if obj is None:
        start = text.find("{")
        end = text.rfind("}")
        if start != -1 and end > start:
            try:
                obj = json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                obj = None

    if obj is None:
        LOGGER.error(f"Failed to parse model response: {text[:500]}")
        raise InferenceMalformedResponseError("Invalid JSON from model")

    if not isinstance(obj, dict):
        raise InferenceMalformedResponseError(f"Expected a JSON object, got {type(obj).__name__}")
    return obj


def parse_candidate_response(text: str) -> CandidateResponse:
    """
    Raw model text -> candidate signals/conflicts/drops/next_checks.

    Anything that does not fit the expected shape is an inference failure,
    not a crash: callers fall back to the last stored run.
    """
    obj = parse_json_strict(text)

    if not any(k in obj for k in RESPONSE_KEYS):
        raise InferenceMalformedResponseError(
            f"Response has none of the expected keys {list(RESPONSE_KEYS)}; got {sorted(obj)[:10]}"
        )

    try:
        return CandidateResponse.model_validate(obj)
    except ValidationError as e:
        raise InferenceMalformedResponseError(
            f"Response failed schema validation ({e.error_count()} errors): {e}", e
        ) from e
