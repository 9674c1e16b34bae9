"""Turn a free-form Gemini reply into a canonical ``AnalysisResult``.

The reply is untrusted: the JSON payload may be wrapped in prose, fenced or
not, and it comes in one of two historical shapes:

* flat:   ``score``, ``breakdown{...}``, ``improvements{critical, ...}``
* nested: ``scores{overall, ...}``, ``improvements[...]``, ``criticalIssues``,
  ``suggestions``

Both map onto the same result, with every score clamped to 0-100.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from .errors import MALFORMED_PAYLOAD, NO_PAYLOAD, ParseError
from .schemas import AnalysisResult, Scores, round_half_up, to_number

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```[ \t]*json[ \t]*\r?\n?", re.IGNORECASE)
_FENCE_CLOSE = "```"

# Top-level keys that mark an object as an analysis payload.
PAYLOAD_KEYS = frozenset(
    {"score", "scores", "breakdown", "strengths", "improvements", "summary"}
)

# Flat ``improvements`` object keys, in display order.
IMPROVEMENT_CATEGORIES = ("critical", "important", "suggested", "recommended")


# ---------------------------------------------------------------------------
# Payload location
# ---------------------------------------------------------------------------


def _fenced_block(text: str) -> Optional[str]:
    match = _FENCE_OPEN.search(text)
    if not match:
        return None
    end = text.find(_FENCE_CLOSE, match.end())
    if end == -1:
        return None
    return text[match.end():end].strip()


def _balanced_objects(text: str) -> Iterator[str]:
    """Yield each top-level ``{...}`` span, in order.

    Braces inside JSON string literals (escapes included) don't count toward
    depth. An unterminated object at the end of the text is not yielded.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            # Quotes in the surrounding prose are not string delimiters.
            if depth > 0:
                in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:index + 1]


def _decode_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        decoded = json.loads(candidate)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


def extract_payload(text: str) -> Dict[str, Any]:
    """Locate and decode the JSON object embedded in a model reply.

    Raises ``ParseError`` with reason ``NO_PAYLOAD`` when nothing
    object-shaped is present, ``MALFORMED_PAYLOAD`` when something is but it
    doesn't decode to an object.
    """
    text = text or ""

    fenced = _fenced_block(text)
    if fenced is not None:
        payload = _decode_object(fenced)
        if payload is None:
            raise ParseError(MALFORMED_PAYLOAD, raw=fenced)
        return payload

    # Prose may hold small objects of its own (e.g. "use {} for ..."), so
    # prefer the first one that looks like an analysis.
    first_candidate = None
    first_object = None
    for candidate in _balanced_objects(text):
        if first_candidate is None:
            first_candidate = candidate
        payload = _decode_object(candidate)
        if payload is None:
            continue
        if PAYLOAD_KEYS.intersection(payload):
            return payload
        if first_object is None:
            first_object = payload
    if first_object is not None:
        return first_object
    if first_candidate is not None:
        raise ParseError(MALFORMED_PAYLOAD, raw=first_candidate)

    # Unbalanced braces: fall back to the widest span.
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ParseError(NO_PAYLOAD, raw=text)
    span = text[start:end + 1]
    payload = _decode_object(span)
    if payload is None:
        raise ParseError(MALFORMED_PAYLOAD, raw=span)
    return payload


# ---------------------------------------------------------------------------
# Shape adapters
# ---------------------------------------------------------------------------


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _first_present(mapping: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


def _pair_average(first: Any, second: Any) -> Optional[float]:
    """Average two breakdown values, ignoring one that is missing or zero."""
    a = to_number(first) or 0.0
    b = to_number(second) or 0.0
    if a and b:
        return round_half_up((a + b) / 2)
    if a or b:
        return a or b
    return None


def _flat_scores(payload: Dict[str, Any]) -> Dict[str, Any]:
    breakdown = _as_dict(payload.get("breakdown"))
    return {
        "overall": payload.get("score"),
        "atsCompatibility": _pair_average(
            breakdown.get("experience"), breakdown.get("education")
        ),
        "keywordOptimization": _first_present(breakdown, "keywords", "keywordsScore"),
        "formatting": breakdown.get("formatting"),
        "impact": _pair_average(breakdown.get("skills"), breakdown.get("experience")),
    }


def _nested_scores(payload: Dict[str, Any]) -> Dict[str, Any]:
    scores = _flat_scores(payload)
    for key, value in _as_dict(payload.get("scores")).items():
        if key in scores and value is not None:
            scores[key] = value
    return scores


def _improvement_lists(payload: Dict[str, Any]) -> Dict[str, List[str]]:
    improvements = payload.get("improvements")
    if isinstance(improvements, dict):
        flat: List[str] = []
        for category in IMPROVEMENT_CATEGORIES:
            flat.extend(_string_list(improvements.get(category)))
        critical = _string_list(improvements.get("critical"))
        suggested = _string_list(improvements.get("suggested"))
    else:
        flat = _string_list(improvements)
        critical = []
        suggested = []

    if isinstance(payload.get("criticalIssues"), list):
        critical = _string_list(payload["criticalIssues"])
    if isinstance(payload.get("suggestions"), list):
        suggested = _string_list(payload["suggestions"])

    return {"improvements": flat, "criticalIssues": critical, "suggestions": suggested}


def _summary(payload: Dict[str, Any]) -> str:
    for key in ("summary", "analysisSummary"):
        value = payload.get(key)
        if isinstance(value, str):
            return value
    return ""


def is_nested_shape(payload: Dict[str, Any]) -> bool:
    return isinstance(payload.get("scores"), dict)


def normalize_payload(payload: Dict[str, Any]) -> AnalysisResult:
    """Map a decoded payload of either shape onto ``AnalysisResult``.

    Never raises: unknown or missing fields become zeros and empty lists.
    """
    payload = _as_dict(payload)
    raw_scores = _nested_scores(payload) if is_nested_shape(payload) else _flat_scores(payload)
    return AnalysisResult(
        scores=Scores.model_validate(raw_scores),
        summary=_summary(payload),
        strengths=_string_list(payload.get("strengths")),
        **_improvement_lists(payload),
    )


def normalize(reply: str) -> AnalysisResult:
    """Parse a raw model reply into an ``AnalysisResult``."""
    try:
        payload = extract_payload(reply)
    except ParseError as exc:
        logger.warning("Could not parse model reply (%s): %r", exc.reason, exc.raw)
        raise
    return normalize_payload(payload)
