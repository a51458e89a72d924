"""
Response normalizer.

Turns raw upstream output (model text, webhook bodies) into one of three
tagged results:

- ``Parsed(value, stage)``: structured JSON was recovered
- ``Fallback(value)``: nothing parseable; the caller-supplied default
- ``UpstreamFailure(error)``: the payload was an explicit error envelope

Parsing is attempted in three stages: the raw text as-is, the text with
markdown code fences stripped, and finally the largest balanced ``{...}`` /
``[...]`` block found anywhere in the text (linear scan, bounded input).
``normalize`` never raises.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from pharmassist.core.errors import UpstreamError, ValidationError
from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import record_normalizer_outcome

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*|```")

MAX_EXTRACT_CHARS = 64 * 1024
MAX_EXTRACT_CANDIDATES = 32

_ERROR_STATUS_VALUES = {"error", "failed", "failure"}


@dataclass(frozen=True)
class Parsed:
    value: Any
    stage: str  # direct | unfenced | extracted | native


@dataclass(frozen=True)
class Fallback:
    value: Any


@dataclass(frozen=True)
class UpstreamFailure:
    error: UpstreamError


NormalizedResult = Union[Parsed, Fallback, UpstreamFailure]


def _try_json(text: str) -> Optional[Any]:
    try:
        value = json.loads(text)
    except (RecursionError, TypeError, ValueError):
        return None
    # Bare scalars ("42", "true") are not structured content.
    if isinstance(value, (dict, list)):
        return value
    return None


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _balanced_spans(text: str) -> List[Tuple[int, int]]:
    """
    ``(start, end)`` of every balanced {...} or [...] span, in a single pass.

    Brackets inside strings are skipped. A closer that does not match the
    innermost open bracket discards every open bracket before it.
    """
    pairs = {"{": "}", "[": "]"}
    spans: List[Tuple[int, int]] = []
    stack: List[Tuple[int, str]] = []
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
        if char == '"' and stack:
            in_string = True
        elif char in pairs:
            stack.append((index, pairs[char]))
        elif char in "}]":
            if not stack or stack[-1][1] != char:
                stack.clear()
                continue
            start, _ = stack.pop()
            spans.append((start, index + 1))
    return spans


def extract_largest_block(text: str) -> Optional[Any]:
    """
    Parse the largest balanced JSON block embedded in free text.

    Texts over ``MAX_EXTRACT_CHARS`` are not searched, and at most
    ``MAX_EXTRACT_CANDIDATES`` spans are tried, largest first.
    """
    if len(text) > MAX_EXTRACT_CHARS:
        logger.info("normalizer_extraction_skipped", chars=len(text))
        return None
    spans = sorted(_balanced_spans(text), key=lambda span: span[1] - span[0], reverse=True)
    for start, end in spans[:MAX_EXTRACT_CANDIDATES]:
        value = _try_json(text[start:end])
        if value is not None:
            return value
    return None


def detect_error_envelope(value: Any) -> Optional[UpstreamError]:
    """
    Return an ``UpstreamError`` when a parsed payload is an error envelope.

    Recognised shapes: ``{"error": ...}`` (non-empty), ``{"errorMessage": ...}``,
    ``{"success": false, "message": ...}`` and ``{"status": "error", ...}``.
    """
    if not isinstance(value, dict):
        return None

    error = value.get("error")
    if error not in (None, "", False, {}, []):
        status = value.get("code") or value.get("status_code")
        if isinstance(error, dict):
            status = status or error.get("code")
        return UpstreamError(status if isinstance(status, int) else None, value)

    if value.get("errorMessage"):
        return UpstreamError(None, value)

    if value.get("success") is False:
        return UpstreamError(None, value)

    status = value.get("status")
    if isinstance(status, str) and status.strip().lower() in _ERROR_STATUS_VALUES:
        return UpstreamError(None, value)

    return None


def normalize(raw: Any, fallback: Any = None) -> NormalizedResult:
    """
    Normalize raw upstream output.

    Args:
        raw: text, bytes, or an already-decoded dict/list
        fallback: value returned (wrapped in ``Fallback``) when nothing parses

    Returns:
        Parsed | Fallback | UpstreamFailure. Never raises.
    """
    try:
        value, stage = _parse(raw)
    except Exception as exc:
        logger.warning("normalizer_unexpected_error", error=str(exc), error_type=type(exc).__name__)
        value, stage = None, None

    if value is None:
        record_normalizer_outcome("fallback")
        logger.debug("normalizer_fallback", raw_preview=_preview(raw))
        return Fallback(fallback)

    error = detect_error_envelope(value)
    if error is not None:
        record_normalizer_outcome("upstream_error")
        logger.info("normalizer_error_envelope", body_preview=_preview(value))
        return UpstreamFailure(error)

    record_normalizer_outcome(stage)
    return Parsed(value, stage)


def _parse(raw: Any):
    if raw is None:
        return None, None
    if isinstance(raw, (dict, list)):
        return raw, "native"
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        return None, None

    value = _try_json(raw)
    if value is not None:
        return value, "direct"

    unfenced = strip_code_fences(raw)
    value = _try_json(unfenced)
    if value is not None:
        return value, "unfenced"

    value = extract_largest_block(unfenced)
    if value is not None:
        return value, "extracted"
    return None, None


def normalize_value(raw: Any, fallback: Any = None) -> Any:
    """Plain-value form of ``normalize``: parsed value, else the fallback."""
    result = normalize(raw, fallback)
    if isinstance(result, Parsed):
        return result.value
    return fallback


def unwrap(result: NormalizedResult, expect: type = dict) -> Any:
    """
    Return the parsed value or raise the typed error for a tier to catch.

    Raises:
        UpstreamError: the payload was an error envelope
        ValidationError: nothing parseable, or the value is not ``expect``
    """
    if isinstance(result, UpstreamFailure):
        raise result.error
    if isinstance(result, Fallback):
        raise ValidationError("upstream output could not be parsed", result.value)
    if not isinstance(result.value, expect):
        raise ValidationError(
            f"expected {expect.__name__}, got {type(result.value).__name__}",
            result.value,
        )
    return result.value


def _preview(raw: Any, limit: int = 200) -> str:
    text = raw if isinstance(raw, str) else repr(raw)
    return text[:limit]
