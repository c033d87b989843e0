"""Recovery of structured payloads from imperfect LLM output.

Each parser attempt takes the raw message text and returns a decoded value
or None. Attempts never raise, so new heuristics can be appended to
``DEFAULT_ATTEMPTS`` without touching callers.
"""

import json
import re
from typing import Any, Callable, Sequence, TypeVar

from devotional.models.verse import TopicEvaluation

T = TypeVar("T")

ParserAttempt = Callable[[str], Any]

_FENCE_RE = re.compile(r"```[A-Za-z]*\s*([\s\S]*?)\s*```")
_DQ_STRING_RE = re.compile(r'"(?:[^"\\]|\\.)*"')
_SQ_STRING_RE = re.compile(r"'((?:[^'\\]|\\.)*)'")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}
_PY_LITERAL_RE = re.compile(r"\b(True|False|None)\b")

# "John 3:16", "1 Corinthians 13:4-7"; multi-word book names keep only their last word
_REFERENCE_RE = re.compile(r"[\"']?((?:[1-3]\s?)?[A-Za-z]+\s+\d+:\d+(?:-\d+)?)[\"']?")
_LEADING_PUNCTUATION_RE = re.compile(r"^[\s:,\-–—\"']+")
_TRAILING_PUNCTUATION_RE = re.compile(r"[\s,\"']+$")
_MAX_EMBEDDED_CANDIDATES = 20


def parse_json(text: str) -> Any:
    """Strict JSON."""
    try:
        return json.loads(text)
    except (TypeError, ValueError, RecursionError):
        return None


def parse_fenced_json(text: str) -> Any:
    """JSON wrapped in a markdown code fence."""
    if not isinstance(text, str):
        return None
    match = _FENCE_RE.search(text)
    if match is None:
        return None
    return parse_json(match.group(1))


def parse_embedded_json(text: str) -> Any:
    """First decodable object or array embedded in surrounding prose."""
    if not isinstance(text, str):
        return None
    decoder = json.JSONDecoder()
    tried = 0
    for idx, char in enumerate(text):
        if char not in "{[":
            continue
        tried += 1
        if tried > _MAX_EMBEDDED_CANDIDATES:
            break
        try:
            value, _ = decoder.raw_decode(text, idx)
        except (ValueError, RecursionError):
            continue
        return value
    return None


def _outside_strings(text: str, fix: Callable[[str], str]) -> str:
    """Apply ``fix`` to the parts of ``text`` that are not double-quoted strings."""
    parts = []
    last = 0
    for match in _DQ_STRING_RE.finditer(text):
        parts.append(fix(text[last:match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(fix(text[last:]))
    return "".join(parts)


def _requote(segment: str) -> str:
    return _SQ_STRING_RE.sub(
        lambda m: json.dumps(m.group(1).replace("\\'", "'")),
        segment,
    )


def _loosen(segment: str) -> str:
    segment = _BARE_KEY_RE.sub(r'\1"\2"\3', segment)
    segment = _TRAILING_COMMA_RE.sub(r"\1", segment)
    return _PY_LITERAL_RE.sub(lambda m: _PY_LITERALS[m.group(1)], segment)


def parse_relaxed_json(text: str) -> Any:
    """JSON-ish text: single quotes, bare keys, trailing commas, Python literals."""
    if not isinstance(text, str):
        return None
    starts = [idx for idx in (text.find("{"), text.find("[")) if idx != -1]
    if not starts:
        return None
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    if end <= start:
        return None
    candidate = text[start:end + 1]
    candidate = _outside_strings(candidate, _requote)
    candidate = _outside_strings(candidate, _loosen)
    return parse_json(candidate)


DEFAULT_ATTEMPTS: tuple[ParserAttempt, ...] = (
    parse_json,
    parse_fenced_json,
    parse_embedded_json,
    parse_relaxed_json,
)


def recover_payload(
    text: str,
    validate: Callable[[Any], T | None],
    attempts: Sequence[ParserAttempt] = DEFAULT_ATTEMPTS,
) -> T | None:
    """Run parser attempts in order; return the first candidate ``validate`` accepts.

    Args:
        text: Raw model output.
        validate: Total function mapping a decoded candidate to the usable
            payload, or None when the candidate has the wrong shape.
        attempts: Parser attempts, tried in order.

    Returns:
        The validated payload, or None if no attempt produced one.
    """
    for attempt in attempts:
        candidate = attempt(text)
        if candidate is None:
            continue
        payload = validate(candidate)
        if payload is not None:
            return payload
    return None


def extract_verses_from_text(text: str) -> list[dict[str, str]]:
    """Pull ``reference``/``text`` pairs out of free text.

    A reference such as ``Romans 8:28`` is taken to be followed by its verse
    text, up to the end of the line or the next reference.
    """
    if not isinstance(text, str):
        return []
    matches = list(_REFERENCE_RE.finditer(text))
    verses = []
    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        segment = text[match.end():end]
        segment = _LEADING_PUNCTUATION_RE.sub("", segment)
        segment = segment.split("\n", 1)[0]
        segment = _TRAILING_PUNCTUATION_RE.sub("", segment)
        if segment:
            verses.append({"reference": match.group(1).strip(), "text": segment})
    return verses


def infer_topic_evaluation(text: str) -> TopicEvaluation:
    """Last-resort reading of a non-JSON topic evaluation."""
    lowered = text.lower() if isinstance(text, str) else ""
    return TopicEvaluation(
        can_be_addressed="true" in lowered and "false" not in lowered,
        reason="Extracted from non-JSON response",
    )
