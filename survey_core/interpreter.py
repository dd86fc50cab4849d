# survey_core/interpreter.py
"""Turn one raw LLM completion into a :class:`Verdict`.

Three dialects are tried in order; the first one that recognises the text
wins. The structured dialect never raises: a payload that does not decode
lets the heuristic dialect handle the same text, while a decoded payload
without a usable probe counts as no probe.
"""
from __future__ import annotations
import json, logging, re
from typing import Callable, Optional, Tuple

from .config import SENTINEL_NO_PROBE
from .types import Dialect, InterpretationFallbackUsed, Verdict

log = logging.getLogger(__name__)

Parsed = Tuple[bool, Optional[str]]
DialectParser = Callable[[str], Optional[Parsed]]

_FENCED_JSON_RX = re.compile(r"```json\s*([\s\S]*?)\s*```", re.I)
_FENCED_ANY_RX  = re.compile(r"```[a-zA-Z]*\s*([\s\S]*?)\s*```")
_BRACES_RX      = re.compile(r"\{[\s\S]*\}")
_INSUFFICIENT_RX = re.compile(r"^\s*insufficient\b[\s:.,\-]*", re.I)
_INSUFFICIENT_ANY_RX = re.compile(r"\binsufficient\b")


def _parse_sentinel(text: str) -> Optional[Parsed]:
    if text.strip().upper() == SENTINEL_NO_PROBE:
        return True, None
    return None


def _extract_payload(text: str) -> str:
    for rx in (_FENCED_JSON_RX, _FENCED_ANY_RX):
        m = rx.search(text)
        if m: return m.group(1)
    m = _BRACES_RX.search(text)
    return m.group(0) if m else text


def _parse_structured(text: str) -> Optional[Parsed]:
    if '"action"' not in text or '"text"' not in text:
        return None
    try:
        payload = json.loads(_extract_payload(text))
    except ValueError as e:
        log.debug("structured payload malformed: %s", e)
        return None
    if not isinstance(payload, dict):
        log.debug("structured payload is not an object; treating as no probe")
        return True, None
    action = str(payload.get("action") or "").strip().lower()
    follow = payload.get("text")
    follow = follow.strip() if isinstance(follow, str) else ""
    if action == "probe" and follow:
        return False, follow
    if action != "no_probe":
        log.debug("structured payload has no usable action: %r", action)
    return True, None


def _parse_heuristic(text: str) -> Parsed:
    # "insufficient" contains "sufficient"; the negative reading has to win
    if _INSUFFICIENT_RX.match(text):
        return False, _INSUFFICIENT_RX.sub("", text, count=1).strip()
    lowered = text.lower()
    if "sufficient" in lowered and not _INSUFFICIENT_ANY_RX.search(lowered):
        return True, None
    return False, text


_DIALECTS: Tuple[Tuple[Dialect, DialectParser], ...] = (
    ("sentinel", _parse_sentinel),
    ("structured", _parse_structured),
)


def interpret(raw: str, question_id: str = "", question: str = "", answer: str = "") -> Verdict:
    text = (raw or "").strip()
    for name, parser in _DIALECTS:
        parsed = parser(text)
        if parsed is not None:
            ok, follow = parsed
            return Verdict(question_id=question_id, is_valid=ok, follow_up=follow,
                           question=question, answer=answer, dialect=name, raw=raw or "")
    reason = "structured payload malformed" if '"action"' in text and '"text"' in text else "no sentinel or structured markers"
    log.debug("heuristic dialect used for question=%s (%s)", question_id, reason)
    ok, follow = _parse_heuristic(text)
    return Verdict(
        question_id=question_id, is_valid=ok, follow_up=follow or None,
        question=question, answer=answer, dialect="heuristic",
        fallback=InterpretationFallbackUsed(reason=reason, raw=raw or ""), raw=raw or "",
    )
