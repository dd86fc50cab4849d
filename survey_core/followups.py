from __future__ import annotations
import hashlib
from typing import Iterable, List, Optional, Tuple

from .config import FOLLOWUP_MARKER
from .types import Question, Verdict


def is_followup(question_id: str) -> bool:
    return FOLLOWUP_MARKER in question_id


def parent_of(question_id: str) -> str:
    return question_id.split(FOLLOWUP_MARKER, 1)[0]


def verdict_key(verdict: Verdict) -> str:
    """Deterministic suffix for the derived question of this parent/verdict pair."""
    h = hashlib.sha1()
    for part in (verdict.question_id, verdict.answer, verdict.follow_up or ""):
        h.update(part.encode("utf-8")); h.update(b"\x00")
    return h.hexdigest()[:10]


def followup_id(parent_id: str, key: str) -> str:
    return f"{parent_id}{FOLLOWUP_MARKER}{key}"


def make_followup(verdict: Verdict) -> Optional[Question]:
    text = (verdict.follow_up or "").strip()
    if verdict.is_valid is not False or not text:
        return None
    return Question(
        id=followup_id(verdict.question_id, verdict_key(verdict)),
        kind="text",
        text=text,
        required=True,
        llm_validation=False,
    )


def inject(questions: List[Question], verdicts: Iterable[Verdict]) -> Tuple[List[Question], List[Question]]:
    """Place a derived question right after each verdict's parent.

    Returns ``(new_questions, added)``. The input list is not modified. A
    verdict whose derived id is already present, or whose parent is missing,
    adds nothing.
    """
    out = list(questions)
    added: List[Question] = []
    for verdict in verdicts:
        fq = make_followup(verdict)
        if fq is None:
            continue
        if any(q.id == fq.id for q in out):
            continue
        idx = next((i for i, q in enumerate(out) if q.id == verdict.question_id), -1)
        if idx < 0:
            continue
        out.insert(idx + 1, fq)
        added.append(fq)
    return out, added


def followups_of(questions: Iterable[Question], parent_id: str) -> List[Question]:
    return [q for q in questions if is_followup(q.id) and parent_of(q.id) == parent_id]
