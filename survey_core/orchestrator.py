# survey_core/orchestrator.py
"""Per-respondent validation state machine and submission gate.

Each answer moves ``unvalidated -> validating -> valid | invalid | errored``;
editing the value sends it back to ``unvalidated``. In immediate mode a
question is validated when it loses focus; in batch mode every pending
eligible answer is validated concurrently on the submission attempt and the
attempt waits for all of them before deciding.

Verdicts are merged only if the answer still holds the value that was sent;
a verdict for an answer that changed in the meantime is dropped.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

from . import followups
from .config import BATCH_MAX_WORKERS
from .errors import ConfigurationError, ThrottledError, ValidationTransportError
from .types import (
    Answer,
    AnswerValue,
    BatchResult,
    DisplayMode,
    Question,
    SurveyConfig,
    TriggerMode,
    ValidationResult,
    Verdict,
)
from .validation import Score, Validator

log = logging.getLogger(__name__)

TERMINAL = ("valid", "invalid", "errored")
PENDING = ("unvalidated", "errored")


@dataclass
class SubmissionDecision:
    allowed: bool
    reasons: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def blocking(self) -> List[str]:
        out: List[str] = []
        for ids in self.reasons.values():
            out.extend(i for i in ids if i not in out)
        return out


@dataclass
class SubmitOutcome:
    status: Literal["submitted", "halted", "error"]
    message: str = ""
    decision: Optional[SubmissionDecision] = None
    batch: Optional[BatchResult] = None
    responses: Dict[str, AnswerValue] = field(default_factory=dict)

    @property
    def submitted(self) -> bool:
        return self.status == "submitted"


def _text(value: Optional[AnswerValue]) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)


def _plural(n: int, one: str, many: str) -> str:
    return one if n == 1 else many.format(n=n)


class ValidationOrchestrator:
    def __init__(
        self,
        config: SurveyConfig,
        validator: Validator,
        *,
        mode: Optional[TriggerMode] = None,
        display: Optional[DisplayMode] = None,
        max_workers: int = BATCH_MAX_WORKERS,
    ):
        self.config = config
        self.validator = validator
        self.mode: TriggerMode = mode or config.trigger_mode
        self.display: DisplayMode = display or config.follow_up_display_mode
        self.max_workers = max(1, int(max_workers))
        self.questions: List[Question] = list(config.questions)
        self.answers: Dict[str, Answer] = {}
        self._lock = threading.RLock()

    # ---- lookups ----
    def question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)

    def answer_text(self, question_id: str) -> str:
        ans = self.answers.get(question_id)
        return _text(ans.value if ans else None)

    def status_of(self, question_id: str) -> str:
        ans = self.answers.get(question_id)
        return ans.status if ans else "unvalidated"

    @staticmethod
    def is_eligible(question: Question) -> bool:
        return (question.kind == "text"
                and question.llm_validation is not False
                and not followups.is_followup(question.id))

    def score_context(self) -> Score:
        scored = next((q for q in self.questions if q.kind == "single-choice"), None)
        if scored is None:
            return None
        ans = self.answers.get(scored.id)
        if ans is None:
            return None
        val = ans.value
        if isinstance(val, (list, tuple)):
            return val[0] if val else None
        return val or None

    def responses(self) -> Dict[str, AnswerValue]:
        with self._lock:
            return {qid: ans.value for qid, ans in self.answers.items()}

    # ---- respondent input ----
    def set_answer(self, question_id: str, value: AnswerValue) -> Answer:
        if self.question(question_id) is None:
            raise KeyError(question_id)
        with self._lock:
            current = self.answers.get(question_id)
            if current is not None and current.value == value:
                return current
            ans = Answer(question_id=question_id, value=value)
            self.answers[question_id] = ans
            return ans

    def on_blur(self, question_id: str) -> Optional[ValidationResult]:
        """Immediate-mode trigger. Returns None when nothing was sent."""
        if self.mode != "immediate":
            return None
        q = self.question(question_id)
        if q is None or not self.is_eligible(q):
            return None
        if not self.answer_text(question_id).strip() or self.status_of(question_id) not in PENDING:
            return None
        return self.validate_one(question_id)

    # ---- validation ----
    def _begin(self, question_id: str) -> Tuple[Question, AnswerValue, Score]:
        with self._lock:
            q = self.question(question_id)
            ans = self.answers[question_id]
            ans.status = "validating"
            ans.follow_up = None
            ans.error = None
            return q, ans.value, self.score_context()

    def _call(self, question: Question, sent: AnswerValue, score: Score) -> Tuple[Optional[Verdict], ValidationResult]:
        result = ValidationResult(question_id=question.id)
        try:
            verdict = self.validator(question, _text(sent), score)
        except ThrottledError as e:
            result.error, result.retry_after = str(e), e.retry_after
            return None, result
        except (ValidationTransportError, ConfigurationError) as e:
            result.error = str(e)
            return None, result
        except Exception as e:
            log.exception("validator failed for question=%s", question.id)
            result.error = f"Validation failed: {e}"
            return None, result
        if verdict.is_valid is None:
            result.error = "Validation response could not be interpreted"
        result.verdict = verdict
        return verdict, result

    def validate_one(self, question_id: str) -> ValidationResult:
        q = self.question(question_id)
        if q is None:
            raise KeyError(question_id)
        if not self.is_eligible(q):
            return ValidationResult(question_id=question_id, error="Question is not eligible for validation")
        if not self.answer_text(question_id).strip():
            return ValidationResult(question_id=question_id, error="No answer to validate")
        q, sent, score = self._begin(question_id)
        verdict, result = self._call(q, sent, score)
        return self._merge(verdict, result, sent)

    def validate_batch(self) -> BatchResult:
        """Validate every eligible, non-empty, pending answer concurrently and wait for all."""
        with self._lock:
            targets = [q.id for q in self.questions
                       if self.is_eligible(q)
                       and self.answer_text(q.id).strip()
                       and self.status_of(q.id) in PENDING]
            started = [self._begin(qid) for qid in targets]
        batch = BatchResult()
        if not started:
            return batch
        log.info("batch validation of %d question(s)", len(started))
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(started))) as pool:
            futures = [pool.submit(self._call, q, sent, score) for q, sent, score in started]
            calls = [f.result() for f in futures]
        for (q, sent, _), (verdict, result) in zip(started, calls):
            batch.results.append(self._merge(verdict, result, sent))
        return batch

    def apply_verdict(self, verdict: Verdict, sent: Optional[AnswerValue] = None) -> ValidationResult:
        """Merge a verdict obtained elsewhere. `sent` defaults to the verdict's echoed answer."""
        result = ValidationResult(question_id=verdict.question_id, verdict=verdict)
        if verdict.is_valid is None:
            result.error = "Validation response could not be interpreted"
        return self._merge(verdict, result, verdict.answer if sent is None else sent)

    def _merge(self, verdict: Optional[Verdict], result: ValidationResult, sent: AnswerValue) -> ValidationResult:
        with self._lock:
            ans = self.answers.get(result.question_id)
            if ans is None or ans.value != sent:
                log.debug("dropping stale verdict for question=%s", result.question_id)
                return result
            result.applied = True
            if result.error is not None or verdict is None:
                ans.status, ans.error, ans.follow_up = "errored", result.error, None
                log.warning("validation error question=%s: %s", result.question_id, result.error)
                return result
            if verdict.is_valid:
                ans.status, ans.follow_up, ans.error = "valid", None, None
                return result
            ans.status, ans.error = "invalid", None
            ans.follow_up = (verdict.follow_up or "").strip() or None
            if ans.follow_up and self.display == "separate":
                self.questions, added = followups.inject(self.questions, [verdict])
                fid = followups.make_followup(verdict)
                result.follow_up_id = fid.id if fid else None
                if added:
                    log.info("follow-up %s added after question=%s", added[0].id, result.question_id)
            return result

    # ---- submission ----
    def follow_up_status(self) -> dict:
        derived = [q for q in self.questions if followups.is_followup(q.id)]
        incomplete = [q.id for q in derived if not self.answer_text(q.id).strip()]
        completed = len(derived) - len(incomplete)
        return {
            "total": len(derived),
            "completed": completed,
            "incomplete": incomplete,
            "allComplete": not incomplete,
            "completionRate": round(completed / len(derived) * 100) if derived else 100,
        }

    def _unresolved_invalid(self) -> List[str]:
        out: List[str] = []
        for q in self.questions:
            if not self.is_eligible(q) or self.status_of(q.id) != "invalid":
                continue
            ans = self.answers[q.id]
            if self.display == "inline" or not ans.follow_up:
                out.append(q.id)
                continue
            derived = followups.followups_of(self.questions, q.id)
            if not derived:
                out.append(q.id)
        return out

    def submission_state(self) -> SubmissionDecision:
        with self._lock:
            reasons: Dict[str, List[str]] = {}
            eligible = [q for q in self.questions if self.is_eligible(q)]
            validating = [q.id for q in eligible if self.status_of(q.id) == "validating"]
            if validating:
                reasons["validating"] = validating
            fu = self.follow_up_status()
            if fu["incomplete"]:
                reasons["follow_up_unanswered"] = list(fu["incomplete"])
            unresolved = self._unresolved_invalid()
            if unresolved:
                reasons["needs_more_detail"] = unresolved
            if self.mode == "batch":
                pending = [q.id for q in eligible
                           if self.answer_text(q.id).strip() and self.status_of(q.id) in PENDING]
                if pending:
                    reasons["not_validated"] = pending
            missing = [q.id for q in self.questions
                       if q.required and not followups.is_followup(q.id) and not self.answer_text(q.id).strip()]
            if missing:
                reasons["required"] = missing
            return SubmissionDecision(allowed=not reasons, reasons=reasons)

    def _halt_message(self, decision: SubmissionDecision) -> str:
        r = decision.reasons
        if "validating" in r:
            return "Please wait until answer validation has finished."
        if "follow_up_unanswered" in r:
            n = len(r["follow_up_unanswered"])
            return _plural(n, "Please answer the follow-up question before submitting.",
                           "Please answer the {n} follow-up questions before submitting.")
        if "needs_more_detail" in r:
            n = len(r["needs_more_detail"])
            return _plural(n, "Please provide more details for the highlighted question before submitting.",
                           "Please provide more details for the {n} highlighted questions before submitting.")
        if "not_validated" in r:
            n = len(r["not_validated"])
            return _plural(n, "Validation failed for 1 question. Please try again.",
                           "Validation failed for {n} questions. Please try again.")
        n = len(r.get("required", []))
        return _plural(n, "Please answer the required question before submitting.",
                       "Please answer the {n} required questions before submitting.")

    def attempt_submit(self) -> SubmitOutcome:
        batch: Optional[BatchResult] = None
        if self.mode == "batch":
            batch = self.validate_batch()
            failed = [r for r in batch.errors if r.applied]
            if failed:
                return SubmitOutcome(
                    status="error", batch=batch,
                    message=f"Validation failed for {len(failed)} question(s). Please try again.",
                )
            fresh = batch.new_follow_ups
            if fresh:
                n = len(fresh)
                if self.display == "separate":
                    msg = _plural(n, "A follow-up question has been added. Please answer it before submitting.",
                                  "{n} follow-up questions have been added. Please answer them before submitting.")
                else:
                    msg = _plural(n, "Please provide more details for the highlighted question before submitting.",
                                  "Please provide more details for the {n} highlighted questions before submitting.")
                return SubmitOutcome(status="halted", message=msg, batch=batch,
                                     decision=self.submission_state())
        decision = self.submission_state()
        if not decision.allowed:
            return SubmitOutcome(status="halted", message=self._halt_message(decision),
                                 decision=decision, batch=batch)
        return SubmitOutcome(status="submitted", message="Survey submitted successfully!",
                             decision=decision, batch=batch, responses=self.responses())
