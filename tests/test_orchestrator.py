from __future__ import annotations

import threading

import httpx

from survey_core import followups
from survey_core.errors import ThrottledError, ValidationTransportError
from survey_core.orchestrator import ValidationOrchestrator
from survey_core.types import Verdict
from survey_core.validation import HttpValidator

from tests.conftest import ScriptedValidator, build_config


def _fill(orch: ValidationOrchestrator, **answers) -> None:
    for qid, value in answers.items():
        orch.set_answer(qid, value)


def test_batch_follow_up_halts_submission_and_injects_after_parent(batch_config):
    validator = ScriptedValidator({"t2": '```json\n{"action":"probe","text":"Please specify a date"}\n```'})
    orch = ValidationOrchestrator(batch_config, validator)
    _fill(orch, score="4", t1="Friendly staff and quick service", t2="It was late", t3="Nothing to add here")

    outcome = orch.attempt_submit()

    assert outcome.status == "halted"
    assert len(validator.calls) == 3
    ids = [q.id for q in orch.questions]
    derived = [qid for qid in ids if followups.is_followup(qid)]
    assert len(derived) == 1
    assert ids.index(derived[0]) == ids.index("t2") + 1
    assert orch.question(derived[0]).text == "Please specify a date"
    assert orch.status_of("t2") == "invalid"
    assert not orch.submission_state().allowed

    again = orch.attempt_submit()
    assert again.status == "halted"
    assert len(validator.calls) == 3, "already-validated answers are not resent"
    assert "follow_up_unanswered" in again.decision.reasons

    orch.set_answer(derived[0], "March 3rd")
    final = orch.attempt_submit()
    assert final.submitted
    assert final.responses[derived[0]] == "March 3rd"


def test_batch_calls_run_concurrently():
    cfg = build_config(text_questions=3)
    gate = threading.Barrier(3, timeout=5)

    def wait_for_siblings(question, answer, score):
        gate.wait()
        return "NO_PROBE"

    validator = ScriptedValidator({f"t{i}": wait_for_siblings for i in (1, 2, 3)})
    orch = ValidationOrchestrator(cfg, validator, max_workers=3)
    _fill(orch, score="5", t1="a", t2="b", t3="c")

    batch = orch.validate_batch()

    assert batch.completed_count == 3
    assert all(orch.status_of(q) == "valid" for q in ("t1", "t2", "t3"))


def test_one_failure_does_not_cancel_siblings(batch_config):
    validator = ScriptedValidator({"t1": ValidationTransportError("timeout"), "t3": "insufficient which one?"})
    orch = ValidationOrchestrator(batch_config, validator)
    _fill(orch, score="2", t1="x", t2="y", t3="z")

    outcome = orch.attempt_submit()

    assert outcome.status == "error"
    assert "1 question(s)" in outcome.message
    assert orch.status_of("t1") == "errored"
    assert orch.status_of("t2") == "valid"
    assert orch.status_of("t3") == "invalid"
    assert any(followups.parent_of(q.id) == "t3" and followups.is_followup(q.id) for q in orch.questions)
    assert "not_validated" in orch.submission_state().reasons


def test_errored_answer_is_retried_on_next_attempt(batch_config):
    script = {"t1": ThrottledError("session", 12, 10, 60)}
    validator = ScriptedValidator(script)
    orch = ValidationOrchestrator(batch_config, validator)
    _fill(orch, score="3", t1="x", t2="y", t3="z")

    first = orch.attempt_submit()
    assert first.status == "error"
    assert first.batch.errors[0].retry_after == 12

    script.pop("t1")
    second = orch.attempt_submit()
    assert second.submitted
    assert [c[0] for c in validator.calls].count("t1") == 2


def test_stale_verdict_is_discarded():
    cfg = build_config(text_questions=1, trigger="blur")
    orch = ValidationOrchestrator(cfg, None)

    def edit_while_in_flight(question, answer, score):
        orch.set_answer("t1", "a much longer and more specific answer")
        return "insufficient tell us more"

    orch.validator = ScriptedValidator({"t1": edit_while_in_flight})
    orch.set_answer("t1", "meh")

    result = orch.validate_one("t1")

    assert result.applied is False
    assert orch.answers["t1"].value == "a much longer and more specific answer"
    assert orch.status_of("t1") == "unvalidated"
    assert not any(followups.is_followup(q.id) for q in orch.questions)


def test_edit_after_verdict_resets_status():
    cfg = build_config(text_questions=1, trigger="blur")
    orch = ValidationOrchestrator(cfg, ScriptedValidator({"t1": "insufficient why?"}))
    orch.set_answer("t1", "bad")
    orch.on_blur("t1")
    assert orch.status_of("t1") == "invalid"
    assert orch.answers["t1"].follow_up == "why?"

    orch.set_answer("t1", "bad")
    assert orch.status_of("t1") == "invalid", "same value is not an edit"
    orch.set_answer("t1", "bad service because the courier was two days late")
    assert orch.status_of("t1") == "unvalidated"
    assert orch.answers["t1"].follow_up is None


def test_immediate_mode_validates_on_blur_only_when_eligible():
    cfg = build_config(text_questions=2, trigger="blur")
    cfg.questions[2].llm_validation = False
    validator = ScriptedValidator()
    orch = ValidationOrchestrator(cfg, validator)

    orch.set_answer("t1", "   ")
    assert orch.on_blur("t1") is None
    orch.set_answer("t2", "skip me")
    assert orch.on_blur("t2") is None
    orch.set_answer("score", "4")
    assert orch.on_blur("score") is None

    orch.set_answer("t1", "clear answer")
    res = orch.on_blur("t1")
    assert res is not None and res.verdict.is_valid
    assert orch.on_blur("t1") is None, "already valid, nothing to resend"
    assert [c[0] for c in validator.calls] == ["t1"]


def test_score_context_is_passed_to_validator():
    cfg = build_config(text_questions=1, trigger="blur")
    validator = ScriptedValidator()
    orch = ValidationOrchestrator(cfg, validator)
    orch.set_answer("t1", "text")
    orch.on_blur("t1")
    orch.set_answer("score", "2")
    orch.set_answer("t1", "new text")
    orch.on_blur("t1")
    assert [c[2] for c in validator.calls] == [None, "2"]


def test_no_score_question_means_no_context():
    cfg = build_config(text_questions=1, with_score=False, trigger="blur")
    validator = ScriptedValidator()
    orch = ValidationOrchestrator(cfg, validator)
    orch.set_answer("t1", "text")
    orch.on_blur("t1")
    assert validator.calls[0][2] is None


def test_derived_questions_are_never_sent_for_validation(batch_config):
    validator = ScriptedValidator({"t1": "insufficient which store?"})
    orch = ValidationOrchestrator(batch_config, validator)
    _fill(orch, score="1", t1="bad", t2="ok", t3="fine")
    orch.attempt_submit()
    derived = next(q for q in orch.questions if followups.is_followup(q.id))
    assert not orch.is_eligible(derived)
    orch.set_answer(derived.id, "the one downtown")
    orch.attempt_submit()
    assert derived.id not in [c[0] for c in validator.calls]


def test_inline_mode_attaches_follow_up_instead_of_injecting():
    cfg = build_config(text_questions=1, display="inline")
    validator = ScriptedValidator({"t1": lambda q, a, s: "NO_PROBE" if "courier" in a else "insufficient more detail?"})
    orch = ValidationOrchestrator(cfg, validator)
    _fill(orch, score="3", t1="bad")

    out = orch.attempt_submit()
    assert out.status == "halted"
    assert "highlighted question" in out.message
    assert [q.id for q in orch.questions] == ["score", "t1"]
    assert orch.answers["t1"].follow_up == "more detail?"

    orch.set_answer("t1", "bad, the courier lost the parcel")
    assert orch.attempt_submit().submitted


def test_validating_answer_blocks_submission():
    cfg = build_config(text_questions=1, trigger="blur")
    orch = ValidationOrchestrator(cfg, ScriptedValidator())
    _fill(orch, score="5", t1="x")
    orch.answers["t1"].status = "validating"
    decision = orch.submission_state()
    assert not decision.allowed
    assert decision.reasons["validating"] == ["t1"]


def test_required_questions_block_submission():
    cfg = build_config(text_questions=2, trigger="blur")
    orch = ValidationOrchestrator(cfg, ScriptedValidator())
    orch.set_answer("score", "3")
    out = orch.attempt_submit()
    assert out.status == "halted"
    assert out.decision.reasons["required"] == ["t1", "t2"]


def test_apply_verdict_from_elsewhere_is_idempotent(batch_config):
    orch = ValidationOrchestrator(batch_config, ScriptedValidator(), mode="immediate")
    orch.set_answer("t1", "vague")
    v = Verdict(question_id="t1", is_valid=False, follow_up="What exactly?", question="Open question #1", answer="vague")
    first = orch.apply_verdict(v)
    second = orch.apply_verdict(v)
    assert first.applied and second.applied
    assert first.follow_up_id == second.follow_up_id
    assert sum(1 for q in orch.questions if followups.is_followup(q.id)) == 1


def test_unexpected_validator_error_marks_answer_errored(batch_config):
    validator = ScriptedValidator({"t2": RuntimeError("connection reset")})
    orch = ValidationOrchestrator(batch_config, validator)
    _fill(orch, score="4", t1="x", t2="y", t3="z")

    outcome = orch.attempt_submit()

    assert outcome.status == "error"
    assert orch.status_of("t2") == "errored"
    assert "connection reset" in orch.answers["t2"].error
    assert orch.status_of("t1") == orch.status_of("t3") == "valid"
    assert "validating" not in orch.submission_state().reasons


def test_non_json_reply_from_api_leaves_no_answer_stuck(batch_config):
    replies = {"validate": lambda: httpx.Response(200, text="<html>proxy error</html>")}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/session":
            return httpx.Response(200, json={"sessionId": "s-1"})
        return replies["validate"]()

    client = httpx.Client(base_url="http://survey.test", transport=httpx.MockTransport(handler))
    orch = ValidationOrchestrator(batch_config, HttpValidator("http://survey.test", client=client))
    _fill(orch, score="4", t1="x", t2="y", t3="z")

    first = orch.attempt_submit()
    assert first.status == "error"
    assert [orch.status_of(q) for q in ("t1", "t2", "t3")] == ["errored"] * 3

    replies["validate"] = lambda: httpx.Response(200, json=["not", "an", "object"])
    assert orch.attempt_submit().status == "error"
    assert [orch.status_of(q) for q in ("t1", "t2", "t3")] == ["errored"] * 3

    replies["validate"] = lambda: httpx.Response(200, json={"isValid": True, "result": "NO_PROBE", "dialect": "sentinel"})
    assert orch.attempt_submit().submitted


def test_validate_one_refuses_ineligible_questions(batch_config):
    validator = ScriptedValidator({"t1": "insufficient which store?"})
    orch = ValidationOrchestrator(batch_config, validator)
    _fill(orch, score="1", t1="bad", t2="ok", t3="fine")
    orch.attempt_submit()
    derived = next(q for q in orch.questions if followups.is_followup(q.id))
    orch.set_answer(derived.id, "the one downtown")
    calls_before = len(validator.calls)

    for qid in (derived.id, "score"):
        result = orch.validate_one(qid)
        assert result.error == "Question is not eligible for validation"
        assert result.applied is False

    assert len(validator.calls) == calls_before
    assert orch.status_of(derived.id) == "unvalidated"
