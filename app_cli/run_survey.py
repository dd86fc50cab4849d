from __future__ import annotations
import argparse, logging, sys
from typing import List, Optional

import httpx

from survey_core.followups import is_followup
from survey_core.orchestrator import ValidationOrchestrator
from survey_core.survey_config import parse_config
from survey_core.types import AnswerValue, Question
from survey_core.validation import HttpValidator


def ask(prompt: str, options: Optional[List[str]] = None, multi: bool = False) -> AnswerValue:
    if options:
        print(prompt)
        for i,opt in enumerate(options): print(f"  [{i}] {opt}")
        while True:
            v = input("Your choice (index" + (", comma separated" if multi else "") + "): ").strip()
            picks = [p.strip() for p in v.split(",")] if multi else [v]
            if picks and all(p.isdigit() and int(p) < len(options) for p in picks):
                chosen = [options[int(p)] for p in picks]
                return chosen if multi else chosen[0]
            print("Enter a valid index.")
    else:
        return input(prompt + " ").strip()


def ask_question(orch: ValidationOrchestrator, q: Question) -> None:
    tag = "FOLLOW-UP" if is_followup(q.id) else q.kind.upper()
    req = " *" if q.required else ""
    v = ask(f"\n[{tag}] {q.text}{req}", q.options, multi=(q.kind == "multiple-choice"))
    orch.set_answer(q.id, v)
    res = orch.on_blur(q.id)
    if res is None:
        return
    if res.error:
        wait = f" (retry in {res.retry_after}s)" if res.retry_after else ""
        print(f"  ! validation error: {res.error}{wait}")
    elif res.verdict and res.verdict.is_valid:
        print("  ✓ looks good")
    elif res.verdict and res.verdict.follow_up:
        print(f"  ? {res.verdict.follow_up}")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Answer the configured survey in the terminal.")
    ap.add_argument("--api", default="http://localhost:3001")
    ap.add_argument("--model", default=None)
    ap.add_argument("-v", "--verbose", action="store_true")
    a = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if a.verbose else logging.WARNING, format="[%(levelname)s] %(message)s")

    client = httpx.Client(base_url=a.api, timeout=60.0)
    try:
        resp = client.get("/api/config"); resp.raise_for_status()
    except httpx.HTTPError as e:
        print(f"Survey API not reachable at {a.api}: {e}", file=sys.stderr)
        return 1
    cfg = parse_config(resp.json()["config"])
    validator = HttpValidator(a.api, model=a.model or cfg.selected_model, client=client)
    orch = ValidationOrchestrator(cfg, validator)
    print(f"Survey ({orch.mode} validation, {len(orch.questions)} questions). Ctrl+C to exit.")

    try:
        for q in list(orch.questions):
            ask_question(orch, q)
        while True:
            pending = [q for q in orch.questions if is_followup(q.id) and not orch.answer_text(q.id).strip()]
            for q in pending:
                ask_question(orch, q)
            for qid in orch.submission_state().reasons.get("needs_more_detail", []):
                q = orch.question(qid)
                if q is not None:
                    print(f"\n  More detail needed: {orch.answers[qid].follow_up or ''}")
                    ask_question(orch, q)
            outcome = orch.attempt_submit()
            if outcome.submitted:
                break
            print(f"\n{outcome.message}")
            if outcome.status == "error" and input("Retry validation? [Y/n] ").strip().lower() == "n":
                return 2
            if outcome.decision and outcome.decision.reasons.get("required"):
                for qid in outcome.decision.reasons["required"]:
                    ask_question(orch, orch.question(qid))
    except KeyboardInterrupt:
        print("\nStopped by user.")
        return 130

    body = {"sessionId": validator.session_id, "responses": outcome.responses,
            "config": {**cfg.to_dict(), "questions": [q.to_dict() for q in orch.questions]}}
    resp = client.post("/api/submit", json=body); resp.raise_for_status()
    data = resp.json()
    print(f"Done. Submission {data['submissionId']} ({data['summary']['completionRate']}% complete)")
    return 0


if __name__ == "__main__": sys.exit(main())
