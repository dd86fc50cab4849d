from __future__ import annotations

import threading
from typing import Callable, Dict, List, Optional

import pytest

from survey_core.interpreter import interpret
from survey_core.survey_config import parse_config
from survey_core.types import Question, SurveyConfig, Verdict


def build_config(
    *,
    text_questions: int = 3,
    with_score: bool = True,
    trigger: str = "submit",
    display: str = "separate",
) -> SurveyConfig:
    """Deterministic survey config for tests: optional score question, then text questions."""

    questions: list[dict] = []
    if with_score:
        questions.append({
            "id": "score",
            "type": "single-choice",
            "question": "Which score do you give to the service?",
            "options": ["1", "2", "3", "4", "5"],
            "required": True,
        })
    for idx in range(1, text_questions + 1):
        questions.append({
            "id": f"t{idx}",
            "type": "text",
            "question": f"Open question #{idx}",
            "required": True,
        })
    return parse_config({
        "validationTrigger": trigger,
        "selectedModel": "gemini",
        "followUpDisplayMode": display,
        "questions": questions,
    })


class FakeLLM:
    """LLM stand-in: returns scripted text per answer (or a default), records calls."""

    def __init__(self, replies: Optional[Dict[str, str]] = None, default: str = "NO_PROBE"):
        self.replies = replies or {}
        self.default = default
        self.calls: List[tuple[str, str]] = []
        self._lock = threading.Lock()

    def complete(self, system: str, user: str) -> str:
        with self._lock:
            self.calls.append((system, user))
        for needle, reply in self.replies.items():
            if needle in user:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        return self.default


class ScriptedValidator:
    """Validator stand-in keyed by question id; values are raw LLM text, exceptions, or callables."""

    def __init__(self, script: Optional[Dict[str, object]] = None, default: str = "NO_PROBE"):
        self.script = script or {}
        self.default = default
        self.calls: List[tuple[str, str, object]] = []
        self._lock = threading.Lock()

    def __call__(self, question: Question, answer: str, score=None) -> Verdict:
        with self._lock:
            self.calls.append((question.id, answer, score))
        action = self.script.get(question.id, self.default)
        if isinstance(action, Exception):
            raise action
        if callable(action):
            action = action(question, answer, score)
        return interpret(str(action), question.id, question.text, answer)


@pytest.fixture
def batch_config() -> SurveyConfig:
    return build_config()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
