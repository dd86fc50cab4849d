from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol, Union

import httpx

from . import llm_bridge
from .config import LLM_TIMEOUT_SEC
from .errors import ThrottledError, ValidationTransportError
from .interpreter import interpret
from .prompts import DEFAULT_PROMPT, PromptTemplate
from .throttle import ThrottlingGate
from .types import Question, Verdict

log = logging.getLogger(__name__)

Score = Union[str, int, None]


class Validator(Protocol):
    """What the orchestrator calls for one question/answer pair.

    Implementations may raise ThrottledError or ValidationTransportError.
    """

    def __call__(self, question: Question, answer: str, score: Score = None) -> Verdict: ...


class ValidationService:
    """Gate → prompt → LLM → interpreter, for one request."""

    def __init__(
        self,
        gate: ThrottlingGate,
        prompt: Callable[[], PromptTemplate] = lambda: DEFAULT_PROMPT,
        llm_factory: Callable[[Optional[str]], llm_bridge.LLMClient] = llm_bridge.client_for,
    ):
        self.gate = gate
        self.prompt = prompt
        self.llm_factory = llm_factory

    def validate(
        self,
        session_id: str,
        question_text: str,
        answer: str,
        score: Score = None,
        model: Optional[str] = None,
        origin: Optional[str] = None,
        question_id: str = "",
    ) -> Verdict:
        self.gate.admit(session_id, origin)
        tpl = self.prompt()
        llm = self.llm_factory(model)
        raw = llm_bridge.complete(llm, tpl.system, tpl.render(question_text, answer, score))
        verdict = interpret(raw, question_id, question_text, answer)
        log.info("validated session=%s question=%s valid=%s dialect=%s",
                 session_id, question_id or "-", verdict.is_valid, verdict.dialect)
        return verdict


class LocalValidator:
    """In-process validator bound to one respondent session."""

    def __init__(self, service: ValidationService, session_id: str, model: Optional[str] = None, origin: Optional[str] = None):
        self.service = service
        self.session_id = session_id
        self.model = model
        self.origin = origin

    def __call__(self, question: Question, answer: str, score: Score = None) -> Verdict:
        return self.service.validate(
            self.session_id, question.text, answer, score,
            model=self.model, origin=self.origin, question_id=question.id,
        )


class HttpValidator:
    """Validator that goes through a running survey API (``POST /api/validate``)."""

    def __init__(self, base_url: str, model: Optional[str] = None, timeout: float = LLM_TIMEOUT_SEC + 5,
                 client: Optional[httpx.Client] = None):
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.model = model
        self._session_id: Optional[str] = None
        self._session_lock = threading.Lock()

    @property
    def session_id(self) -> str:
        # batch validation calls in from several pool threads; one session per respondent
        if self._session_id is None:
            with self._session_lock:
                if self._session_id is None:
                    try:
                        resp = self.client.post("/api/session")
                        resp.raise_for_status()
                        self._session_id = str(_json_body(resp)["sessionId"])
                    except (httpx.HTTPError, KeyError) as e:
                        raise ValidationTransportError(f"Could not open a session: {e}") from e
        return self._session_id

    def status(self) -> dict:
        resp = self.client.get(f"/api/session/{self.session_id}/status")
        resp.raise_for_status()
        return resp.json()

    def __call__(self, question: Question, answer: str, score: Score = None) -> Verdict:
        body = {"question": question.text, "answer": answer, "score": score}
        if self.model:
            body["model"] = self.model
        try:
            resp = self.client.post("/api/validate", json=body, headers={"X-Session-Id": self.session_id})
        except httpx.HTTPError as e:
            raise ValidationTransportError(f"Connection failed: {e}") from e
        if resp.status_code == 429 and resp.headers.get("Retry-After"):
            detail = _detail(resp)
            raise ThrottledError(detail.get("scope", "session"), float(resp.headers["Retry-After"]),
                                 int(detail.get("limit") or 0), float(detail.get("window") or 0))
        if resp.status_code >= 400:
            raise ValidationTransportError(_detail(resp).get("message") or f"HTTP {resp.status_code}", resp.status_code)
        data = _json_body(resp)
        return Verdict(
            question_id=question.id,
            is_valid=data.get("isValid"),
            follow_up=data.get("followUpQuestion"),
            question=question.text,
            answer=answer,
            dialect=data.get("dialect"),
            raw=data.get("result") or "",
        )

    def close(self) -> None:
        self.client.close()


def _json_body(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError as e:
        raise ValidationTransportError(f"Malformed response from {resp.request.url.path}: {e}", resp.status_code) from e
    if not isinstance(data, dict):
        raise ValidationTransportError(f"Unexpected response body from {resp.request.url.path}", resp.status_code)
    return data


def _detail(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    if isinstance(data, dict) and isinstance(data.get("detail"), dict):
        return data["detail"]
    return data if isinstance(data, dict) else {}
