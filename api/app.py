from __future__ import annotations
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Body, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import logging, os, uuid, typing as t

from survey_core.config import SWEEP_INTERVAL_SEC, SWEEPER_ENABLED
from survey_core.errors import ConfigurationError, ThrottledError, ValidationTransportError
from survey_core.llm_bridge import backend_in_use
from survey_core.prompts import validate_prompt
from survey_core.sessions import Sweeper
from survey_core.survey_config import parse_config
from survey_core.throttle import ThrottlingGate
from survey_core.validation import ValidationService
from . import storage
from .storage import utcnow_iso

log = logging.getLogger(__name__)

GATE = ThrottlingGate()
SERVICE = ValidationService(GATE, prompt=storage.load_prompt)
SWEEPER = Sweeper(GATE.sweep, interval=SWEEP_INTERVAL_SEC)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if SWEEPER_ENABLED:
        SWEEPER.start()
    log.info("survey api up; prompt=%s config=%s", storage.PROMPT_PATH, storage.CONFIG_PATH)
    try:
        yield
    finally:
        SWEEPER.stop()


app = FastAPI(title="Survey Probe API", lifespan=lifespan)

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class ValidateReq(BaseModel):
    question: str | None = None
    answer: str | None = None
    score: int | str | None = None
    model: str | None = None

class PromptReq(BaseModel):
    systemPrompt: t.Any = None
    userPrompt: t.Any = None

class SubmitReq(BaseModel):
    sessionId: str | None = None
    responses: dict[str, t.Any] | None = None
    config: dict[str, t.Any] | None = None
    submittedAt: str | None = None

# ---- Helpers ----
def _err(status: int, error: str, message: str, headers: dict[str, str] | None = None, **extra: t.Any) -> HTTPException:
    return HTTPException(status, {"error": error, "message": message, **extra}, headers=headers)


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# ---- Health ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": utcnow_iso(),
        "sessionsActive": GATE.active_sessions,
        "llm_backend": backend_in_use(),
    }

# ---- Sessions ----
@app.post("/api/session")
def create_session():
    return {"sessionId": GATE.new_session()}

@app.get("/api/session/{sid}/status")
def session_status(sid: str):
    return GATE.status(sid).to_dict()

# ---- Validation ----
@app.post("/api/validate")
def validate(request: Request, req: ValidateReq = Body(...), x_session_id: str | None = Header(None)):
    host = _client_host(request)
    sid = x_session_id or host
    if not req.question or not req.answer:
        raise _err(400, "Missing required fields", "question and answer are required")
    model = req.model or os.getenv("LLM_BACKEND") or storage.load_survey_config().selected_model
    log.info("validation request session=%s model=%s", sid, model)
    try:
        verdict = SERVICE.validate(sid, req.question, req.answer, req.score, model=model, origin=host)
    except ThrottledError as e:
        raise _err(429, "Too many requests", str(e), headers={"Retry-After": str(e.retry_after)},
                   retryAfter=e.retry_after, scope=e.scope, limit=e.limit, window=e.window)
    except ConfigurationError as e:
        raise _err(400, "API key not configured", str(e))
    except ValidationTransportError as e:
        if e.status in (401, 429):
            raise _err(e.status, "LLM provider rejected the request", str(e))
        raise _err(502, "Validation failed", "Failed to validate answer")
    return {
        "result": verdict.raw,
        "isValid": verdict.is_valid,
        "followUpQuestion": verdict.follow_up,
        "dialect": verdict.dialect,
        "sessionId": sid,
        "model": model,
        "timestamp": utcnow_iso(),
    }

# ---- Prompt ----
@app.get("/api/prompt")
def get_prompt():
    tpl = storage.load_prompt()
    return {**tpl.to_dict(), "timestamp": utcnow_iso()}

@app.post("/api/prompt")
def update_prompt(req: PromptReq):
    try:
        tpl = validate_prompt(req.systemPrompt, req.userPrompt)
    except ConfigurationError as e:
        raise _err(400, "Invalid prompt", str(e))
    try:
        storage.save_prompt(tpl)
    except OSError as e:
        log.error("saving prompt failed: %s", e)
        raise _err(500, "Save failed", "Failed to save LLM prompt to file")
    return {"success": True, **tpl.to_dict(), "message": "LLM prompt updated successfully", "timestamp": utcnow_iso()}

# ---- Survey config ----
@app.get("/api/config")
def get_config():
    return {"success": True, "config": storage.load_config_raw(), "timestamp": utcnow_iso()}

@app.post("/api/config")
def save_config(payload: dict[str, t.Any] = Body(...)):
    try:
        cfg = parse_config(payload)
    except ConfigurationError as e:
        raise _err(400, "Invalid configuration", str(e))
    try:
        stored = storage.save_survey_config(cfg)
    except OSError as e:
        log.error("saving configuration failed: %s", e)
        raise _err(500, "Save failed", "Failed to save configuration to file")
    return {"success": True, "message": "Configuration saved successfully", "config": stored, "timestamp": utcnow_iso()}

# ---- Submission ----
@app.post("/api/submit")
def submit(req: SubmitReq):
    if req.responses is None or req.config is None:
        raise _err(400, "Missing required fields", "responses and config are required")
    questions = req.config.get("questions") or []
    n_q, n_r = len(questions), len(req.responses)
    log.info("survey submitted session=%s questions=%d responses=%d", req.sessionId or "unknown", n_q, n_r)
    return {
        "success": True,
        "submissionId": str(uuid.uuid4()),
        "sessionId": req.sessionId or "anonymous",
        "submittedAt": req.submittedAt or utcnow_iso(),
        "summary": {
            "questionsCount": n_q,
            "responsesCount": n_r,
            "completionRate": round(n_r / (n_q or 1) * 100),
        },
        "responses": req.responses,
        "config": req.config,
        "message": "Survey submitted successfully!",
    }
