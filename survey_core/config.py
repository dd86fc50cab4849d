from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


SESSION_MAX_REQUESTS: int = 10
SESSION_WINDOW_SEC: float = 60.0

GLOBAL_MAX_REQUESTS: int = 100
GLOBAL_WINDOW_SEC: float = 15 * 60.0

SWEEP_INTERVAL_SEC: float = 5 * 60.0
SESSION_STALE_SEC: float = 5 * 60.0

LLM_TIMEOUT_SEC: float = 30.0
LLM_MAX_TOKENS: int = 200
BATCH_MAX_WORKERS: int = 8

OPENAI_MODEL: str = "gpt-3.5-turbo"
GEMINI_MODEL: str = "gemini-1.5-flash"
DEFAULT_MODEL: str = "gemini"

FOLLOWUP_MARKER: str = "-followup-"
SENTINEL_NO_PROBE: str = "NO_PROBE"

SWEEPER_ENABLED: bool = True

# // env overrides for staging/ops; defaults match the public form.
SESSION_MAX_REQUESTS = _env_int("SESSION_MAX_REQUESTS", SESSION_MAX_REQUESTS)
SESSION_WINDOW_SEC = _env_float("SESSION_WINDOW_SEC", SESSION_WINDOW_SEC)
GLOBAL_MAX_REQUESTS = _env_int("GLOBAL_MAX_REQUESTS", GLOBAL_MAX_REQUESTS)
GLOBAL_WINDOW_SEC = _env_float("GLOBAL_WINDOW_SEC", GLOBAL_WINDOW_SEC)
SWEEP_INTERVAL_SEC = _env_float("SWEEP_INTERVAL_SEC", SWEEP_INTERVAL_SEC)
SESSION_STALE_SEC = _env_float("SESSION_STALE_SEC", SESSION_STALE_SEC)
LLM_TIMEOUT_SEC = _env_float("LLM_TIMEOUT_SEC", LLM_TIMEOUT_SEC)
BATCH_MAX_WORKERS = _env_int("BATCH_MAX_WORKERS", BATCH_MAX_WORKERS)
OPENAI_MODEL = os.getenv("OPENAI_MODEL", OPENAI_MODEL)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", GEMINI_MODEL)
SWEEPER_ENABLED = _env_bool("SWEEPER_ENABLED", SWEEPER_ENABLED)


def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError): cfg = {}
    e = os.environ
    if e.get("LLM_BACKEND"): cfg["LLM_BACKEND"] = e.get("LLM_BACKEND")
    if e.get("OPENAI_MODEL"): cfg["OPENAI_MODEL"] = e.get("OPENAI_MODEL")
    if e.get("GEMINI_MODEL"): cfg["GEMINI_MODEL"] = e.get("GEMINI_MODEL")
    return cfg
def get_backend(cfg: dict, model: str | None = None) -> str:
    """Resolve the provider name for a request; `model` wins over the env default."""
    b = (model or cfg.get("LLM_BACKEND") or DEFAULT_MODEL).lower().strip()
    if b == "chatgpt": b = "openai"
    return b
