"""Helpers for persisting the operator's survey config and LLM prompt.

Both live as plain files under ``DATA_DIR`` so an operator can edit them by
hand. Survey responses are never stored here.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from survey_core.errors import ConfigurationError
from survey_core.prompts import DEFAULT_PROMPT, PromptTemplate, parse_markdown
from survey_core.survey_config import DEFAULT_CONFIG, parse_config
from survey_core.types import SurveyConfig

log = logging.getLogger(__name__)

DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
PROMPT_PATH = DATA_ROOT / "llm-prompt.md"
CONFIG_PATH = DATA_ROOT / "survey-config.json"

_LOCK = threading.Lock()


def _ensure_dirs() -> None:
    DATA_ROOT.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        text = path.read_text(encoding="utf-8").strip()
        return json.loads(text) if text else default
    except (OSError, ValueError) as e:
        log.error("could not read %s: %s", path, e)
        return default


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)


def _write_json(path: Path, payload: Any) -> None:
    _write_text(path, json.dumps(payload, indent=2))


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_prompt() -> PromptTemplate:
    """Current prompt template; the built-in default when the file is missing or incomplete."""
    if not PROMPT_PATH.exists():
        return DEFAULT_PROMPT
    try:
        tpl = parse_markdown(PROMPT_PATH.read_text(encoding="utf-8"))
    except OSError as e:
        log.error("could not read prompt file %s: %s", PROMPT_PATH, e)
        return DEFAULT_PROMPT
    return tpl or DEFAULT_PROMPT


def save_prompt(tpl: PromptTemplate) -> None:
    _ensure_dirs()
    with _LOCK:
        _write_text(PROMPT_PATH, tpl.to_markdown())
    log.info("prompt saved to %s", PROMPT_PATH)


def load_config_raw() -> Dict[str, Any]:
    return _read_json(CONFIG_PATH, DEFAULT_CONFIG)


def load_survey_config() -> SurveyConfig:
    raw = load_config_raw()
    try:
        return parse_config(raw)
    except ConfigurationError as e:
        log.error("stored survey config is invalid, using default: %s", e)
        return parse_config(DEFAULT_CONFIG)


def save_survey_config(cfg: SurveyConfig) -> Dict[str, Any]:
    """Persist `cfg` stamped with a fresh lastModified; returns the stored payload."""
    cfg.last_modified = utcnow_iso()
    payload = cfg.to_dict()
    _ensure_dirs()
    with _LOCK:
        _write_json(CONFIG_PATH, payload)
    log.info("configuration saved to %s", CONFIG_PATH)
    return payload
