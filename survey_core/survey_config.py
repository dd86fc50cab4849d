from __future__ import annotations
from typing import Any, Dict, List, Mapping

from .errors import ConfigurationError
from .followups import is_followup
from .types import Question, SurveyConfig

QUESTION_KINDS = ("text", "single-choice", "multiple-choice")
CHOICE_KINDS = ("single-choice", "multiple-choice")
TRIGGERS = ("blur", "submit")
MODELS = ("chatgpt", "gemini", "openai", "azure")
DISPLAY_MODES = ("separate", "inline")

DEFAULT_CONFIG: Dict[str, Any] = {
    "validationTrigger": "blur",
    "selectedModel": "gemini",
    "followUpDisplayMode": "separate",
    "questions": [
        {
            "id": "1",
            "type": "single-choice",
            "question": "Which score do you give to the service?",
            "options": ["1", "2", "3", "4", "5"],
            "required": True,
        },
        {
            "id": "2",
            "type": "text",
            "question": "Why did you give this score?",
            "required": True,
            "enableLLMValidation": True,
        },
    ],
}


def parse_question(raw: Mapping[str, Any]) -> Question:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Each question must be an object")
    qid, kind, text = raw.get("id"), raw.get("type"), raw.get("question")
    if not qid or not kind or not text:
        raise ConfigurationError("Each question must have id, type, and question fields")
    if kind not in QUESTION_KINDS:
        raise ConfigurationError('Question type must be "text", "single-choice", or "multiple-choice"')
    options = raw.get("options")
    if kind in CHOICE_KINDS:
        if not isinstance(options, list) or not options:
            raise ConfigurationError("Choice questions must have a non-empty options array")
        options = [str(o) for o in options]
    else:
        options = None
    llm = raw.get("enableLLMValidation")
    if kind != "text":
        llm = None
    elif llm is not None:
        llm = bool(llm)
    required = bool(raw.get("required", False)) or is_followup(str(qid))
    if is_followup(str(qid)):
        llm = False
    return Question(id=str(qid), kind=kind, text=str(text), options=options, required=required, llm_validation=llm)


def parse_config(raw: Mapping[str, Any]) -> SurveyConfig:
    """Validate an operator-supplied config and build a :class:`SurveyConfig`."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration must be an object")
    trigger, model, questions = raw.get("validationTrigger"), raw.get("selectedModel"), raw.get("questions")
    if not trigger or not model or questions is None:
        raise ConfigurationError("validationTrigger, selectedModel, and questions are required")
    if trigger not in TRIGGERS:
        raise ConfigurationError('validationTrigger must be either "blur" or "submit"')
    if model not in MODELS:
        raise ConfigurationError(f"selectedModel must be one of {', '.join(MODELS)}")
    display = raw.get("followUpDisplayMode") or "separate"
    if display not in DISPLAY_MODES:
        raise ConfigurationError('followUpDisplayMode must be either "separate" or "inline"')
    if not isinstance(questions, list) or not questions:
        raise ConfigurationError("questions must be a non-empty array")
    parsed: List[Question] = [parse_question(q) for q in questions]
    seen: set[str] = set()
    for q in parsed:
        if q.id in seen:
            raise ConfigurationError(f"Duplicate question id: {q.id}")
        seen.add(q.id)
    return SurveyConfig(
        questions=parsed,
        validation_trigger=trigger,
        selected_model=model,
        follow_up_display_mode=display,
        last_modified=raw.get("lastModified"),
    )


def default_config() -> SurveyConfig:
    return parse_config(DEFAULT_CONFIG)
