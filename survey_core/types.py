from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Literal, Union
QuestionKind = Literal["text","single-choice","multiple-choice"]
ValidationStatus = Literal["unvalidated","validating","valid","invalid","errored"]
Dialect = Literal["sentinel","structured","heuristic"]
TriggerMode = Literal["immediate","batch"]
DisplayMode = Literal["separate","inline"]
AnswerValue = Union[str, List[str]]
@dataclass
class Question:
    id: str; kind: QuestionKind; text: str
    options: Optional[List[str]] = None
    required: bool = False
    llm_validation: Optional[bool] = None
    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = {"id": self.id, "type": self.kind, "question": self.text, "required": self.required}
        if self.options is not None: d["options"] = list(self.options)
        if self.llm_validation is not None: d["enableLLMValidation"] = self.llm_validation
        return d
@dataclass
class Answer:
    question_id: str; value: AnswerValue
    status: ValidationStatus = "unvalidated"
    follow_up: Optional[str] = None
    error: Optional[str] = None
@dataclass(frozen=True)
class InterpretationFallbackUsed:
    """Informational: the free-text heuristic produced the verdict."""
    reason: str
    raw: str
@dataclass(frozen=True)
class Verdict:
    question_id: str
    is_valid: Optional[bool]
    follow_up: Optional[str]
    question: str
    answer: str
    dialect: Optional[Dialect] = None
    fallback: Optional[InterpretationFallbackUsed] = None
    raw: str = ""
@dataclass
class SurveyConfig:
    questions: List[Question]
    validation_trigger: Literal["blur","submit"] = "blur"
    selected_model: str = "gemini"
    follow_up_display_mode: DisplayMode = "separate"
    last_modified: Optional[str] = None
    @property
    def trigger_mode(self) -> TriggerMode:
        return "batch" if self.validation_trigger == "submit" else "immediate"
    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = {
            "validationTrigger": self.validation_trigger,
            "selectedModel": self.selected_model,
            "followUpDisplayMode": self.follow_up_display_mode,
            "questions": [q.to_dict() for q in self.questions],
        }
        if self.last_modified: d["lastModified"] = self.last_modified
        return d
@dataclass
class ValidationResult:
    question_id: str
    verdict: Optional[Verdict] = None
    error: Optional[str] = None
    retry_after: Optional[int] = None
    applied: bool = False
    follow_up_id: Optional[str] = None
@dataclass
class BatchResult:
    results: List[ValidationResult] = field(default_factory=list)
    @property
    def errors(self) -> List[ValidationResult]:
        return [r for r in self.results if r.error is not None]
    @property
    def new_follow_ups(self) -> List[ValidationResult]:
        return [r for r in self.results if r.applied and r.verdict is not None and bool((r.verdict.follow_up or "").strip())]
    @property
    def completed_count(self) -> int:
        return len([r for r in self.results if r.error is None])
    @property
    def total_count(self) -> int:
        return len(self.results)
