from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Optional, Union

from .errors import ConfigurationError

USER_PROMPT_SEPARATOR = "---USER_PROMPT---"
PROMPT_MIN_CHARS = 10

_SYSTEM_HEADER_RX = re.compile(r"^# System Prompt\s*\n?", re.I)
_USER_HEADER_RX = re.compile(r"^# User Prompt\s*\n?", re.I)
_PLACEHOLDER_RX = re.compile(r"\{(question|score|answer)\}")


@dataclass(frozen=True)
class PromptTemplate:
    system: str
    user: str

    def render(self, question: str, answer: str, score: Union[str, int, None] = None) -> str:
        """Fill the user template in one pass over the template text.

        Only the first occurrence of each placeholder is replaced, and
        placeholder-like text inside the respondent's values is left alone.
        """
        values = {
            "question": question,
            "score": str(score) if score not in (None, "") else "Not provided",
            "answer": answer,
        }
        seen: set = set()

        def _fill(m: re.Match) -> str:
            name = m.group(1)
            if name in seen:
                return m.group(0)
            seen.add(name)
            return values[name]

        return _PLACEHOLDER_RX.sub(_fill, self.user)

    def to_markdown(self) -> str:
        return f"# System Prompt\n\n{self.system}\n\n{USER_PROMPT_SEPARATOR}\n\n# User Prompt\n\n{self.user}"

    def to_dict(self) -> dict:
        return {"systemPrompt": self.system, "userPrompt": self.user}


DEFAULT_PROMPT = PromptTemplate(
    system=("You are an AI assistant helping to validate survey responses. Your task is to evaluate "
            "if answers provide sufficient detail for the questions asked."),
    user=('Question: "{question}"\nScore: {score}\nAnswer: "{answer}"\n\n'
          "Evaluate if this answer provides sufficient detail for the question asked. Respond with "
          '"sufficient" if the answer is detailed enough, or "insufficient" followed by a specific '
          "follow-up question to gather more details."),
)


def parse_markdown(text: str) -> Optional[PromptTemplate]:
    """Read the two-part markdown layout; None when either part is missing."""
    sections = (text or "").strip().split(USER_PROMPT_SEPARATOR)
    if len(sections) != 2:
        return None
    system = _SYSTEM_HEADER_RX.sub("", sections[0].strip(), count=1).strip()
    user = _USER_HEADER_RX.sub("", sections[1].strip(), count=1).strip()
    if not system or not user:
        return None
    return PromptTemplate(system=system, user=user)


def validate_prompt(system: object, user: object) -> PromptTemplate:
    if not isinstance(system, str) or not isinstance(user, str) or not system or not user:
        raise ConfigurationError("Both systemPrompt and userPrompt must be non-empty strings")
    if len(system.strip()) < PROMPT_MIN_CHARS or len(user.strip()) < PROMPT_MIN_CHARS:
        raise ConfigurationError(f"Both system and user prompts must be at least {PROMPT_MIN_CHARS} characters long")
    return PromptTemplate(system=system.strip(), user=user.strip())
