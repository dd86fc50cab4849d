"""The single LLM capability the core depends on: ``complete(system, user) -> text``.

Backends are thin wrappers over the provider SDKs. Each call is bounded by
`LLM_TIMEOUT_SEC` and SDK-level retries are off; any provider failure surfaces
as :class:`ValidationTransportError` so the orchestrator can record it against
the one question concerned.
"""
from __future__ import annotations
import logging, os, time
from typing import Callable, Dict, Optional, Protocol

from . import azure_cfg
from .config import GEMINI_MODEL, LLM_MAX_TOKENS, LLM_TIMEOUT_SEC, OPENAI_MODEL, get_backend, load_config
from .errors import ConfigurationError, ValidationTransportError

log = logging.getLogger(__name__)


class LLMClient(Protocol):
    def complete(self, system: str, user: str) -> str: ...


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None) or getattr(exc, "status", None)
    return status if isinstance(status, int) else None


class OpenAIClient:
    def __init__(self, model: str = OPENAI_MODEL, timeout: float = LLM_TIMEOUT_SEC, client=None):
        self.model = model
        self.timeout = timeout
        self._client = client

    def _cli(self):
        if self._client is None:
            from openai import OpenAI
            key = os.getenv("OPENAI_API_KEY")
            if not key:
                raise ConfigurationError("OpenAI API key not configured. Please set OPENAI_API_KEY.")
            self._client = OpenAI(api_key=key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, system: str, user: str) -> str:
        resp = self._cli().chat.completions.create(
            model=self.model,
            messages=[{"role":"system","content":system},{"role":"user","content":user}],
            max_tokens=LLM_MAX_TOKENS, temperature=0,
        )
        return (resp.choices[0].message.content or "").strip()


class AzureClient(OpenAIClient):
    def _cli(self):
        if self._client is None:
            self._client = azure_cfg.client(self.timeout)
            self.model = azure_cfg.settings().deployment
        return self._client


class GeminiClient:
    def __init__(self, model: str = GEMINI_MODEL, timeout: float = LLM_TIMEOUT_SEC, client=None):
        self.model = model
        self.timeout = timeout
        self._client = client

    def _cli(self):
        if self._client is None:
            from google import genai
            from google.genai import types
            key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
            if not key:
                raise ConfigurationError("Google API key not configured. Please set GOOGLE_API_KEY.")
            self._client = genai.Client(api_key=key, http_options=types.HttpOptions(timeout=int(self.timeout * 1000)))
        return self._client

    def complete(self, system: str, user: str) -> str:
        from google.genai import types
        # system and user text go in as one message
        resp = self._cli().models.generate_content(
            model=self.model,
            contents=f"{system}\n\n{user}",
            config=types.GenerateContentConfig(temperature=0, max_output_tokens=LLM_MAX_TOKENS),
        )
        return (resp.text or "").strip()


_BACKENDS: Dict[str, Callable[..., LLMClient]] = {
    "openai": OpenAIClient,
    "azure": AzureClient,
    "gemini": GeminiClient,
}


# config.json / env key naming the provider model, per backend (azure uses its deployment)
_MODEL_KEYS = {"openai": "OPENAI_MODEL", "gemini": "GEMINI_MODEL"}


def client_for(model: Optional[str] = None, timeout: float = LLM_TIMEOUT_SEC) -> LLMClient:
    cfg = load_config()
    backend = get_backend(cfg, model)
    factory = _BACKENDS.get(backend)
    if factory is None:
        raise ConfigurationError(f"Unknown model backend: {backend}")
    key = _MODEL_KEYS.get(backend)
    if key and cfg.get(key):
        return factory(model=str(cfg[key]), timeout=timeout)
    return factory(timeout=timeout)


def backend_in_use() -> str:
    return get_backend(load_config())


def complete(llm: LLMClient, system: str, user: str) -> str:
    """Call `llm` once. Provider errors become ValidationTransportError; no retry."""
    t0 = time.time()
    try:
        text = llm.complete(system, user)
    except (ConfigurationError, ValidationTransportError):
        raise
    except Exception as e:
        log.warning("llm call failed after %dms: %s", int((time.time()-t0)*1000), e)
        raise ValidationTransportError(str(e) or e.__class__.__name__, status=_status_of(e)) from e
    log.debug("llm call ok in %dms (%d chars)", int((time.time()-t0)*1000), len(text or ""))
    return text or ""
