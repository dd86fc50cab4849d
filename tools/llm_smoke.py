# tools/llm_smoke.py
from __future__ import annotations
import argparse, sys
from openai import NotFoundError
from survey_core.errors import ConfigurationError, ValidationTransportError
from survey_core.interpreter import interpret
from survey_core.llm_bridge import client_for, complete
from survey_core.prompts import DEFAULT_PROMPT

def main():
    ap = argparse.ArgumentParser(description="Send one validation prompt to a backend and show the verdict.")
    ap.add_argument("--model", choices=["openai","chatgpt","azure","gemini"], default="gemini")
    ap.add_argument("--question", default="Why did you give this score?")
    ap.add_argument("--answer", default="good")
    ap.add_argument("--score", default="3")
    a = ap.parse_args()
    user = DEFAULT_PROMPT.render(a.question, a.answer, a.score)
    try:
        raw = complete(client_for(a.model), DEFAULT_PROMPT.system, user)
    except ConfigurationError as e:
        print("Not configured:", e); sys.exit(1)
    except ValidationTransportError as e:
        if isinstance(e.__cause__, NotFoundError):
            print("ERROR 404: the provider cannot find this model/deployment.")
            print("→ For azure, verify the deployment name and api_version exactly as in the portal.")
        print(f"LLM call failed (status={e.status}):", e); sys.exit(2)
    v = interpret(raw, "smoke", a.question, a.answer)
    print("Raw      :", raw)
    print("Dialect  :", v.dialect)
    print("Valid    :", v.is_valid)
    print("Follow-up:", v.follow_up or "-")

if __name__ == "__main__":
    main()
