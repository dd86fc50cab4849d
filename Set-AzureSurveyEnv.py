# Set-AzureSurveyEnv.py
import os, json, argparse, subprocess, sys

def load_cfg(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        cfg = json.load(f)
    for k in ("AZURE_OPENAI_ENDPOINT","AZURE_OPENAI_API_KEY","AZURE_OPENAI_DEPLOYMENT"):
        if not cfg.get(k):
            print(f"Missing {k} in {path}", file=sys.stderr); sys.exit(1)
    cfg.setdefault("AZURE_OPENAI_API_VERSION", "2024-08-01-preview")
    cfg.setdefault("LLM_BACKEND", "azure")
    return {k: str(v) for k, v in cfg.items()}

def main():
    ap = argparse.ArgumentParser(description="Run the survey API (or any command) with Azure OpenAI settings in the env.")
    ap.add_argument("--config", default=".azure_config.json")
    ap.add_argument("--port", default="3001")
    ap.add_argument("--run", nargs=argparse.REMAINDER,
                    help="Command to run instead of the API. Example: --run python tools/llm_smoke.py --model azure")
    args = ap.parse_args()

    cfg = load_cfg(args.config)
    env = os.environ.copy(); env.update(cfg)

    cmd = args.run or [sys.executable, "-m", "uvicorn", "api.app:app", "--port", args.port]
    print("Loaded Azure config:")
    for k in ("AZURE_OPENAI_ENDPOINT","AZURE_OPENAI_DEPLOYMENT","AZURE_OPENAI_API_VERSION","LLM_BACKEND"):
        print(f"{k}={env.get(k)}")
    print("Launching:", " ".join(cmd))
    subprocess.run(cmd, env=env, check=True)

if __name__ == "__main__":
    main()
