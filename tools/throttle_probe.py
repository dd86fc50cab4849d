# tools/throttle_probe.py
from __future__ import annotations
import argparse, time
import httpx

def main():
    ap = argparse.ArgumentParser(description="Fire rapid validation requests at a running API and report throttling.")
    ap.add_argument("--api", default="http://localhost:3001")
    ap.add_argument("-n", "--requests", type=int, default=12)
    ap.add_argument("--delay", type=float, default=0.1)
    a = ap.parse_args()
    with httpx.Client(base_url=a.api, timeout=60.0) as cli:
        sid = cli.post("/api/session").json()["sessionId"]
        print(f"Session ID: {sid}\n")
        print(f"Making {a.requests} rapid requests...\n")
        for i in range(1, a.requests + 1):
            try:
                r = cli.post("/api/validate", headers={"X-Session-Id": sid},
                             json={"question": "Test question?", "answer": f"Test answer {i}"})
            except httpx.HTTPError as e:
                print(f"Request {i}: NETWORK ERROR - {e}"); continue
            if r.status_code == 200:
                print(f"Request {i}: SUCCESS")
            elif r.status_code == 429:
                print(f"Request {i}: THROTTLED - retry after {r.headers.get('Retry-After')}s")
            else:
                detail = r.json().get("detail") or {}
                print(f"Request {i}: ERROR ({r.status_code}) - {detail.get('message', '') if isinstance(detail, dict) else detail}")
            time.sleep(a.delay)
        st = cli.get(f"/api/session/{sid}/status").json()
        print("\n--- Session Status ---")
        print(f"Requests in window: {st['requestsInWindow']}/{st['maxRequests']}")

if __name__ == "__main__":
    main()
