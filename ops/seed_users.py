from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
import urllib.request
import urllib.error


DEFAULT_BASE_URL = os.getenv("VIBES_BASE_URL", "http://localhost:8000")
DEFAULT_ADMIN_KEY = os.getenv("INTERNAL_ADMIN_KEY", "")

DEFAULT_TIMEOUT_SECONDS = 30


def http_post(url: str, payload: dict[str, Any], admin_key: str) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        url=url,
        data=data,
        method="POST",
        headers={
            "Content-Type": "application/json",
            "X-Internal-Admin-Key": admin_key,
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=DEFAULT_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        body = e.read().decode("utf-8", errors="replace")
        print(f"HTTP {e.code} {e.reason} for {url}", file=sys.stderr)
        if body:
            print(body, file=sys.stderr)
        return {"error": {"status": e.code, "reason": e.reason, "body": body}}
    except urllib.error.URLError as e:
        print(f"Network error for {url}: {e}", file=sys.stderr)
        return {"error": {"reason": str(e)}}


def main() -> int:
    p = argparse.ArgumentParser(description="Bootstrap marketplace users and print their API keys.")
    p.add_argument("--file", required=True, help='path to json file: {"users": [{"email": ..., "display_name": ...}]}')
    p.add_argument("--base-url", default=DEFAULT_BASE_URL)
    p.add_argument("--admin-key", default=DEFAULT_ADMIN_KEY)
    args = p.parse_args()

    if not args.admin_key:
        print("Missing INTERNAL_ADMIN_KEY (env) or --admin-key", file=sys.stderr)
        return 2

    try:
        with open(args.file, "r", encoding="utf-8") as f:
            body = json.load(f)
    except (OSError, ValueError) as e:
        print(f"Failed to read JSON file: {e}", file=sys.stderr)
        return 2

    if not isinstance(body, dict) or not isinstance(body.get("users"), list):
        print("Invalid payload: expected JSON object with a 'users' list.", file=sys.stderr)
        return 2

    endpoint = f"{args.base_url.rstrip('/')}/v1/internal/users"
    failures = 0
    results = []
    for user in body["users"]:
        resp = http_post(endpoint, user, args.admin_key)
        if "error" in resp:
            failures += 1
        results.append({"email": user.get("email"), **resp})

    # api keys are shown once; keep this output somewhere safe
    print(json.dumps(results, indent=2, ensure_ascii=False))
    return 0 if failures == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
