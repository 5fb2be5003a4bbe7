#!/usr/bin/env python3
"""
Deployment verification for the Verzot API.

Checks:
  1. /health returns 200 + status ok
  2. /ready reports the database (and Redis, when enabled) as reachable
  3. Public listings (/v1/tournaments, /v1/matches) answer 200
  4. Protected routes reject anonymous callers with 401
  5. Role-gated writes reject anonymous callers with 401

Usage:
  python scripts/verify_deployment.py [BASE_URL]

  BASE_URL defaults to http://localhost:8000.
"""
from __future__ import annotations

import sys
from typing import Any

import httpx

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
RESET = "\033[0m"

BASE = sys.argv[1].rstrip("/") if len(sys.argv) > 1 else "http://localhost:8000"

PUBLIC_LISTINGS = ["/v1/tournaments", "/v1/matches", "/v1/teams"]
PROTECTED = [
    ("GET", "/v1/auth/me"),
    ("GET", "/v1/notifications"),
    ("GET", "/v1/users"),
]
GATED_WRITES = [
    ("POST", "/v1/matches", {}),
    ("POST", "/v1/tournaments", {}),
    ("PUT", "/v1/matches/00000000-0000-0000-0000-000000000000/status", {"status": "in-progress"}),
]

passed = 0
failed = 0
warnings = 0


def ok(msg: str) -> None:
    global passed
    passed += 1
    print(f"  {GREEN}PASS{RESET}  {msg}")


def fail(msg: str) -> None:
    global failed
    failed += 1
    print(f"  {RED}FAIL{RESET}  {msg}")


def warn(msg: str) -> None:
    global warnings
    warnings += 1
    print(f"  {YELLOW}WARN{RESET}  {msg}")


def _request(client: httpx.Client, method: str, path: str, body: Any = None) -> httpx.Response | None:
    try:
        return client.request(method, f"{BASE}{path}", json=body)
    except httpx.HTTPError as exc:
        fail(f"{method} {path}: network error: {exc}")
        return None


def main() -> None:
    print("\n=== Verzot Deployment Verification ===")
    print(f"Backend: {BASE}\n")

    with httpx.Client(timeout=15.0, headers={"Accept": "application/json"}) as client:
        # 1. Health
        print("[1] Health check")
        resp = _request(client, "GET", "/health")
        if resp is not None and resp.status_code == 200 and resp.json().get("status") == "ok":
            ok("/health returns status=ok")
        elif resp is not None:
            fail(f"/health unexpected: HTTP {resp.status_code} {resp.text[:200]}")

        # 2. Readiness
        print("[2] Readiness")
        resp = _request(client, "GET", "/ready")
        if resp is not None and resp.status_code == 200:
            data = resp.json()
            if data.get("database"):
                ok("database reachable")
            else:
                fail("database unreachable")
            if data.get("redis") is None:
                warn("redis disabled; notifications are stored but not pushed")
            elif data.get("redis"):
                ok("redis reachable")
            else:
                fail("redis unreachable")
        elif resp is not None:
            fail(f"/ready unexpected: HTTP {resp.status_code}")

        # 3. Public listings
        print("[3] Public listings")
        for path in PUBLIC_LISTINGS:
            resp = _request(client, "GET", path)
            if resp is not None and resp.status_code == 200:
                ok(f"GET {path}")
            elif resp is not None:
                fail(f"GET {path}: HTTP {resp.status_code}")

        # 4. Authentication required
        print("[4] Protected routes reject anonymous callers")
        for method, path in PROTECTED:
            resp = _request(client, method, path)
            if resp is not None and resp.status_code == 401:
                ok(f"{method} {path} -> 401")
            elif resp is not None:
                fail(f"{method} {path}: expected 401, got {resp.status_code}")

        # 5. Role-gated writes
        print("[5] Role-gated writes reject anonymous callers")
        for method, path, body in GATED_WRITES:
            resp = _request(client, method, path, body)
            if resp is not None and resp.status_code == 401:
                ok(f"{method} {path} -> 401")
            elif resp is not None and resp.status_code == 400:
                warn(f"{method} {path}: body validated before auth (400)")
            elif resp is not None:
                fail(f"{method} {path}: expected 401, got {resp.status_code}")

    print(f"\n=== Results: {GREEN}{passed} passed{RESET}, {RED}{failed} failed{RESET}, {YELLOW}{warnings} warnings{RESET} ===\n")
    sys.exit(1 if failed > 0 else 0)


if __name__ == "__main__":
    main()
