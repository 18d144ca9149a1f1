#!/usr/bin/env python3
"""Walk through a retained result set against a running mock server.

Usage:
    python scripts/demo_client.py --base-url http://localhost:9080

Steps:
    1. Log in with Basic credentials and request 20 program definitions with
       NODISCARD and SUMMONLY, which returns only a summary and a cache token.
    2. Page the first 10 records with NODISCARD using the LtpaToken2 cookie.
    3. Read the rest without NODISCARD, which discards the result set.
    4. Show that the token is now gone.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import httpx

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from cmcimock.api.wire import parse_response  # noqa: E402

RESOURCE_ROOT = "/CICSSystemManagement"


def _show(step: str, response: httpx.Response) -> dict:
    summary, records = parse_response(response.content)
    print(f"{step}: HTTP {response.status_code}")
    for key in ("api_response1_alt", "api_response2_alt", "recordcount",
                "displayed_recordcount", "cachetoken"):
        if key in summary:
            print(f"  {key}={summary[key]}")
    if records:
        print(f"  records={len(records)} first={records[0]}")
    return summary


def run(base_url: str, username: str, password: str) -> int:
    with httpx.Client(base_url=base_url, timeout=10.0) as client:
        response = client.get(
            f"{RESOURCE_ROOT}/CICSDefinitionProgram",
            params={"count": "20", "NODISCARD": "", "SUMMONLY": ""},
            auth=(username, password),
        )
        summary = _show("create", response)
        token = summary.get("cachetoken")
        if response.status_code != 200 or not token:
            print("no cache token returned", file=sys.stderr)
            return 1
        print(f"  LtpaToken2 cookie set: {'LtpaToken2' in client.cookies}")

        _show("page 1-10", client.get(f"{RESOURCE_ROOT}/CICSResultCache/{token}/1/10",
                                      params={"NODISCARD": ""}))
        _show("read and discard", client.get(f"{RESOURCE_ROOT}/CICSResultCache/{token}"))
        _show("after discard", client.get(f"{RESOURCE_ROOT}/CICSResultCache/{token}"))

        health = client.get("/health").json()
        print(f"health: {health}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Retained result set walkthrough")
    parser.add_argument("--base-url", default="http://localhost:9080")
    parser.add_argument("--username", default="testuser")
    parser.add_argument("--password", default="testpass")
    args = parser.parse_args()
    try:
        return run(args.base_url, args.username, args.password)
    except httpx.HTTPError as exc:
        print(f"request failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
