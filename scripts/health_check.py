#!/usr/bin/env python3
"""HWnow external health probe.

Standalone script (stdlib only) that queries a running HWnow server and
reports whether it is usable: the /health endpoint must say "healthy", and
with --check-dashboard the default user must have at least one page.

Exit codes:
    0 — healthy
    1 — unhealthy or unreachable

Usage:
    python scripts/health_check.py
    python scripts/health_check.py --base-url http://127.0.0.1:8080 --check-dashboard
"""

import argparse
import json
import logging
import sys
import urllib.error
import urllib.parse
import urllib.request

logger = logging.getLogger("hwnow.health_check")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


def fetch_json(url: str, timeout: float) -> tuple[int, object]:
    """GET ``url`` and return (status, decoded body). Status 0 means unreachable."""
    req = urllib.request.Request(url, headers={"Accept": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        return e.code, {"error": f"HTTP {e.code}", "reason": str(e.reason)}
    except urllib.error.URLError as e:
        return 0, {"error": "unreachable", "reason": str(e.reason)}
    except ValueError as e:
        return 0, {"error": "invalid JSON", "reason": str(e)}


def check_server(base_url: str, timeout: float) -> list[str]:
    """Return a list of problems found on /health; empty when healthy."""
    status, data = fetch_json(f"{base_url}/health", timeout)
    if status != 200 or not isinstance(data, dict):
        return [f"/health returned {status}: {json.dumps(data)}"]

    problems = []
    if data.get("status") != "healthy":
        problems.append(f"status is {data.get('status')!r}")
    if data.get("database") != "ok":
        problems.append(f"database is {data.get('database')!r}")
    for name, module in (data.get("modules") or {}).items():
        module_status = module.get("status") if isinstance(module, dict) else None
        if module_status not in (None, "running"):
            problems.append(f"module {name} is {module_status!r}")
    return problems


def check_dashboard(base_url: str, user_id: str, timeout: float) -> list[str]:
    query = urllib.parse.urlencode({"userId": user_id})
    status, data = fetch_json(f"{base_url}/api/v1/pages?{query}", timeout)
    if status != 200:
        return [f"/api/v1/pages returned {status}: {json.dumps(data)}"]
    if not data:
        return [f"user {user_id} has no dashboard pages"]
    return []


def main() -> int:
    parser = argparse.ArgumentParser(description="HWnow health probe")
    parser.add_argument("--base-url", default="http://127.0.0.1:8080", help="Server root URL")
    parser.add_argument("--timeout", type=float, default=5.0, help="Request timeout in seconds")
    parser.add_argument("--check-dashboard", action="store_true", help="Also verify dashboard pages")
    parser.add_argument("--user-id", default="global-user", help="User for --check-dashboard")
    args = parser.parse_args()

    base_url = args.base_url.rstrip("/")
    problems = check_server(base_url, args.timeout)
    if not problems and args.check_dashboard:
        problems = check_dashboard(base_url, args.user_id, args.timeout)

    if problems:
        for problem in problems:
            logger.error("UNHEALTHY %s: %s", base_url, problem)
        return 1
    logger.info("HEALTHY %s", base_url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
