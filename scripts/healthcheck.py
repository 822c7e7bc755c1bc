#!/usr/bin/env python3
"""
Docker health check script for the Threads auto-reply service.

Queries the running service's ``/health`` route:
1. The HTTP server answers
2. The store is reachable
3. Required configuration is present

Exit codes:
    0 - Healthy
    1 - Unhealthy (or degraded)

Usage:
    python scripts/healthcheck.py
"""

import sys

import httpx


def check_health() -> bool:
    """
    Perform health checks against the local service.

    Returns:
        True if all checks pass, False otherwise.
    """
    try:
        from config import settings

        url = f"http://127.0.0.1:{settings.port}/health"
        try:
            response = httpx.get(url, timeout=5)
        except httpx.HTTPError as e:
            print(f"UNHEALTHY: Service not reachable - {e}")
            return False

        if response.status_code != 200:
            print(f"UNHEALTHY: /health returned {response.status_code}")
            return False

        report = response.json()
        if report.get("status") != "ok":
            missing = ", ".join(report.get("missing_config") or []) or "none"
            print(f"UNHEALTHY: store={report.get('store')} missing_config={missing}")
            return False

        print(f"HEALTHY: All checks passed (queue depth {report.get('queue_depth')})")
        return True

    except ImportError as e:
        print(f"UNHEALTHY: Import error - {e}")
        return False
    except Exception as e:
        print(f"UNHEALTHY: Unexpected error - {e}")
        return False


if __name__ == "__main__":
    healthy = check_health()
    sys.exit(0 if healthy else 1)
