#!/usr/bin/env python3
"""Validate runtime configuration for pre-production/production deploys.

Collects every problem instead of stopping at the first one the way
get_settings() does at process start.

Examples:
  python backend/scripts/validate_runtime_config.py
  python backend/scripts/validate_runtime_config.py --require-email --pretty
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Settings, is_local_env


def _validate_settings(*, require_email: bool) -> tuple[list[str], dict[str, Any]]:
    settings = Settings()
    local_env = is_local_env(settings.app_env)
    failures: list[str] = []

    try:
        ZoneInfo(settings.local_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        failures.append(f"LOCAL_TIMEZONE {settings.local_timezone!r} is not a known IANA timezone")
    if settings.reorder_poll_interval_seconds <= 0:
        failures.append("REORDER_POLL_INTERVAL_SECONDS must be positive")
    if settings.dispatch_poll_interval_seconds <= 0:
        failures.append("DISPATCH_POLL_INTERVAL_SECONDS must be positive")
    if settings.dispatch_batch_size <= 0:
        failures.append("DISPATCH_BATCH_SIZE must be positive")
    if settings.inventory_expiry_grace_days < 0:
        failures.append("INVENTORY_EXPIRY_GRACE_DAYS must not be negative")

    if not local_env:
        if settings.debug:
            failures.append("DEBUG=true is not allowed outside local/dev/test")
        require_email = True

    if require_email:
        if settings.email_backend != "sendgrid":
            failures.append("EMAIL_BACKEND must be 'sendgrid' for this deploy target")
        if not settings.sendgrid_api_key.strip():
            failures.append("SENDGRID_API_KEY is required for this deploy target")
        if not settings.email_from.strip():
            failures.append("EMAIL_FROM is required for this deploy target")

    summary = {
        "status": "success" if not failures else "failed",
        "app_env": settings.app_env,
        "local_env": local_env,
        "require_email": bool(require_email),
        "local_timezone": settings.local_timezone,
        "failures": failures,
    }
    return failures, summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate deployment runtime config")
    parser.add_argument(
        "--require-email",
        action="store_true",
        help="Require a delivering email backend even in local/dev/test",
    )
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args()

    try:
        failures, summary = _validate_settings(require_email=bool(args.require_email))
    except Exception as exc:  # noqa: BLE001
        summary = {
            "status": "failed",
            "error": str(exc),
            "require_email": bool(args.require_email),
        }
        failures = [str(exc)]

    if args.pretty:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print(json.dumps(summary))

    return 0 if not failures else 1


if __name__ == "__main__":
    raise SystemExit(main())
