"""
Trigger the overdue-returns check on a running API.

Usage:
  python scripts/check_overdue_returns.py [--base-url http://127.0.0.1:8000]
"""
import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

import httpx


def main():
    parser = argparse.ArgumentParser(description="Run the overdue returns check")
    parser.add_argument(
        "--base-url",
        default=os.getenv("STUDIO_BASE_URL", "http://127.0.0.1:8000"),
        help="API base URL",
    )
    args = parser.parse_args()

    try:
        resp = httpx.post(f"{args.base_url.rstrip('/')}/worker/returns/check", timeout=60)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        print(f"ERROR: overdue returns check failed: {e}")
        sys.exit(1)

    result = resp.json()
    print(
        f"Check completed! Created {result.get('tasks_created', 0)} new tasks, "
        f"updated {result.get('tasks_updated', 0)} existing tasks."
    )


if __name__ == "__main__":
    main()
