"""Small CLI to print the facade's /api/status JSON.

Usage:
  python scripts/check_status.py [base_url]

If base_url is omitted, http://localhost:$PORT (default 3000) is used.
"""

import json
import os
import sys

import requests


def main():
    if len(sys.argv) > 1:
        base_url = sys.argv[1]
    else:
        base_url = f"http://localhost:{os.getenv('PORT', '3000')}"
    try:
        resp = requests.get(f"{base_url.rstrip('/')}/api/status", timeout=10)
        resp.raise_for_status()
    except requests.RequestException as e:
        print(f"Status check failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
