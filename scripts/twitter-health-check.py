#!/usr/bin/env python3
"""
Twitter credential health check.

Resolves the default token the same way tweetctl does, confirms it belongs to
the configured home account and that the API accepts it. Does not create or
persist any token. Run from project root after installing tweetctl
(e.g. uv pip install -e .):

    python scripts/twitter-health-check.py
    python scripts/twitter-health-check.py --api-url https://api.twitter.com/1.1

Exit code 0 on success, 1 on failure.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

if __name__ == "__main__":
    _root = Path(__file__).resolve().parent.parent / "src"
    if str(_root) not in sys.path:
        sys.path.insert(0, str(_root))

from rich.console import Console
from rich.table import Table

from tweetctl.auth import home_user, validate_token
from tweetctl.config import ConfigError, load_config, validate_api_base_url
from tweetctl.persistence import PAT_ENV_VAR
from tweetctl.resolver import check_token
from tweetctl.tokens import TokenError
from tweetctl.twitter_api import TwitterApiError, TwitterClient, TwitterUnauthorizedError


def _run_health_check(api_url_override: str | None) -> int:
    console = Console()
    try:
        cfg = load_config()
        api_url = validate_api_base_url(api_url_override) if api_url_override else cfg.api_base_url
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        return 1

    try:
        validate_token(console=console)
        user = home_user(console=console)
        token = check_token()
    except TokenError as e:
        console.print(f"[red]Token error:[/red] {e}")
        return 1

    try:
        with TwitterClient(token, base_url=api_url, timeout=15.0) as client:
            profile = client.verify_credentials()
    except TwitterUnauthorizedError:
        console.print(f"[red]Twitter rejected the token (401). Check {PAT_ENV_VAR} or create a new token.[/red]")
        return 1
    except TwitterApiError as e:
        console.print(f"[red]API error:[/red] {e}")
        return 1

    table = Table(title="Twitter health check")
    table.add_column("Check", style="cyan")
    table.add_column("Result", style="green")
    table.add_row("API base URL", api_url)
    table.add_row("Token source", os.environ.get(PAT_ENV_VAR, "(in memory)"))
    table.add_row("Home account", f"@{user}")
    table.add_row("Authenticated as", f"@{profile.get('screen_name', '')}")
    console.print(table)
    console.print("[green]Health check passed.[/green]")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Verify the resolved Twitter token.")
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Override the Twitter API base URL (otherwise uses tweetctl config).",
    )
    args = parser.parse_args()
    return _run_health_check(args.api_url)


if __name__ == "__main__":
    sys.exit(main())
