from __future__ import annotations

from dataclasses import asdict
from typing import Any, Sequence

from rich.table import Table

from tweetctl.tokens import BearerToken, OAuth1Token, Token
from tweetctl.twitter_api import Friendship, UserSummary


def flatten_record(payload: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested objects into dotted column names.

    Lists of scalars are joined with commas; lists of objects are kept as-is.
    """
    out: dict[str, Any] = {}
    for key, value in payload.items():
        column = f"{prefix}{key}"
        if isinstance(value, dict):
            out.update(flatten_record(value, prefix=f"{column}."))
        elif isinstance(value, list) and all(not isinstance(item, (dict, list)) for item in value):
            out[column] = ",".join(str(item) for item in value)
        else:
            out[column] = value
    return out


def to_records(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        return [flatten_record(payload)]
    if isinstance(payload, list):
        return [flatten_record(item) for item in payload if isinstance(item, dict)]
    return []


def user_to_dict(user: UserSummary) -> dict[str, Any]:
    return asdict(user)


def friendship_to_dict(friendship: Friendship) -> dict[str, Any]:
    return asdict(friendship)


def sort_users(users: list[UserSummary]) -> list[UserSummary]:
    return sorted(users, key=lambda u: (u.screen_name.lower(), u.user_id))


def render_users_table(users: list[UserSummary]) -> Table:
    table = Table(title="Twitter Users")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Screen Name", style="magenta")
    table.add_column("Name", style="bold")
    table.add_column("Followers", justify="right")
    table.add_column("Friends", justify="right")
    table.add_column("Statuses", justify="right")
    table.add_column("Created")

    for user in users:
        table.add_row(
            user.user_id,
            f"@{user.screen_name}" if user.screen_name else "",
            user.name,
            "" if user.followers_count is None else str(user.followers_count),
            "" if user.friends_count is None else str(user.friends_count),
            "" if user.statuses_count is None else str(user.statuses_count),
            user.created_at or "",
        )

    return table


def render_friendship_table(friendship: Friendship) -> Table:
    table = Table(title=f"@{friendship.source_screen_name} -> @{friendship.target_screen_name}")
    table.add_column("Relationship", style="cyan")
    table.add_column("Value")
    for key, value in friendship_to_dict(friendship).items():
        if key in {"source_screen_name", "target_screen_name"}:
            continue
        table.add_row(key, "" if value is None else str(value).lower())
    return table


def render_records_table(
    records: list[dict[str, Any]],
    *,
    columns: Sequence[str] | None = None,
    title: str | None = None,
) -> Table:
    if columns is None:
        seen: dict[str, None] = {}
        for record in records:
            for key in record:
                seen.setdefault(key, None)
        columns = list(seen)

    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for record in records:
        table.add_row(*("" if record.get(column) is None else str(record.get(column)) for column in columns))
    return table


def token_summary(token: Token) -> dict[str, str]:
    """Describe a token without exposing any secret."""
    summary = {"kind": token.kind, "app": "", "screen_name": "", "user_id": ""}
    if isinstance(token, OAuth1Token):
        summary["app"] = token.app.appname if token.app is not None else ""
        summary["screen_name"] = token.screen_name or ""
        summary["user_id"] = str(token.credentials.get("user_id") or "")
    elif isinstance(token, BearerToken):
        summary["app"] = "(app-only)"
    return summary


def render_tokens_table(tokens: list[Token], *, source: str | None = None) -> Table:
    table = Table(title="Twitter Tokens")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Kind", style="magenta")
    table.add_column("App")
    table.add_column("Screen Name", style="bold")
    table.add_column("User ID")
    for index, token in enumerate(tokens, start=1):
        summary = token_summary(token)
        table.add_row(
            str(index),
            summary["kind"],
            summary["app"],
            f"@{summary['screen_name']}" if summary["screen_name"] else "",
            summary["user_id"],
        )
    if source:
        table.caption = f"TWITTER_PAT={source}"
    return table
