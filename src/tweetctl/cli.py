from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable

import typer
from rich.console import Console
from rich.table import Table

from tweetctl.auth import home_user, validate_token
from tweetctl.config import (
    AppConfig,
    ConfigError,
    clear_token_dir,
    env_file_path,
    load_config,
    set_api_base_url,
    set_token_dir,
)
from tweetctl.logs import configure_logging
from tweetctl.oauth import bearer_token
from tweetctl.persistence import PAT_ENV_VAR, write_token_file
from tweetctl.records import (
    friendship_to_dict,
    render_friendship_table,
    render_records_table,
    render_tokens_table,
    render_users_table,
    sort_users,
    to_records,
    token_summary,
    user_to_dict,
)
from tweetctl.resolver import check_token, create_token, get_tokens
from tweetctl.tokens import Token, TokenError
from tweetctl.twitter_api import TwitterApiError, TwitterClient, TwitterUnauthorizedError, dedupe_users

app = typer.Typer(help="Twitter API CLI")
auth_app = typer.Typer(help="Create, inspect and validate access tokens")
config_app = typer.Typer(help="Manage local tweetctl config")
users_app = typer.Typer(help="Look up users")
friendships_app = typer.Typer(help="Inspect friendships")
status_app = typer.Typer(help="Post statuses")

app.add_typer(auth_app, name="auth")
app.add_typer(config_app, name="config")
app.add_typer(users_app, name="users")
app.add_typer(friendships_app, name="friendships")
app.add_typer(status_app, name="status")

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    configure_logging(verbose)


def _fail(message: str, *, code: int = 1) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=code)


def _load_config_or_fail() -> AppConfig:
    try:
        return load_config()
    except ConfigError as exc:
        _fail(str(exc))
    raise AssertionError("unreachable")


def _resolve_token_or_fail() -> Token:
    try:
        return check_token()
    except (TokenError, ConfigError) as exc:
        _fail(str(exc))
    raise AssertionError("unreachable")


def _run_with_client(
    cfg: AppConfig,
    action: Callable[[TwitterClient], int | None],
) -> int | None:
    token = _resolve_token_or_fail()
    try:
        with TwitterClient(
            token,
            base_url=cfg.api_base_url,
            timeout=cfg.timeout,
            max_retries=cfg.max_retries,
        ) as client:
            return action(client)
    except TwitterUnauthorizedError:
        _fail(
            f"Twitter rejected the token (401). Run 'tweetctl auth create' or update {PAT_ENV_VAR}."
        )
    except (TwitterApiError, TokenError) as exc:
        _fail(str(exc))
    raise AssertionError("unreachable")


def _render_config_table(cfg: AppConfig) -> Table:
    table = Table(title="tweetctl Config")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("api_base_url", cfg.api_base_url)
    table.add_row("token_dir", cfg.token_dir or "")
    table.add_row("effective_token_path", str(cfg.token_path()))
    table.add_row("app_name", cfg.app_name)
    table.add_row("timeout", str(cfg.timeout))
    table.add_row("max_retries", str(cfg.max_retries))
    table.add_row("env_file", str(env_file_path()))
    return table


@auth_app.command("create")
def auth_create(
    app_name: str | None = typer.Argument(None, help="Name of the Twitter app (defaults to config app_name)."),
    consumer_key: str = typer.Option(..., "--consumer-key", prompt=True, help="App API key."),
    consumer_secret: str = typer.Option(
        ..., "--consumer-secret", prompt=True, hide_input=True, help="App API secret."
    ),
    access_token: str | None = typer.Option(None, "--access-token", help="Access token from the developer portal."),
    access_secret: str | None = typer.Option(None, "--access-secret", help="Access secret from the developer portal."),
    no_save: bool = typer.Option(False, "--no-save", help=f"Do not save the token or set {PAT_ENV_VAR}."),
    no_browser: bool = typer.Option(False, "--no-browser", help="Print the authorization URL instead of opening it."),
) -> None:
    """Create an OAuth 1.0 user token."""
    cfg = _load_config_or_fail()
    try:
        token = create_token(
            app_name or cfg.app_name,
            consumer_key,
            consumer_secret,
            access_token,
            access_secret,
            persist=not no_save,
            console=console,
            open_browser=not no_browser,
        )
    except (TokenError, ConfigError) as exc:
        _fail(str(exc))

    who = f" for @{token.screen_name}" if token.screen_name else ""
    console.print(f"[green]Created token{who}.[/green]")
    if not no_save:
        console.print(f"[green]Saved token path:[/green] {os.environ.get(PAT_ENV_VAR, '')}")


@auth_app.command("bearer")
def auth_bearer(
    consumer_key: str = typer.Option(..., "--consumer-key", prompt=True, help="App API key."),
    consumer_secret: str = typer.Option(
        ..., "--consumer-secret", prompt=True, hide_input=True, help="App API secret."
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the token to this file."),
) -> None:
    """Create an app-only bearer token."""
    try:
        token = bearer_token(consumer_key, consumer_secret)
    except TokenError as exc:
        _fail(str(exc))

    console.print("[green]Created app-only bearer token.[/green]")
    if output is not None:
        written = write_token_file(token, output)
        console.print(f"[green]Saved bearer token:[/green] {written}")


@auth_app.command("show")
def auth_show(
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
) -> None:
    """Show the tokens this process resolves, without secrets."""
    try:
        resolved = get_tokens()
    except (TokenError, ConfigError) as exc:
        _fail(str(exc))

    tokens = resolved if isinstance(resolved, list) else [resolved]
    if json_output:
        console.print(json.dumps([token_summary(token) for token in tokens], indent=2))
    else:
        console.print(render_tokens_table(tokens, source=os.environ.get(PAT_ENV_VAR)))


@auth_app.command("validate")
def auth_validate() -> None:
    """Check that the resolved token belongs to your account."""
    try:
        validate_token(console=console)
        user = home_user(console=console)
    except TokenError as exc:
        _fail(str(exc))
    console.print(f"[green]Token belongs to @{user}.[/green]")


@config_app.command("set-api-url")
def config_set_api_url(url: str) -> None:
    """Persist the Twitter API base URL."""
    try:
        cfg = set_api_base_url(url)
    except ConfigError as exc:
        _fail(str(exc))
    console.print(f"[green]Saved api_base_url:[/green] {cfg.api_base_url}")


@config_app.command("set-token-dir")
def config_set_token_dir(path: Path) -> None:
    """Persist the directory new token files are written to."""
    try:
        cfg = set_token_dir(path)
    except ConfigError as exc:
        _fail(str(exc))
    console.print(f"[green]Saved token directory:[/green] {cfg.token_dir}")


@config_app.command("clear-token-dir")
def config_clear_token_dir() -> None:
    """Remove the persisted token directory."""
    try:
        cfg = clear_token_dir()
    except ConfigError as exc:
        _fail(str(exc))
    console.print("[green]Cleared token directory.[/green]")
    console.print(f"[green]Effective token path:[/green] {cfg.token_path()}")


@config_app.command("show")
def config_show() -> None:
    """Show effective local config."""
    cfg = _load_config_or_fail()
    console.print(_render_config_table(cfg))


@users_app.command("lookup")
def users_lookup(
    users: list[str] = typer.Argument(..., help="Screen names or user ids."),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
) -> None:
    """Look up users by screen name or id."""
    cfg = _load_config_or_fail()

    def action(client: TwitterClient) -> int:
        found = sort_users(dedupe_users(client.lookup_users(users)))
        if json_output:
            console.print(json.dumps([user_to_dict(user) for user in found], indent=2))
        else:
            console.print(render_users_table(found))
        return 0

    _run_with_client(cfg, action)


@friendships_app.command("show")
def friendships_show(
    source: str = typer.Argument(..., help="Source screen name or id."),
    target: str = typer.Argument(..., help="Target screen name or id."),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
) -> None:
    """Show the relationship between two accounts."""
    cfg = _load_config_or_fail()

    def action(client: TwitterClient) -> int:
        friendship = client.lookup_friendship(source, target)
        if json_output:
            console.print(json.dumps(friendship_to_dict(friendship), indent=2))
        else:
            console.print(render_friendship_table(friendship))
        return 0

    _run_with_client(cfg, action)


@friendships_app.command("lookup")
def friendships_lookup(
    users: list[str] = typer.Argument(..., help="Screen names or user ids."),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output."),
) -> None:
    """Show how your account is connected to each user."""
    cfg = _load_config_or_fail()

    def action(client: TwitterClient) -> int:
        records = to_records(client.my_friendships(users))
        if json_output:
            console.print(json.dumps(records, indent=2))
        else:
            console.print(
                render_records_table(
                    records,
                    columns=["screen_name", "id_str", "name", "connections"],
                    title="Friendships",
                )
            )
        return 0

    _run_with_client(cfg, action)


@status_app.command("post")
def status_post(
    text: str = typer.Argument(..., help="Status text."),
    in_reply_to: str | None = typer.Option(None, "--in-reply-to", help="Status id to reply to."),
) -> None:
    """Post a status as the authenticated account."""
    cfg = _load_config_or_fail()

    def action(client: TwitterClient) -> int:
        payload = client.post_status(text, in_reply_to_status_id=in_reply_to)
        console.print(f"[green]Posted status[/green] {payload.get('id_str', '')}")
        return 0

    _run_with_client(cfg, action)


@app.command("test")
def test_connection() -> None:
    """Check that the resolved token can reach the Twitter API."""
    cfg = _load_config_or_fail()

    def action(client: TwitterClient) -> int:
        profile = client.verify_credentials()
        table = Table(title="Twitter connectivity test")
        table.add_column("Check", style="cyan")
        table.add_column("Result")
        table.add_row("API base URL", cfg.api_base_url)
        table.add_row("API access", "OK (200)")
        table.add_row("Account", f"@{profile.get('screen_name', '')}")
        console.print(table)
        console.print("[green]Connectivity test passed.[/green]")
        return 0

    _run_with_client(cfg, action)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
