from __future__ import annotations

import os
from typing import Any

from rich.console import Console

from tweetctl.config import ConfigError
from tweetctl.persistence import PAT_ENV_VAR, load_user_env, set_env_var
from tweetctl.resolver import MissingCredentialError, TokenStore, get_tokens, resolve_store
from tweetctl.tokens import OAuth1Token, Token, TokenError

SCREEN_NAME_ENV_VAR = "TWITTER_SCREEN_NAME"


class IdentityMismatchError(TokenError):
    """Raised when the resolved token belongs to another account."""


def _load_questionary() -> Any:
    try:
        import questionary
    except ImportError as exc:  # pragma: no cover - dependency included in project deps
        raise RuntimeError(
            "Prompting for a screen name requires questionary. Install project dependencies first."
        ) from exc
    return questionary


def prompt_for_screen_name(console: Console) -> str:
    console.print(
        f"[bold]Twitter screen name required[/bold] (set {SCREEN_NAME_ENV_VAR} to skip prompts)."
    )
    questionary = _load_questionary()
    answer = questionary.text("What is your screen name on Twitter?").ask()
    user = (answer or "").strip().replace("@", "")
    if not user:
        raise TokenError("Twitter screen name cannot be empty.")
    return user


def home_user(store: TokenStore | None = None, console: Console | None = None) -> str:
    """Return the screen name this process operates as, asking once if unknown."""
    store = resolve_store(store)
    with store.lock:
        if store.user:
            return store.user

        load_user_env()
        user = os.getenv(SCREEN_NAME_ENV_VAR, "").strip()
        if user:
            store.user = user
            return user

        console = console or Console(stderr=True)
        user = prompt_for_screen_name(console)
        console.print("Saving your Twitter screen name as environment variable")
        set_env_var(SCREEN_NAME_ENV_VAR, user)
        store.user = user
        return user


def validate_token(store: TokenStore | None = None, console: Console | None = None) -> bool:
    """Check that the resolved token belongs to the home user's account."""
    try:
        token: Any = get_tokens(store)
    except (TokenError, ConfigError):
        token = None
    if isinstance(token, list) and token and isinstance(token[0], Token):
        token = token[0]

    if not isinstance(token, OAuth1Token):
        raise MissingCredentialError(
            "Could not find token. Please save path to token associated with "
            f"@{home_user(store, console)}'s account as the \"{PAT_ENV_VAR}\" environment variable."
        )

    token_user = token.screen_name
    user = home_user(store, console)
    if token_user != user:
        raise IdentityMismatchError(
            f"Invalid token. This token belongs to @{token_user} and not @{user}.\n"
            f"Please save path to token associated with @{user}'s account as the "
            f"\"{PAT_ENV_VAR}\" environment variable."
        )
    return True
