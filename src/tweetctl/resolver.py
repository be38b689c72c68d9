"""Resolve, cache and create the credentials every API call needs.

Resolution order, first hit wins and is cached in a :class:`TokenStore`:

1. a token already held by the store (including the legacy single-token
   slot);
2. the sources listed in ``TWITTER_PAT`` (comma or semicolon separated), or
   a token file found in the working directory when the variable is unset;
3. the token staged by :func:`create_token` earlier in this process.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Union

from rich.console import Console

from tweetctl.config import DEFAULT_APP_NAME
from tweetctl.oauth import clean_app_credential, oauth1_dance
from tweetctl.persistence import (
    PAT_ENV_VAR,
    load_user_env,
    persist_token,
    read_token_file,
    unset_env_var,
)
from tweetctl.sources import (
    CONVENTIONAL_DOTFILE,
    find_in_namespace,
    first_bundle_token,
    probe,
    twitter_pat,
)
from tweetctl.tokens import (
    TWITTER_ENDPOINT,
    BearerToken,
    OAuth1Token,
    OAuthApp,
    Token,
    TokenError,
    is_token,
    is_token_collection,
)

SETUP_DOCS_URL = "https://developer.twitter.com/en/docs/authentication/oauth-1-0a"
SYSTEM_SENTINEL = "system"

TokenSet = Union[Token, list[Token]]

logger = logging.getLogger(__name__)


class MissingCredentialError(TokenError):
    """Raised when no usable token can be found anywhere in the lookup chain."""


def missing_token_message() -> str:
    return f"API user token required. See {SETUP_DOCS_URL} for instructions."


@dataclass
class TokenStore:
    """Process-lifetime holder for resolved credentials.

    Populated on first successful resolution and never invalidated on its
    own; :meth:`clear` resets it explicitly.
    """

    twitter_tokens: TokenSet | None = None
    twitter_token: Token | None = None
    staged_token: Token | None = None
    user: str | None = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def clear(self) -> None:
        with self.lock:
            self.twitter_tokens = None
            self.twitter_token = None
            self.staged_token = None
            self.user = None


_default_store = TokenStore()


def default_store() -> TokenStore:
    return _default_store


def resolve_store(store: TokenStore | None) -> TokenStore:
    return store if store is not None else _default_store


def _first_valid(probes: Iterable[Callable[[], Any]]) -> Any | None:
    for attempt in probes:
        candidate = attempt()
        if is_token_collection(candidate):
            return candidate
    return None


def staged_token(store: TokenStore | None = None) -> Token:
    """Return the token staged by :func:`create_token`.

    When ``TWITTER_PAT`` is unset the token is also written to a fresh file
    so later processes can find it.
    """
    store = resolve_store(store)
    token = store.staged_token
    if token is None:
        raise MissingCredentialError(missing_token_message())
    if not os.getenv(PAT_ENV_VAR):
        path = persist_token(token)
        logger.info("Saved staged token to %s", path)
    return token


def namespace_token(namespace: Mapping[str, Any] | None = None) -> TokenSet | None:
    """Return the token held by a variable in ``namespace``, if any.

    Like :func:`staged_token`, a hit is saved to a fresh file when
    ``TWITTER_PAT`` is unset.
    """
    candidate = find_in_namespace(namespace)
    if not is_token_collection(candidate):
        return None
    if not os.getenv(PAT_ENV_VAR):
        tokens = [item for item in candidate if is_token(item)] if isinstance(candidate, list) else candidate
        path = persist_token(tokens)
        logger.info("Saved token found in namespace to %s", path)
    return candidate


def _load_entry(
    entry: str,
    store: TokenStore,
    namespace: Mapping[str, Any] | None,
) -> TokenSet:
    if entry == SYSTEM_SENTINEL:
        unset_env_var(PAT_ENV_VAR)
        raise MissingCredentialError(missing_token_message())

    path = Path(entry).expanduser()
    is_dotfile = path.name == CONVENTIONAL_DOTFILE
    token = _first_valid(
        (
            lambda: probe(read_token_file, path) if is_dotfile else None,
            lambda: first_bundle_token(path),
            lambda: probe(read_token_file, path),
            lambda: namespace_token(namespace),
            lambda: staged_token(store),
        )
    )
    if token is None:
        raise MissingCredentialError(missing_token_message())
    return token


def load_tokens(
    pat: str,
    store: TokenStore | None = None,
    *,
    namespace: Mapping[str, Any] | None = None,
) -> TokenSet:
    """Resolve every source listed in ``pat`` and cache the result.

    A single source yields a token; several yield a list in the order given.
    """
    store = resolve_store(store)
    entries = [entry.strip() for entry in re.split(r"[,;]", pat) if entry.strip()]
    if not entries:
        raise MissingCredentialError(missing_token_message())

    with store.lock:
        tokens = [_load_entry(entry, store, namespace) for entry in entries]
        result: TokenSet = tokens[0] if len(tokens) == 1 else tokens
        store.twitter_tokens = result
        return result


def get_tokens(
    store: TokenStore | None = None,
    *,
    namespace: Mapping[str, Any] | None = None,
) -> TokenSet:
    store = resolve_store(store)
    with store.lock:
        if store.twitter_tokens is None and store.twitter_token is not None:
            store.twitter_tokens = store.twitter_token
        if store.twitter_tokens is None:
            load_user_env()
            pat = twitter_pat(namespace=namespace)
            if pat is not None:
                store.twitter_tokens = load_tokens(pat, store, namespace=namespace)
        if store.twitter_tokens is None:
            store.twitter_tokens = staged_token(store)
        return store.twitter_tokens


get_token = get_tokens


def create_token(
    app: str = DEFAULT_APP_NAME,
    consumer_key: str = "",
    consumer_secret: str = "",
    access_token: str | None = None,
    access_secret: str | None = None,
    persist: bool = True,
    *,
    store: TokenStore | None = None,
    console: Console | None = None,
    open_browser: bool = True,
) -> OAuth1Token:
    """Create an OAuth 1.0 user token for ``app``.

    With both ``access_token`` and ``access_secret`` the token is built
    directly; otherwise the browser-based flow runs, which requires the app's
    callback URL to be ``http://127.0.0.1:1410``. With ``persist`` the token
    is saved to a new file and ``TWITTER_PAT`` is pointed at it.
    """
    if not isinstance(app, str):
        raise TypeError("app must be a string")
    key = clean_app_credential(consumer_key, "consumer_key")
    secret = clean_app_credential(consumer_secret, "consumer_secret")
    oauth_app = OAuthApp(appname=app, key=key, secret=secret)

    if access_token is not None and access_secret is not None:
        if not isinstance(access_token, str) or not isinstance(access_secret, str):
            raise TypeError("access_token and access_secret must be strings")
        token = OAuth1Token(
            app=oauth_app,
            endpoint=TWITTER_ENDPOINT,
            params={"as_header": True},
            credentials={"oauth_token": access_token, "oauth_token_secret": access_secret},
        )
    else:
        token = oauth1_dance(oauth_app, TWITTER_ENDPOINT, console=console, open_browser=open_browser)

    store = resolve_store(store)
    with store.lock:
        store.staged_token = token
    if persist:
        path = persist_token(token)
        logger.info("Saved token to %s", path)
    return token


def check_token(token: Any = None, store: TokenStore | None = None) -> Token:
    """Return a single usable token, resolving the default one when ``token`` is None."""
    if token is None:
        token = get_tokens(store)
    elif isinstance(token, BearerToken):
        return token

    if is_token(token):
        return token
    if isinstance(token, list) and token:
        token = token[0]
    if not is_token(token):
        raise MissingCredentialError("Not a valid access token.")
    return token
