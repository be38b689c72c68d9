from __future__ import annotations

import os
from types import SimpleNamespace

import dotenv
import pytest
from rich.console import Console

from tweetctl import auth, config
from tweetctl.auth import IdentityMismatchError, home_user, validate_token
from tweetctl.resolver import MissingCredentialError, TokenStore
from tweetctl.tokens import BearerToken


def _fake_questionary(answer):
    return SimpleNamespace(text=lambda _question: SimpleNamespace(ask=lambda: answer))


def test_home_user_prefers_env(monkeypatch):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")
    store = TokenStore()

    assert home_user(store) == "alice"
    assert store.user == "alice"


def test_home_user_uses_cached_value(monkeypatch):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")

    assert home_user(TokenStore(user="cached")) == "cached"


def test_home_user_prompts_and_persists(monkeypatch):
    monkeypatch.setattr(auth, "_load_questionary", lambda: _fake_questionary("@carol"))
    store = TokenStore()

    user = home_user(store, Console(record=True))

    assert user == "carol"
    assert store.user == "carol"
    assert os.environ[auth.SCREEN_NAME_ENV_VAR] == "carol"
    assert dotenv.dotenv_values(config.env_file_path())[auth.SCREEN_NAME_ENV_VAR] == "carol"


def test_home_user_rejects_empty_answer(monkeypatch):
    monkeypatch.setattr(auth, "_load_questionary", lambda: _fake_questionary(None))

    with pytest.raises(RuntimeError, match="cannot be empty"):
        home_user(TokenStore(), Console(record=True))


def test_validate_token_accepts_matching_account(monkeypatch, make_user_token):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")
    store = TokenStore(twitter_tokens=make_user_token("alice"))

    assert validate_token(store) is True


def test_validate_token_unwraps_lists(monkeypatch, make_user_token):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")
    store = TokenStore(twitter_tokens=[make_user_token("alice"), make_user_token("bob")])

    assert validate_token(store) is True


def test_validate_token_rejects_other_account(monkeypatch, make_user_token):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")
    store = TokenStore(twitter_tokens=make_user_token("bob"))

    with pytest.raises(IdentityMismatchError) as excinfo:
        validate_token(store)

    assert "@bob" in str(excinfo.value)
    assert "@alice" in str(excinfo.value)


def test_validate_token_without_token(monkeypatch):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")

    with pytest.raises(MissingCredentialError, match="Could not find token"):
        validate_token(TokenStore())


def test_validate_token_rejects_bearer(monkeypatch):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")
    store = TokenStore(twitter_tokens=BearerToken(credentials={"access_token": "x"}))

    with pytest.raises(MissingCredentialError, match="TWITTER_PAT"):
        validate_token(store)


def test_validate_token_does_not_touch_cache(monkeypatch, make_user_token):
    monkeypatch.setenv(auth.SCREEN_NAME_ENV_VAR, "alice")
    token = make_user_token("bob")
    store = TokenStore(twitter_tokens=token)

    with pytest.raises(IdentityMismatchError):
        validate_token(store)

    assert store.twitter_tokens is token
