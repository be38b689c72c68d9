from __future__ import annotations

from pathlib import Path

import pytest

from tweetctl import config, resolver
from tweetctl.auth import SCREEN_NAME_ENV_VAR
from tweetctl.persistence import PAT_ENV_VAR
from tweetctl.tokens import TWITTER_ENDPOINT, OAuth1Token, OAuthApp


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    workdir = tmp_path / "work"
    home.mkdir()
    workdir.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv(config.ENV_FILE_ENV_VAR, str(home / ".tweetctl.env"))
    for name in (PAT_ENV_VAR, SCREEN_NAME_ENV_VAR):
        # setenv first so values written by the code under test are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setattr(config, "config_dir", lambda: Path(tmp_path / "config"))
    monkeypatch.chdir(workdir)

    resolver.default_store().clear()
    yield home
    resolver.default_store().clear()


@pytest.fixture
def make_user_token():
    def factory(screen_name: str = "alice", oauth_token: str = "111-abc") -> OAuth1Token:
        return OAuth1Token(
            app=OAuthApp(appname="testapp", key="ckey", secret="csecret"),
            endpoint=TWITTER_ENDPOINT,
            params={"as_header": True},
            credentials={
                "oauth_token": oauth_token,
                "oauth_token_secret": "secret",
                "user_id": "111",
                "screen_name": screen_name,
            },
        )

    return factory
