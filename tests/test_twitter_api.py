from __future__ import annotations

import httpx
import pytest
import respx

from tweetctl.config import AppConfig, set_api_base_url
from tweetctl.resolver import TokenStore
from tweetctl.tokens import BearerToken
from tweetctl.twitter_api import (
    TwitterApiError,
    TwitterClient,
    TwitterUnauthorizedError,
    UserSummary,
    dedupe_users,
    user_params,
)

API = "https://api.twitter.com/1.1"


def _bearer() -> BearerToken:
    return BearerToken(credentials={"access_token": "AAAA"})


def test_user_params_detects_ids_and_names():
    assert user_params(["12", 34]) == {"user_id": "12,34"}
    assert user_params(["@alice", "bob"]) == {"screen_name": "alice,bob"}
    assert user_params(["12", "bob"]) == {"screen_name": "12,bob"}


def test_lookup_users_parses_payload(monkeypatch):
    monkeypatch.setattr("tweetctl.twitter_api.time.sleep", lambda _: None)

    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{API}/users/lookup.json").respond(
            200,
            json=[
                {
                    "id_str": "111",
                    "screen_name": "alice",
                    "name": "Alice",
                    "followers_count": 10,
                    "friends_count": 5,
                    "statuses_count": 42,
                    "created_at": "Mon Jan 01 00:00:00 +0000 2018",
                    "verified": False,
                }
            ],
        )

        with TwitterClient(_bearer()) as client:
            users = client.lookup_users(["@alice"])

    assert len(users) == 1
    assert users[0].user_id == "111"
    assert users[0].screen_name == "alice"
    assert users[0].followers_count == 10
    request = route.calls.last.request
    assert request.url.params["screen_name"] == "alice"
    assert request.headers["Authorization"] == "Bearer AAAA"


def test_lookup_users_batches_requests(monkeypatch):
    monkeypatch.setattr("tweetctl.twitter_api.time.sleep", lambda _: None)

    def handler(request: httpx.Request) -> httpx.Response:
        ids = request.url.params["user_id"].split(",")
        return httpx.Response(200, json=[{"id_str": value, "screen_name": f"u{value}"} for value in ids])

    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{API}/users/lookup.json").mock(side_effect=handler)

        with TwitterClient(_bearer()) as client:
            users = client.lookup_users([str(value) for value in range(150)])

    assert len(users) == 150
    assert route.call_count == 2


def test_retry_on_429(monkeypatch):
    monkeypatch.setattr("tweetctl.twitter_api.time.sleep", lambda _: None)

    call_count = {"value": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        call_count["value"] += 1
        if call_count["value"] == 1:
            return httpx.Response(429, json={"errors": [{"code": 88}]}, headers={"retry-after": "1"})
        return httpx.Response(200, json={"id_str": "111", "screen_name": "alice"})

    with respx.mock(assert_all_called=True) as router:
        router.get(f"{API}/account/verify_credentials.json").mock(side_effect=handler)

        with TwitterClient(_bearer()) as client:
            payload = client.verify_credentials()

    assert payload["screen_name"] == "alice"
    assert call_count["value"] == 2


def test_gives_up_after_max_retries(monkeypatch):
    monkeypatch.setattr("tweetctl.twitter_api.time.sleep", lambda _: None)

    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{API}/account/verify_credentials.json").respond(503, text="over capacity")

        with TwitterClient(_bearer(), max_retries=2) as client:
            with pytest.raises(TwitterApiError, match="after retries"):
                client.verify_credentials()

    assert route.call_count == 3


def test_unauthorized_is_not_retried(monkeypatch):
    monkeypatch.setattr("tweetctl.twitter_api.time.sleep", lambda _: None)

    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{API}/account/verify_credentials.json").respond(401, json={})

        with TwitterClient(_bearer()) as client:
            with pytest.raises(TwitterUnauthorizedError):
                client.verify_credentials()

    assert route.call_count == 1


def test_lookup_friendship_uses_source_and_target_params():
    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{API}/friendships/show.json").respond(
            200,
            json={
                "relationship": {
                    "source": {
                        "screen_name": "alice",
                        "following": True,
                        "followed_by": False,
                        "blocking": None,
                        "can_dm": False,
                    },
                    "target": {"screen_name": "bob"},
                }
            },
        )

        with TwitterClient(_bearer()) as client:
            friendship = client.lookup_friendship("alice", "783214")

    assert friendship.source_screen_name == "alice"
    assert friendship.target_screen_name == "bob"
    assert friendship.following is True
    assert friendship.followed_by is False
    params = route.calls.last.request.url.params
    assert params["source_screen_name"] == "alice"
    assert params["target_user_id"] == "783214"


def test_post_status_signs_form_body(make_user_token):
    with respx.mock(assert_all_called=True) as router:
        route = router.post(f"{API}/statuses/update.json").respond(200, json={"id_str": "1", "text": "hi"})

        with TwitterClient(make_user_token()) as client:
            payload = client.post_status("hi there")

    assert payload["id_str"] == "1"
    request = route.calls.last.request
    assert request.content == b"status=hi+there"
    header = request.headers["Authorization"]
    assert header.startswith("OAuth ")
    assert 'oauth_token="111-abc"' in header
    assert 'oauth_consumer_key="ckey"' in header


def test_post_status_rejects_blank_text():
    with TwitterClient(_bearer()) as client:
        with pytest.raises(TwitterApiError, match="empty"):
            client.post_status("   ")


def test_from_tokens_uses_config_and_resolved_token(make_user_token):
    store = TokenStore(twitter_tokens=[make_user_token("first"), make_user_token("second")])
    cfg = AppConfig(api_base_url="https://api.example.test/1.1/", max_retries=1)

    with TwitterClient.from_tokens(config=cfg, store=store) as client:
        assert client.base_url == "https://api.example.test/1.1"
        assert client.max_retries == 1
        assert client.token.screen_name == "first"


def test_dedupe_users_keeps_first():
    first = UserSummary("1", "a", "A", None, None, None, None, False)
    dup = UserSummary("1", "a2", "A2", None, None, None, None, False)
    other = UserSummary("2", "b", "B", None, None, None, None, False)

    assert dedupe_users([first, dup, other]) == [first, other]


def test_rate_limit_reset_header_sets_wait(monkeypatch):
    monkeypatch.setattr("tweetctl.twitter_api.time.time", lambda: 1000.0)
    monkeypatch.setattr("tweetctl.twitter_api.random.uniform", lambda _a, _b: 0.0)
    waits: list[float] = []
    monkeypatch.setattr("tweetctl.twitter_api.time.sleep", waits.append)

    responses = iter(
        [
            httpx.Response(429, headers={"x-rate-limit-reset": "1030"}),
            httpx.Response(200, json={"screen_name": "alice"}),
        ]
    )

    with respx.mock(assert_all_called=True) as router:
        router.get(f"{API}/account/verify_credentials.json").mock(side_effect=lambda _req: next(responses))

        with TwitterClient(_bearer()) as client:
            client.verify_credentials()

    assert waits == [30.0]


def test_from_tokens_defaults_to_saved_config(make_user_token):
    set_api_base_url("https://api.example.test/1.1")
    store = TokenStore(twitter_tokens=make_user_token("alice"))

    with TwitterClient.from_tokens(store=store) as client:
        assert client.base_url == "https://api.example.test/1.1"
