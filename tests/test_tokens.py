from __future__ import annotations

import httpx
import pytest

from tweetctl.tokens import (
    BearerToken,
    DeserializationError,
    Endpoint,
    OAuth1Token,
    OAuth2Token,
    OAuthApp,
    Token,
    is_token,
    is_token_collection,
    token_from_dict,
    token_to_dict,
)


@pytest.mark.parametrize("value", [None, "", [], {}, (), "token", 42, {"endpoint": {"request": None}}])
def test_is_token_rejects_non_tokens(value):
    assert is_token(value) is False


def test_is_token_accepts_bearer_without_endpoint():
    assert is_token(BearerToken()) is True


def test_is_token_requires_endpoint():
    token = OAuth1Token(endpoint=None, credentials={"oauth_token": "abc"})

    assert is_token(token) is False


@pytest.mark.parametrize(
    "request_url",
    [
        "https://api.twitter.com/oauth/request_token",
        "https://API.TWITTER.COM/oauth/request_token",
        "https://Api.Twitter.com/1.1",
    ],
)
def test_is_token_matches_twitter_endpoint_case_insensitively(request_url):
    token = OAuth1Token(endpoint=Endpoint(request=request_url))

    assert is_token(token) is True


def test_is_token_rejects_other_api_endpoints():
    token = OAuth1Token(
        endpoint=Endpoint(request="https://api.example.com/oauth/request_token"),
        credentials={"oauth_token": "abc"},
    )

    assert is_token(token) is False


def test_is_token_accepts_missing_request_with_oauth_token():
    assert is_token(OAuth1Token(endpoint=Endpoint(), credentials={"oauth_token": "abc"})) is True
    assert is_token(OAuth1Token(endpoint=Endpoint(), credentials={})) is False


def test_is_token_accepts_oauth2_tokens_on_twitter():
    token = OAuth2Token(
        endpoint=Endpoint(request="https://api.twitter.com/oauth2/token"),
        credentials={"access_token": "xyz"},
    )

    assert is_token(token) is True


def test_is_token_rejects_base_token_kind():
    assert is_token(Token(endpoint=Endpoint(request="https://api.twitter.com"))) is False


def test_is_token_collection_checks_first_element(make_user_token):
    assert is_token_collection([make_user_token(), "junk"]) is True
    assert is_token_collection(["junk", make_user_token()]) is False
    assert is_token_collection([]) is False


def test_token_dict_preserves_oauth1_fields(make_user_token):
    token = make_user_token("alice")

    restored = token_from_dict(token_to_dict(token))

    assert restored == token
    assert isinstance(restored, OAuth1Token)
    assert restored.screen_name == "alice"


def test_token_from_dict_rejects_unknown_kind():
    with pytest.raises(DeserializationError, match="Unknown token kind"):
        token_from_dict({"kind": "3.0", "credentials": {}})


def test_token_from_dict_rejects_incomplete_app():
    with pytest.raises(DeserializationError, match="secret"):
        token_from_dict({"kind": "1.0", "app": {"appname": "a", "key": "k"}})


def test_oauth1_auth_signs_requests(make_user_token):
    request = httpx.Request("GET", "https://api.twitter.com/1.1/users/lookup.json?screen_name=bob")

    flow = make_user_token().auth().sync_auth_flow(request)
    signed = next(flow)

    header = signed.headers["Authorization"]
    assert header.startswith("OAuth ")
    assert 'oauth_consumer_key="ckey"' in header
    assert 'oauth_token="111-abc"' in header
    assert 'oauth_signature_method="HMAC-SHA1"' in header


def test_oauth1_auth_requires_app():
    token = OAuth1Token(endpoint=Endpoint(), credentials={"oauth_token": "abc"})

    with pytest.raises(RuntimeError, match="app credentials"):
        token.auth()


def test_bearer_auth_sets_header():
    request = httpx.Request("GET", "https://api.twitter.com/1.1/users/lookup.json")

    signed = next(BearerToken(credentials={"access_token": "AAAA"}).auth().sync_auth_flow(request))

    assert signed.headers["Authorization"] == "Bearer AAAA"


def test_oauth_app_is_plain_data():
    app = OAuthApp(appname="a", key="k", secret="s")
    assert (app.appname, app.key, app.secret) == ("a", "k", "s")


@pytest.mark.parametrize("field", ["request", "authorize", "access", "base_url"])
def test_token_from_dict_rejects_non_string_endpoint_fields(field):
    payload = {"kind": "1.0", "endpoint": {field: 42}, "credentials": {}}

    with pytest.raises(DeserializationError, match=field):
        token_from_dict(payload)


def test_is_token_rejects_non_string_request_url():
    token = OAuth1Token(endpoint=Endpoint(request=42), credentials={"oauth_token": "abc"})

    assert is_token(token) is False
