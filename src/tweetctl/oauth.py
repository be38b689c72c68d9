from __future__ import annotations

import logging
import re
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, parse_qsl, urlencode, urlparse

import httpx
from oauthlib import oauth1
from rich.console import Console

from tweetctl.tokens import (
    TWITTER_ENDPOINT,
    BearerToken,
    Endpoint,
    OAuth1Auth,
    OAuth1Token,
    OAuthApp,
    TokenError,
)

CALLBACK_HOST = "127.0.0.1"
CALLBACK_PORT = 1410
BEARER_TOKEN_URL = "https://api.twitter.com/oauth2/token"
INVALIDATE_BEARER_URL = "https://api.twitter.com/oauth2/invalidate_token"

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_WHITESPACE_RE = re.compile(r"\s+")

logger = logging.getLogger(__name__)


class InvalidAppCredentials(TokenError, ValueError):
    """Raised when a consumer key or secret is missing or malformed."""


class OAuthError(TokenError):
    """Raised when an OAuth exchange with Twitter fails."""


def clean_app_credential(value: object, name: str) -> str:
    """Strip whitespace and require a non-empty alphanumeric string."""
    if not isinstance(value, str):
        raise InvalidAppCredentials(f"{name} must be a string.")
    cleaned = _WHITESPACE_RE.sub("", value)
    if not cleaned:
        raise InvalidAppCredentials(f"{name} cannot be empty.")
    if _NON_ALNUM_RE.search(cleaned):
        raise InvalidAppCredentials(f"{name} must be alpha numeric (e.g., a98ds0879fa).")
    return cleaned


def _parse_token_response(response: httpx.Response, stage: str) -> dict[str, str]:
    if response.status_code >= 400:
        snippet = response.text[:200].strip()
        raise OAuthError(f"Twitter refused the {stage} request ({response.status_code}): {snippet}")
    values = dict(parse_qsl(response.text))
    if "oauth_token" not in values or "oauth_token_secret" not in values:
        raise OAuthError(f"Twitter returned an incomplete {stage} response.")
    return values


class _CallbackHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        query = {key: values[0] for key, values in parse_qs(urlparse(self.path).query).items()}
        if "oauth_verifier" in query or "denied" in query:
            self.server.callback_params = query  # type: ignore[attr-defined]
            body = b"Authentication complete. Please close this page and return to tweetctl."
            self.send_response(200)
        else:
            body = b"Waiting for Twitter authorization."
            self.send_response(404)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:
        logger.debug("callback listener: " + format, *args)


def listen_for_callback(host: str = CALLBACK_HOST, port: int = CALLBACK_PORT) -> dict[str, str]:
    """Block until the browser is redirected back with the authorization result."""
    with HTTPServer((host, port), _CallbackHandler) as server:
        server.callback_params = None  # type: ignore[attr-defined]
        while server.callback_params is None:  # type: ignore[attr-defined]
            server.handle_request()
        return server.callback_params  # type: ignore[attr-defined]


def oauth1_dance(
    app: OAuthApp,
    endpoint: Endpoint = TWITTER_ENDPOINT,
    *,
    callback_port: int = CALLBACK_PORT,
    open_browser: bool = True,
    console: Console | None = None,
    timeout: float = 30.0,
) -> OAuth1Token:
    """Run the three-legged OAuth 1.0 flow and return the resulting user token.

    The app must be registered with the callback URL
    ``http://127.0.0.1:1410``; a local listener on that port receives the
    verifier after the user approves access in the browser.
    """
    if not endpoint.request or not endpoint.authorize or not endpoint.access:
        raise OAuthError("Endpoint must define request, authorize and access URLs.")
    console = console or Console(stderr=True)
    callback_uri = f"http://{CALLBACK_HOST}:{callback_port}/"

    with httpx.Client(timeout=timeout) as client:
        request_auth = OAuth1Auth(
            oauth1.Client(app.key, client_secret=app.secret, callback_uri=callback_uri)
        )
        try:
            response = client.post(endpoint.request, auth=request_auth)
        except httpx.TransportError as exc:
            raise OAuthError(f"Network failure requesting a token: {exc}") from exc
        request_credentials = _parse_token_response(response, "request token")

        authorize_url = f"{endpoint.authorize}?{urlencode({'oauth_token': request_credentials['oauth_token']})}"
        console.print("[bold]Authorize tweetctl in your browser:[/bold]")
        console.print(authorize_url)
        if open_browser and not webbrowser.open(authorize_url):
            console.print("[yellow]Could not open a browser; visit the URL above.[/yellow]")

        params = listen_for_callback(CALLBACK_HOST, callback_port)
        if "denied" in params or not params.get("oauth_verifier"):
            raise OAuthError("Authorization was denied in the browser.")
        if params.get("oauth_token") != request_credentials["oauth_token"]:
            raise OAuthError("Callback returned a token that does not match the request token.")

        access_auth = OAuth1Auth(
            oauth1.Client(
                app.key,
                client_secret=app.secret,
                resource_owner_key=request_credentials["oauth_token"],
                resource_owner_secret=request_credentials["oauth_token_secret"],
                verifier=params["oauth_verifier"],
            )
        )
        try:
            response = client.post(endpoint.access, auth=access_auth)
        except httpx.TransportError as exc:
            raise OAuthError(f"Network failure exchanging the verifier: {exc}") from exc
        credentials = _parse_token_response(response, "access token")

    return OAuth1Token(
        app=app,
        endpoint=endpoint,
        params={"as_header": True},
        credentials=credentials,
    )


def bearer_token(consumer_key: str, consumer_secret: str, *, timeout: float = 30.0) -> BearerToken:
    """Fetch an app-only (OAuth 2.0) token."""
    key = clean_app_credential(consumer_key, "consumer_key")
    secret = clean_app_credential(consumer_secret, "consumer_secret")
    try:
        response = httpx.post(
            BEARER_TOKEN_URL,
            auth=(key, secret),
            data={"grant_type": "client_credentials"},
            timeout=timeout,
        )
    except httpx.TransportError as exc:
        raise OAuthError(f"Network failure requesting a bearer token: {exc}") from exc

    if response.status_code >= 400:
        snippet = response.text[:200].strip()
        raise OAuthError(f"Twitter refused the bearer token request ({response.status_code}): {snippet}")
    payload = response.json()
    if payload.get("token_type") != "bearer" or not payload.get("access_token"):
        raise OAuthError("Twitter returned an unexpected bearer token payload.")
    return BearerToken(credentials={"access_token": payload["access_token"]})


def invalidate_bearer(
    token: BearerToken,
    consumer_key: str,
    consumer_secret: str,
    *,
    timeout: float = 30.0,
) -> None:
    key = clean_app_credential(consumer_key, "consumer_key")
    secret = clean_app_credential(consumer_secret, "consumer_secret")
    try:
        response = httpx.post(
            INVALIDATE_BEARER_URL,
            auth=(key, secret),
            data={"access_token": token.access_token},
            timeout=timeout,
        )
    except httpx.TransportError as exc:
        raise OAuthError(f"Network failure invalidating the bearer token: {exc}") from exc
    if response.status_code >= 400:
        snippet = response.text[:200].strip()
        raise OAuthError(f"Twitter refused to invalidate the bearer token ({response.status_code}): {snippet}")
