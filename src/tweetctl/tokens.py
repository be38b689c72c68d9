from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Generator

import httpx
from oauthlib import oauth1

TWITTER_API_HOST = "api.twitter"
TOKEN_KINDS = ("1.0", "2.0")

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class TokenError(RuntimeError):
    """Base class for credential failures surfaced to callers."""


class DeserializationError(TokenError):
    """Raised when a stored value cannot be turned back into a token."""


@dataclass(slots=True)
class OAuthApp:
    appname: str
    key: str
    secret: str


@dataclass(slots=True)
class Endpoint:
    request: str | None = None
    authorize: str | None = None
    access: str | None = None
    base_url: str | None = None


TWITTER_ENDPOINT = Endpoint(
    request="https://api.twitter.com/oauth/request_token",
    authorize="https://api.twitter.com/oauth/authenticate",
    access="https://api.twitter.com/oauth/access_token",
    base_url="https://api.twitter.com/oauth",
)


class OAuth1Auth(httpx.Auth):
    """Signs each request with an OAuth 1.0 ``Authorization`` header."""

    requires_request_body = True

    def __init__(self, client: oauth1.Client) -> None:
        self._client = client

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(_FORM_CONTENT_TYPE) and request.content:
            _, headers, _ = self._client.sign(
                str(request.url),
                request.method,
                body=request.content.decode("utf-8"),
                headers={"Content-Type": _FORM_CONTENT_TYPE},
            )
        else:
            _, headers, _ = self._client.sign(str(request.url), request.method)
        request.headers["Authorization"] = headers["Authorization"]
        yield request


class BearerAuth(httpx.Auth):
    def __init__(self, access_token: str) -> None:
        self._access_token = access_token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._access_token}"
        yield request


@dataclass(slots=True)
class Token:
    KIND: ClassVar[str] = ""

    endpoint: Endpoint | None = None
    credentials: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.KIND

    def auth(self) -> httpx.Auth:
        raise NotImplementedError


@dataclass(slots=True)
class OAuth1Token(Token):
    KIND: ClassVar[str] = "1.0"

    app: OAuthApp | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def screen_name(self) -> str | None:
        return self.credentials.get("screen_name")

    def auth(self) -> httpx.Auth:
        if self.app is None:
            raise TokenError("OAuth 1.0 token has no app credentials to sign with.")
        return OAuth1Auth(
            oauth1.Client(
                self.app.key,
                client_secret=self.app.secret,
                resource_owner_key=self.credentials.get("oauth_token"),
                resource_owner_secret=self.credentials.get("oauth_token_secret"),
            )
        )


@dataclass(slots=True)
class OAuth2Token(Token):
    KIND: ClassVar[str] = "2.0"

    def auth(self) -> httpx.Auth:
        access_token = self.credentials.get("access_token")
        if not access_token:
            raise TokenError("OAuth 2.0 token has no access_token.")
        return BearerAuth(access_token)


@dataclass(slots=True)
class BearerToken(Token):
    """App-only token; not bound to any account."""

    KIND: ClassVar[str] = "bearer"

    @property
    def access_token(self) -> str:
        return self.credentials.get("access_token", "")

    def auth(self) -> httpx.Auth:
        if not self.access_token:
            raise TokenError("Bearer token has no access_token.")
        return BearerAuth(self.access_token)


_TOKEN_CLASSES: dict[str, type[Token]] = {
    cls.KIND: cls for cls in (OAuth1Token, OAuth2Token, BearerToken)
}


def is_token(value: Any) -> bool:
    """Return True when ``value`` is a token usable against the Twitter API.

    Bearer tokens are always accepted. Other tokens need an endpoint whose
    request URL points at the Twitter API, or no request URL at all and an
    ``oauth_token`` in their credentials.
    """
    if value is None:
        return False
    if isinstance(value, (str, bytes, list, tuple, dict)) and len(value) == 0:
        return False
    if isinstance(value, BearerToken):
        return True
    if not isinstance(value, Token) or value.endpoint is None:
        return False
    if value.kind not in TOKEN_KINDS:
        return False

    request_url = value.endpoint.request
    if request_url is not None:
        if not isinstance(request_url, str):
            return False
        return TWITTER_API_HOST in request_url.lower()
    return value.credentials.get("oauth_token") is not None


def is_token_collection(value: Any) -> bool:
    if is_token(value):
        return True
    return isinstance(value, list) and len(value) > 0 and is_token(value[0])


def token_to_dict(token: Token) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "kind": token.kind,
        "credentials": dict(token.credentials),
        "endpoint": None,
    }
    if token.endpoint is not None:
        payload["endpoint"] = {
            "request": token.endpoint.request,
            "authorize": token.endpoint.authorize,
            "access": token.endpoint.access,
            "base_url": token.endpoint.base_url,
        }
    if isinstance(token, OAuth1Token):
        payload["params"] = dict(token.params)
        payload["app"] = None
        if token.app is not None:
            payload["app"] = {
                "appname": token.app.appname,
                "key": token.app.key,
                "secret": token.app.secret,
            }
    return payload


def _endpoint_from_dict(raw: Any) -> Endpoint | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise DeserializationError("Token endpoint must be an object.")
    fields = {name: raw.get(name) for name in ("request", "authorize", "access", "base_url")}
    for name, value in fields.items():
        if value is not None and not isinstance(value, str):
            raise DeserializationError(f"Token endpoint {name!r} must be a string.")
    return Endpoint(**fields)


def _app_from_dict(raw: Any) -> OAuthApp | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise DeserializationError("Token app must be an object.")
    try:
        return OAuthApp(appname=str(raw["appname"]), key=str(raw["key"]), secret=str(raw["secret"]))
    except KeyError as exc:
        raise DeserializationError(f"Token app is missing {exc.args[0]!r}.") from exc


def token_from_dict(payload: Any) -> Token:
    if not isinstance(payload, dict):
        raise DeserializationError("Serialized token must be an object.")

    kind = payload.get("kind")
    token_cls = _TOKEN_CLASSES.get(kind) if isinstance(kind, str) else None
    if token_cls is None:
        raise DeserializationError(f"Unknown token kind: {kind!r}")

    credentials = payload.get("credentials") or {}
    if not isinstance(credentials, dict):
        raise DeserializationError("Token credentials must be an object.")

    endpoint = _endpoint_from_dict(payload.get("endpoint"))
    if token_cls is OAuth1Token:
        params = payload.get("params") or {}
        if not isinstance(params, dict):
            raise DeserializationError("Token params must be an object.")
        return OAuth1Token(
            endpoint=endpoint,
            credentials=dict(credentials),
            app=_app_from_dict(payload.get("app")),
            params=dict(params),
        )
    return token_cls(endpoint=endpoint, credentials=dict(credentials))
