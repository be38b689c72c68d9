from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import httpx

from tweetctl.config import DEFAULT_API_BASE_URL, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT, AppConfig, load_config
from tweetctl.resolver import TokenStore, check_token
from tweetctl.tokens import Token

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
USERS_PER_LOOKUP = 100
MAX_RATE_LIMIT_WAIT = 900.0


class TwitterApiError(RuntimeError):
    """Raised when Twitter returns a non-retryable API failure."""


class TwitterUnauthorizedError(TwitterApiError):
    """Raised for 401 responses."""


@dataclass(slots=True)
class UserSummary:
    user_id: str
    screen_name: str
    name: str
    followers_count: int | None
    friends_count: int | None
    statuses_count: int | None
    created_at: str | None
    verified: bool


@dataclass(slots=True)
class Friendship:
    source_screen_name: str
    target_screen_name: str
    following: bool
    followed_by: bool
    blocking: bool | None
    muting: bool | None
    can_dm: bool | None


def user_params(users: Sequence[str | int]) -> dict[str, str]:
    """Build lookup params, treating all-numeric values as user ids."""
    values = [str(user).strip().lstrip("@") for user in users]
    if values and all(value.isdigit() for value in values):
        return {"user_id": ",".join(values)}
    return {"screen_name": ",".join(values)}


def parse_user(item: dict[str, Any]) -> UserSummary:
    return UserSummary(
        user_id=str(item.get("id_str") or item.get("id") or ""),
        screen_name=item.get("screen_name") or "",
        name=item.get("name") or "",
        followers_count=item.get("followers_count"),
        friends_count=item.get("friends_count"),
        statuses_count=item.get("statuses_count"),
        created_at=item.get("created_at"),
        verified=bool(item.get("verified")),
    )


def parse_friendship(payload: dict[str, Any]) -> Friendship:
    relationship = payload.get("relationship") or {}
    source = relationship.get("source") or {}
    target = relationship.get("target") or {}
    return Friendship(
        source_screen_name=source.get("screen_name") or "",
        target_screen_name=target.get("screen_name") or "",
        following=bool(source.get("following")),
        followed_by=bool(source.get("followed_by")),
        blocking=source.get("blocking"),
        muting=source.get("muting"),
        can_dm=source.get("can_dm"),
    )


class TwitterClient:
    def __init__(
        self,
        token: Token,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            auth=token.auth(),
            follow_redirects=True,
        )

    @classmethod
    def from_tokens(
        cls,
        token: Any = None,
        *,
        config: AppConfig | None = None,
        store: TokenStore | None = None,
    ) -> "TwitterClient":
        """Build a client from ``token``, or from the resolved default token.

        Without ``config`` the saved tweetctl config is used.
        """
        cfg = config or load_config()
        return cls(
            check_token(token, store),
            base_url=cfg.api_base_url,
            timeout=cfg.timeout,
            max_retries=cfg.max_retries,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "TwitterClient":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _retry_delay(self, attempt: int, response: httpx.Response | None) -> float:
        fallback = 0.5 * (2**attempt)
        if response is None:
            return fallback
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                return fallback
        # epoch seconds at which the rate-limit window reopens
        reset = response.headers.get("x-rate-limit-reset")
        if reset and reset.isdigit():
            return min(max(int(reset) - time.time(), 0.0), MAX_RATE_LIMIT_WAIT)
        return fallback

    def _sleep_for_retry(self, attempt: int, response: httpx.Response | None = None) -> None:
        base_delay = self._retry_delay(attempt, response)
        jitter = random.uniform(0, 0.25 * base_delay)
        time.sleep(base_delay + jitter)

    def _normalize_request_target(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        target = path_or_url.lstrip("/")
        if not target.endswith(".json"):
            target += ".json"
        return target

    def _request(
        self,
        method: str,
        path_or_url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        target = self._normalize_request_target(path_or_url)
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                response = self._client.request(method, target, params=params, data=data)
            except httpx.TransportError as exc:
                last_error = exc
                if attempt >= self.max_retries:
                    raise TwitterApiError(f"Network failure: {exc}") from exc
                self._sleep_for_retry(attempt)
                continue

            if response.status_code == 401:
                raise TwitterUnauthorizedError("Twitter API rejected the token (401).")

            if response.status_code in RETRYABLE_STATUS_CODES:
                if attempt >= self.max_retries:
                    snippet = response.text[:200].strip()
                    raise TwitterApiError(
                        f"Twitter request failed after retries ({response.status_code}): {snippet}"
                    )
                self._sleep_for_retry(attempt, response)
                continue

            if response.status_code >= 400:
                snippet = response.text[:200].strip()
                raise TwitterApiError(
                    f"Twitter request failed ({response.status_code}) for {target}: {snippet}"
                )

            return response

        if last_error is not None:
            raise TwitterApiError(str(last_error)) from last_error
        raise TwitterApiError("Request failed with unknown error.")

    def get_json(
        self,
        path_or_url: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = self._request("GET", path_or_url, params=params)
        return response.json()

    def post_json(
        self,
        path_or_url: str,
        *,
        data: dict[str, Any] | None = None,
    ) -> Any:
        response = self._request("POST", path_or_url, data=data)
        return response.json()

    def verify_credentials(self) -> dict[str, Any]:
        payload = self.get_json("account/verify_credentials")
        if not isinstance(payload, dict):
            raise TwitterApiError("Unexpected verify_credentials payload.")
        return payload

    def lookup_users(self, users: Iterable[str | int]) -> list[UserSummary]:
        pending = list(users)
        results: list[UserSummary] = []
        for start in range(0, len(pending), USERS_PER_LOOKUP):
            batch = pending[start : start + USERS_PER_LOOKUP]
            payload = self.get_json("users/lookup", params=user_params(batch))
            if not isinstance(payload, list):
                raise TwitterApiError("Unexpected users/lookup payload.")
            results.extend(parse_user(item) for item in payload)
        return results

    def lookup_friendship(self, source: str, target: str) -> Friendship:
        params = {
            **{f"source_{key}": value for key, value in user_params([source]).items()},
            **{f"target_{key}": value for key, value in user_params([target]).items()},
        }
        payload = self.get_json("friendships/show", params=params)
        if not isinstance(payload, dict):
            raise TwitterApiError("Unexpected friendships/show payload.")
        return parse_friendship(payload)

    def my_friendships(self, users: Sequence[str | int]) -> list[dict[str, Any]]:
        """Relationship of the authenticating account to each of ``users``."""
        payload = self.get_json("friendships/lookup", params=user_params(users))
        if not isinstance(payload, list):
            raise TwitterApiError("Unexpected friendships/lookup payload.")
        return payload

    def post_status(self, text: str, *, in_reply_to_status_id: str | None = None) -> dict[str, Any]:
        if not text.strip():
            raise TwitterApiError("Status text cannot be empty.")
        data: dict[str, Any] = {"status": text}
        if in_reply_to_status_id:
            data["in_reply_to_status_id"] = in_reply_to_status_id
        payload = self.post_json("statuses/update", data=data)
        if not isinstance(payload, dict):
            raise TwitterApiError("Unexpected statuses/update payload.")
        return payload


def dedupe_users(users: Iterable[UserSummary]) -> list[UserSummary]:
    seen: set[str] = set()
    out: list[UserSummary] = []
    for user in users:
        if user.user_id in seen:
            continue
        seen.add(user.user_id)
        out.append(user)
    return out
