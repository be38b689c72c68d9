from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import platformdirs
import tomllib
import tomli_w

APP_NAME = "tweetctl"
DEFAULT_API_BASE_URL = "https://api.twitter.com/1.1"
DEFAULT_APP_NAME = "mytwitterapp"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
TOKEN_FILE_NAME = ".tweetctl_token.json"
ENV_FILE_ENV_VAR = "TWEETCTL_ENV_FILE"
ENV_FILE_NAME = ".tweetctl.env"


class ConfigError(ValueError):
    """Raised when config values are invalid."""


@dataclass(slots=True)
class AppConfig:
    api_base_url: str = DEFAULT_API_BASE_URL
    token_dir: str | None = None
    app_name: str = DEFAULT_APP_NAME
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES

    def token_path(self) -> Path:
        if self.token_dir:
            return Path(self.token_dir).expanduser() / TOKEN_FILE_NAME
        return Path.home() / TOKEN_FILE_NAME


def config_dir() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME))


def config_path() -> Path:
    return config_dir() / "config.toml"


def env_file_path() -> Path:
    """Location of the ``KEY=VALUE`` file that carries variables across sessions."""
    override = os.getenv(ENV_FILE_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ENV_FILE_NAME


def validate_api_base_url(url: str) -> str:
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigError(f"Invalid Twitter API base URL: {url!r}")
    return url.strip().rstrip("/")


def normalize_token_dir(path: str | Path) -> str:
    if isinstance(path, Path):
        path_obj = path
    elif isinstance(path, str):
        if not path.strip():
            raise ConfigError("Token directory cannot be empty.")
        path_obj = Path(path)
    else:
        raise ConfigError("Token directory must be a string or path.")

    try:
        return str(path_obj.expanduser().resolve())
    except OSError as exc:
        raise ConfigError(f"Invalid token directory {path_obj!s}: {exc}") from exc


def _read_raw_config() -> dict[str, Any]:
    path = config_path()
    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Could not parse config file at {path}: {exc}") from exc


def load_config() -> AppConfig:
    raw = _read_raw_config()
    api_base_url = raw.get("api_base_url", DEFAULT_API_BASE_URL)
    token_dir = raw.get("token_dir")
    app_name = raw.get("app_name", DEFAULT_APP_NAME)
    timeout = raw.get("timeout", DEFAULT_TIMEOUT)
    max_retries = raw.get("max_retries", DEFAULT_MAX_RETRIES)

    if not isinstance(api_base_url, str):
        raise ConfigError("Config key 'api_base_url' must be a string.")
    api_base_url = validate_api_base_url(api_base_url)

    if token_dir is not None:
        if not isinstance(token_dir, str):
            raise ConfigError("Config key 'token_dir' must be a string.")
        if not token_dir.strip():
            raise ConfigError("Config key 'token_dir' must not be empty.")

    if not isinstance(app_name, str) or not app_name.strip():
        raise ConfigError("Config key 'app_name' must be a non-empty string.")

    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("Config key 'timeout' must be a positive number.")

    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
        raise ConfigError("Config key 'max_retries' must be a non-negative integer.")

    return AppConfig(
        api_base_url=api_base_url,
        token_dir=token_dir,
        app_name=app_name,
        timeout=float(timeout),
        max_retries=max_retries,
    )


def save_config(config: AppConfig) -> None:
    config_dir().mkdir(parents=True, exist_ok=True)
    payload: dict[str, Any] = {
        "api_base_url": config.api_base_url,
        "app_name": config.app_name,
        "timeout": config.timeout,
        "max_retries": config.max_retries,
    }
    if config.token_dir is not None:
        payload["token_dir"] = config.token_dir
    config_path().write_text(tomli_w.dumps(payload), encoding="utf-8")


def set_api_base_url(url: str) -> AppConfig:
    cfg = load_config()
    cfg.api_base_url = validate_api_base_url(url)
    save_config(cfg)
    return cfg


def set_token_dir(path: str | Path) -> AppConfig:
    cfg = load_config()
    cfg.token_dir = normalize_token_dir(path)
    save_config(cfg)
    return cfg


def clear_token_dir() -> AppConfig:
    cfg = load_config()
    cfg.token_dir = None
    save_config(cfg)
    return cfg
