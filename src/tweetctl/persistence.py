from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import dotenv

from tweetctl.config import env_file_path, load_config
from tweetctl.tokens import DeserializationError, Token, TokenError, token_from_dict, token_to_dict

PAT_ENV_VAR = "TWITTER_PAT"
MAX_NAME_SUFFIX = 1000

_EXT_RE = re.compile(r"[A-Za-z0-9]+\.[A-Za-z]+$")

logger = logging.getLogger(__name__)


def has_ext(path: str | Path) -> bool:
    return bool(_EXT_RE.search(Path(path).name))


def paste_before_ext(path: str | Path, suffix: object) -> Path:
    path = Path(path)
    if has_ext(path):
        stem, _, ext = path.name.rpartition(".")
        return path.with_name(f"{stem}{suffix}.{ext}")
    return path.with_name(f"{path.name}{suffix}")


def unique_path(path: str | Path) -> Path | None:
    """Return ``path`` or the first numbered variant of it that is free.

    ``token.json`` becomes ``token1.json``, ``token2.json`` and so on up to
    ``MAX_NAME_SUFFIX``. Returns None once every candidate is taken.
    """
    path = Path(path)
    if not path.exists():
        return path

    taken = {entry.name for entry in path.parent.iterdir()}
    for number in range(1, MAX_NAME_SUFFIX + 1):
        candidate = paste_before_ext(path, number)
        if candidate.name not in taken:
            return candidate
    return None


def _serialize(tokens: Token | list[Token]) -> Any:
    if isinstance(tokens, list):
        return [token_to_dict(token) for token in tokens]
    return token_to_dict(tokens)


def deserialize_tokens(raw: Any) -> Token | list[Token]:
    if isinstance(raw, dict) and "kind" in raw:
        return token_from_dict(raw)
    if isinstance(raw, list) and raw:
        return [token_from_dict(item) for item in raw]
    raise DeserializationError("Value does not hold a serialized token.")


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DeserializationError(f"Could not read {path}: {exc}") from exc


def read_token_file(path: str | Path) -> Token | list[Token]:
    return deserialize_tokens(_read_json(Path(path).expanduser()))


def read_token_bundle(path: str | Path) -> dict[str, Any]:
    """Read a file holding several named objects.

    Values that hold serialized tokens come back as tokens; anything else is
    returned as parsed.
    """
    raw = _read_json(Path(path).expanduser())
    if not isinstance(raw, dict) or "kind" in raw:
        raise DeserializationError(f"{path} is not a named-object bundle.")

    bundle: dict[str, Any] = {}
    for name, value in raw.items():
        try:
            bundle[name] = deserialize_tokens(value)
        except DeserializationError:
            bundle[name] = value
    return bundle


def write_token_file(tokens: Token | list[Token], path: str | Path) -> Path:
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".part")
    try:
        temp_path.write_text(
            json.dumps(_serialize(tokens), indent=2, sort_keys=True),
            encoding="utf-8",
        )
        temp_path.chmod(0o600)
        temp_path.replace(path)
    finally:
        if temp_path.exists():
            temp_path.unlink(missing_ok=True)
    return path


def set_env_var(name: str, value: str | Path) -> None:
    """Set ``name`` for this process and record it in the user environment file."""
    text = str(value)
    os.environ[name] = text
    path = env_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
    dotenv.set_key(str(path), name, text, quote_mode="never")
    logger.info("Saved %s to %s", name, path)


def unset_env_var(name: str) -> None:
    os.environ.pop(name, None)
    path = env_file_path()
    if path.exists() and name in dotenv.dotenv_values(path):
        dotenv.unset_key(str(path), name)
        logger.info("Removed %s from %s", name, path)


def load_user_env() -> None:
    """Copy values from the user environment file into ``os.environ``.

    Variables already present in the environment are left alone.
    """
    path = env_file_path()
    if path.exists():
        dotenv.load_dotenv(path, override=False)


def save_token(tokens: Token | list[Token], path: str | Path) -> Path:
    written = write_token_file(tokens, path)
    set_env_var(PAT_ENV_VAR, written)
    return written


def persist_token(tokens: Token | list[Token]) -> Path:
    """Save to a fresh file next to the configured token path and point TWITTER_PAT at it."""
    target = load_config().token_path()
    path = unique_path(target)
    if path is None:
        raise TokenError(
            f"Could not find a free file name for {target}; remove old token files and retry."
        )
    return save_token(tokens, path)
