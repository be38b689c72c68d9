from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Mapping

from tweetctl.persistence import PAT_ENV_VAR, read_token_bundle, read_token_file
from tweetctl.tokens import DeserializationError, is_token_collection

CONVENTIONAL_DOTFILE = ".tweetctl-oauth"
PREFERRED_NAMES = ("twitter_tokens", "twitter_token", "tokens", "token")

# Pairs of (name present among the loose matches, name looked up). The
# `twitter_token` entry looks up `twitter_tokens`, which cannot be present
# once the first entry has missed, so that case resolves to None.
_LOOSE_PREFERENCES = (
    ("twitter_tokens", "twitter_tokens"),
    ("twitter_token", "twitter_tokens"),
    ("tokens", "tokens"),
    ("token", "token"),
)

logger = logging.getLogger(__name__)


def main_namespace() -> Mapping[str, Any]:
    main = sys.modules.get("__main__")
    return vars(main) if main is not None else {}


def find_in_namespace(namespace: Mapping[str, Any] | None = None) -> Any | None:
    """Look for a token-like variable in ``namespace``.

    Defaults to the globals of ``__main__``. Names starting with an
    underscore are ignored. Exact names win in the order of
    ``PREFERRED_NAMES``; otherwise a single name containing "token"
    (any case) is used, and several such names are narrowed with the same
    preference order. The returned value is not checked for validity.
    """
    if namespace is None:
        namespace = main_namespace()
    names = [name for name in namespace if isinstance(name, str) and not name.startswith("_")]

    for name in PREFERRED_NAMES:
        if name in names:
            return namespace[name]

    matches = [name for name in names if "token" in name.lower()]
    if not matches:
        return None
    if len(matches) == 1:
        return namespace[matches[0]]

    lowered = [name.lower() for name in matches]
    for present, lookup in _LOOSE_PREFERENCES:
        if present in lowered:
            hits = [name for name in matches if name.lower() == lookup]
            return namespace[hits[0]] if hits else None
    return None


def probe(reader: Callable[[Path], Any], path: Path) -> Any | None:
    try:
        return reader(path)
    except DeserializationError as exc:
        logger.debug("Skipping %s: %s", path, exc)
        return None


def first_bundle_token(path: Path) -> Any | None:
    bundle = probe(read_token_bundle, path)
    if not bundle:
        return None
    for value in bundle.values():
        if is_token_collection(value):
            return value
    return None


def is_token_file(candidate: Any, namespace: Mapping[str, Any] | None = None) -> bool:
    """Return True when ``candidate`` is, or leads to, a usable token.

    ``candidate`` may already be a token (or list of tokens). Otherwise it
    must name an existing file holding a token directly or inside a bundle;
    failing that, a token found in ``namespace`` also counts.
    """
    if is_token_collection(candidate):
        return True
    if not isinstance(candidate, (str, os.PathLike)):
        return False

    path = Path(candidate).expanduser()
    if not path.exists():
        return False
    if is_token_collection(probe(read_token_file, path)):
        return True
    if first_bundle_token(path) is not None:
        return True
    return is_token_collection(find_in_namespace(namespace))


def twitter_pat(
    cwd: Path | None = None,
    namespace: Mapping[str, Any] | None = None,
) -> str | None:
    """Return the TWITTER_PAT value, or a token file found in the working directory."""
    pat = os.getenv(PAT_ENV_VAR, "").strip()
    if pat:
        return pat

    base = cwd if cwd is not None else Path.cwd()
    for name in (CONVENTIONAL_DOTFILE, *PREFERRED_NAMES):
        candidate = base / name
        if candidate.exists() and is_token_file(candidate, namespace):
            logger.debug("Using token file %s", candidate)
            return str(candidate)
    return None
