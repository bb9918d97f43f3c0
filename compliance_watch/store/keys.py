"""Deterministic keys and hashes for idempotent writes."""
from __future__ import annotations

import hashlib
import re

MAX_KEY_LENGTH = 100
_HASH_SUFFIX_LENGTH = 8

_NON_SLUG = re.compile(r"[^a-z0-9\s]")
_WS = re.compile(r"\s+")


def slugify(title: str) -> str:
    text = _NON_SLUG.sub("", (title or "").lower())
    return _WS.sub("_", text.strip())


def content_key(category: str, title: str) -> str:
    """``<category>_<slug>``, hash-suffixed when longer than 100 characters.

    Long keys keep their first 91 characters and append ``_`` plus the first
    8 hex digits of the md5 of the full key, so distinct long titles sharing
    a prefix still get distinct keys.
    """
    key = f"{category}_{slugify(title)}"
    if len(key) <= MAX_KEY_LENGTH:
        return key
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()[:_HASH_SUFFIX_LENGTH]
    return f"{key[: MAX_KEY_LENGTH - _HASH_SUFFIX_LENGTH - 1]}_{digest}"


def content_hash(*parts: object) -> str:
    joined = "|".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:32]
