from __future__ import annotations

from typing import Iterable


def combined_lower(*parts: str | Iterable[str] | None) -> str:
    """Lower-case and space-join strings or lists of strings, skipping empties."""
    out: list[str] = []
    for part in parts:
        if part is None:
            continue
        if isinstance(part, str):
            out.append(part.lower())
            continue
        out.extend(p.lower() for p in part if isinstance(p, str))
    return " ".join(out)


def matches_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)
