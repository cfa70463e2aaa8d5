"""Search-term tokenization."""

from __future__ import annotations

import re

_TOKEN = re.compile(r"[^\W_]+")


def tokenize(text: str | None) -> list[str]:
    """Lower-case alphanumeric tokens of *text*, de-duplicated in order.

    >>> tokenize("Acme Robotics, Inc.")
    ['acme', 'robotics', 'inc']
    """
    if not text:
        return []
    seen: dict[str, None] = {}
    for token in _TOKEN.findall(text.casefold()):
        seen.setdefault(token, None)
    return list(seen)


__all__ = ["tokenize"]
