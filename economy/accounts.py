# economy/accounts.py
"""
Account identifier canonicalization.

Canonical ids are what every backend stores and receives:
- lowercased
- anything that is not a-z / 0-9 removed (whitespace, punctuation, non-ASCII letters)

"Ash Ketchum", " ash-ketchum " and "ASHKETCHUM" all denote the account 'ashketchum'.
Non-ASCII letters are dropped, not folded ("Pokémon" -> 'pokmon'), matching the ids
already stored by the chat server's economy data.
"""

from __future__ import annotations
import re

from .errors import InvalidAccount

_NON_ID_RE = re.compile(r"[^a-z0-9]+")


def to_id(raw) -> str:
    """Canonical form of `raw`; may be empty."""
    if raw is None:
        return ""
    return _NON_ID_RE.sub("", str(raw).lower())


def require_id(raw) -> str:
    """Canonical form of `raw`, refusing inputs that normalize to nothing."""
    key = to_id(raw)
    if not key:
        raise InvalidAccount(f"account identifier {raw!r} normalizes to empty")
    return key
