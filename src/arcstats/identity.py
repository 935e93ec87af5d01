# src/arcstats/identity.py

"""Player identity normalization.

Usernames are free-form user input. Players are correlated across matches by
an identity key: the username with surrounding whitespace removed and
case-folded. Every place that needs a key goes through ``username_key``.
"""

from __future__ import annotations


def clean_username(username: str | None) -> str | None:
    """Return the trimmed display username, or None if nothing remains."""
    if username is None:
        return None
    cleaned = username.strip()
    return cleaned or None


def username_key(username: str | None) -> str | None:
    """Normalize a username into its identity key.

    The key is stable and idempotent: ``username_key(username_key(x))`` equals
    ``username_key(x)``. Blank or missing usernames have no key.
    """
    cleaned = clean_username(username)
    if cleaned is None:
        return None
    return cleaned.casefold()
