"""Subscription flags.

A subscription carries a set of named booleans that tune what gets
relayed to its destination:

- retweet: also relay retweets (off by default)
- ping:    send a ping message ahead of posts tagged with the ping hashtag
- noquote: relay quote posts without the nested quoted post, and skip
           quote posts entirely
- notext:  only relay posts with media
"""

from typing import Iterable, Mapping, Optional, Union

KNOWN_FLAGS = ("retweet", "ping", "noquote", "notext")

Flags = Union[Mapping[str, bool], Iterable[str], None]


def is_set(flags: Flags, name: str) -> bool:
    """Check whether a flag is enabled.

    Accepts the mapping form ({"retweet": True}), a plain iterable of
    enabled names, or None.
    """
    if not flags:
        return False
    if isinstance(flags, Mapping):
        return bool(flags.get(name, False))
    if isinstance(flags, str):
        return parse_flags(flags)[name] if name in KNOWN_FLAGS else False
    return name in set(flags)


def parse_flags(value: Union[str, Iterable[str], Mapping[str, bool], None]) -> dict[str, bool]:
    """Normalize flags into the mapping form.

    Strings are split on whitespace and commas; leading dashes are
    stripped so "--retweet --noquote" works. Unknown names are dropped.

    Returns:
        Dict with every known flag as key
    """
    result = {name: False for name in KNOWN_FLAGS}
    if not value:
        return result
    if isinstance(value, Mapping):
        for name in KNOWN_FLAGS:
            result[name] = bool(value.get(name, False))
        return result
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    for raw in value:
        name = str(raw).strip().lstrip("-").lower()
        if name in result:
            result[name] = True
    return result


def describe_flags(flags: Flags) -> str:
    """Render enabled flags for listings ("retweet, ping" or "none")."""
    enabled = [name for name in KNOWN_FLAGS if is_set(flags, name)]
    return ", ".join(enabled) if enabled else "none"
