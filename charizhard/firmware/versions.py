"""Firmware version resolution.

Firmware objects are named ``charizhard.V<major>.<minor>.bin``.  The latest
version is the maximum tag of every matching key in the firmware bucket.

Ordering is **lexicographic on the tag string** by default, so ``"2.0"``
beats ``"10.0"``.  Deployed devices compare versions the same way, so this
stays the default; ``numeric`` ordering compares ``(major, minor)`` integers.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable

FIRMWARE_PATTERN = re.compile(r"charizhard\.V(\d+\.\d+)\.bin")

LEXICOGRAPHIC = "lexicographic"
NUMERIC = "numeric"


def firmware_key(version: str) -> str:
    """Object name for *version*, e.g. ``"1.4"`` -> ``charizhard.V1.4.bin``."""
    return f"charizhard.V{version}.bin"


def extract_version(key: str) -> str | None:
    """Return the version tag of *key*, or *None* if it is not a firmware key."""
    m = FIRMWARE_PATTERN.fullmatch(key)
    return m.group(1) if m else None


def _numeric(tag: str) -> tuple[int, int]:
    major, minor = tag.split(".")
    return int(major), int(minor)


def _lexicographic(tag: str) -> str:
    return tag


_ORDERS: dict[str, Callable[[str], object]] = {
    LEXICOGRAPHIC: _lexicographic,
    NUMERIC: _numeric,
}


def _latest(keys: Iterable[str], order: str) -> tuple[str, str] | None:
    try:
        sort_key = _ORDERS[order]
    except KeyError:
        raise ValueError(f"Unknown version order {order!r}. Choose from: {list(_ORDERS)}") from None

    best: tuple[str, str] | None = None
    best_rank = None
    for key in keys:
        tag = extract_version(key)
        if tag is None:
            continue
        # Ties (only possible under numeric order, e.g. V01.0 / V1.0) go to the larger key.
        rank = (sort_key(tag), key)
        if best_rank is None or rank > best_rank:
            best, best_rank = (tag, key), rank
    return best


def resolve_latest(keys: Iterable[str], order: str = LEXICOGRAPHIC) -> str | None:
    """Return the latest version tag in *keys*, or *None* if none match."""
    found = _latest(keys, order)
    return found[0] if found else None


def resolve_latest_object(keys: Iterable[str], order: str = LEXICOGRAPHIC) -> str | None:
    """Return the object key holding the latest version, or *None*.

    Always the key whose tag :func:`resolve_latest` reports for the same listing.
    """
    found = _latest(keys, order)
    return found[1] if found else None
