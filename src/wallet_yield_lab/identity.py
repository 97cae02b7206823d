"""Stable identity keys for matching positions and tokens across snapshots.

Position keys are ``protocol_chain_positiontype_tokens`` where ``tokens`` is the
sorted set of supply token symbols joined by ``-``. Only descriptive fields
take part, never amounts or reward tokens, so the same economic position maps
to the same key on every day it is captured. Keys never contain ``:`` and can
be embedded in cache keys.

Several positions of one protocol, chain and type holding the same supply
tokens cannot be told apart; :func:`group_by_identity` surfaces that case
instead of silently merging them.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from typing import TypeVar

from .core import Position, TokenHolding
from .core.constants import UNKNOWN

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9._-]")


def _component(value: object) -> str:
    text = _WHITESPACE.sub("_", str(value or "").strip().lower())
    text = _DISALLOWED.sub("", text)
    return text or UNKNOWN


def supply_symbols(position: Position) -> str:
    symbols = sorted({_component(t.symbol) for t in position.supply_tokens if t.symbol})
    symbols = [s for s in symbols if s != UNKNOWN]
    return "-".join(symbols) if symbols else UNKNOWN


def position_identity(position: Position) -> str:
    """Return the composite key of ``position``; never raises."""

    try:
        parts = [
            _component(position.protocol_name),
            _component(position.chain),
            _component(position.position_type),
            supply_symbols(position),
        ]
    except AttributeError:
        logger.warning("Position %r lacks descriptive fields; using placeholder key", position)
        parts = [UNKNOWN] * 4
    return "_".join(parts)


def token_identity(token: TokenHolding) -> str:
    symbol = getattr(token, "symbol", None)
    return _component(symbol).upper()


def group_by_identity(items: Iterable[T], resolver: Callable[[T], str]) -> dict[str, list[T]]:
    """Group entries of one snapshot by identity, preserving first-seen order."""

    groups: dict[str, list[T]] = {}
    for item in items:
        groups.setdefault(resolver(item), []).append(item)
    for key, members in groups.items():
        if len(members) > 1:
            logger.debug("Ambiguous identity %s shared by %d entries", key, len(members))
    return groups


def ambiguity_warning(key: str, count: int) -> str:
    return (
        f"Ambiguous identity: {count} positions share key {key}; "
        "their values are combined for this calculation"
    )


__all__ = [
    "ambiguity_warning",
    "group_by_identity",
    "position_identity",
    "supply_symbols",
    "token_identity",
]
