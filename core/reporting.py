"""
DeckRecall – Time-bucket reports
=================================
Turns the rolling counters and card dates into dense integer arrays that a
chart can plot directly.

* ``FIRST_TIME`` / ``STRATEGY_REVIEWS`` – the stored window, oldest first and
  today last.
* ``CARDS_CREATED`` – index *i* counts cards created *i* days ago.
* ``DUE_APPEARANCE`` – index *i* counts reviewed cards due in *i* days;
  overdue cards land in today's bucket.
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Iterable, List, Optional, Tuple

from core.algorithms import RevisionAlgorithm, algorithm_for
from core.errors import UnknownStrategyError
from core.statistics import AVAILABLE_RANGES, MAX_RANGE, first_time_counts, strategy_counts
from core.strategies import RevisionStrategy
from db.models import Card, Deck

__all__ = [
    "AVAILABLE_RANGES",
    "MAX_RANGE",
    "SeriesKind",
    "window_series",
    "cards_created_series",
    "due_appearance_series",
    "build_series",
    "compatible_series",
]


class SeriesKind(enum.Enum):
    FIRST_TIME = "revised_first_time"
    STRATEGY_REVIEWS = "statistics_revision"
    CARDS_CREATED = "added_new"
    DUE_APPEARANCE = "statistics_appearance"

    @property
    def per_strategy(self) -> bool:
        return self in (SeriesKind.STRATEGY_REVIEWS, SeriesKind.DUE_APPEARANCE)


def _check_range(range_: int, horizon: int) -> None:
    if not 1 <= range_ <= horizon:
        raise ValueError(f"range must be within 1..{horizon}, got {range_}")


def window_series(counts: List[int], range_: int) -> List[int]:
    """Return ``counts[0:range_]`` reversed so the last element is today."""
    _check_range(range_, len(counts))
    return list(reversed(counts[:range_]))


def _bucket(values: Iterable[int], range_: int) -> List[int]:
    buckets = [0] * range_
    for offset in values:
        if 0 <= offset < range_:
            buckets[offset] += 1
    return buckets


def cards_created_series(cards: Iterable[Card], range_: int, today: date) -> List[int]:
    return _bucket(
        (max(0, (today - card.created_on()).days) for card in cards),
        range_,
    )


def due_appearance_series(cards: Iterable[Card], strategy: RevisionStrategy,
                          range_: int, today: date) -> List[int]:
    return _bucket(
        (
            max(0, (strategy.next_due_date(card) - today).days)
            for card in cards
            if not card.is_new
        ),
        range_,
    )


def build_series(kind: SeriesKind, deck: Deck, range_: int, today: date,
                 strategy_index: Optional[int] = None) -> List[int]:
    """Build the *kind* series of *deck* over the last/next *range_* days.

    Per-strategy kinds require ``strategy_index``; reading the stored
    windows rolls the deck statistics to *today* first.
    """
    stats = deck.statistics
    _check_range(range_, stats.horizon if stats is not None else MAX_RANGE)
    if kind.per_strategy and strategy_index is None:
        raise ValueError(f"{kind.name} needs a strategy index")

    if kind is SeriesKind.FIRST_TIME:
        return window_series(first_time_counts(stats, today), range_)
    if kind is SeriesKind.STRATEGY_REVIEWS:
        return window_series(strategy_counts(stats, strategy_index, today), range_)
    if kind is SeriesKind.CARDS_CREATED:
        return cards_created_series(deck.cards, range_, today)

    strategies = algorithm_for(deck).strategies
    if not 0 <= strategy_index < len(strategies):
        raise UnknownStrategyError(strategy_index)
    return due_appearance_series(deck.cards, strategies[strategy_index], range_, today)


def compatible_series(algorithm: RevisionAlgorithm) -> List[Tuple[SeriesKind, Optional[int]]]:
    """Every (kind, strategy index) pair a deck using *algorithm* can plot."""
    entries: List[Tuple[SeriesKind, Optional[int]]] = []
    for kind in SeriesKind:
        if kind.per_strategy:
            entries.extend((kind, strategy.index) for strategy in algorithm.strategies)
        else:
            entries.append((kind, None))
    return entries
