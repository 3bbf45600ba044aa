"""
DeckRecall – Rolling deck statistics
=====================================
Fixed-horizon day counters stored on ``DeckStatistics``. Slot 0 is always
``today_indicator``; slot *i* is *i* days before it. Every write first rolls
the window forward to the caller's "today".
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List

from core.errors import UnknownStrategyError
from db.models import DeckStatistics, RevisionCounts

log = logging.getLogger(__name__)

# Report ranges offered to the user, in days. The longest one is the horizon
# every counter array is sized to.
AVAILABLE_RANGES = (31, 91, 181, 361, 721, 1081)
MAX_RANGE = max(AVAILABLE_RANGES)


def create_statistics(today: date, strategy_indices: Iterable[int],
                      horizon: int = MAX_RANGE) -> DeckStatistics:
    """Return empty statistics aligned to *today* with one counter per strategy."""
    stats = DeckStatistics(today_indicator=today, horizon=horizon)
    for index in strategy_indices:
        stats.revision_counts[index] = RevisionCounts(strategy_index=index, counts=[0] * horizon)
    return stats


def _shift(counts: List[int], delta: int) -> List[int]:
    size = len(counts)
    if delta >= size:
        return [0] * size
    return [0] * delta + list(counts[: size - delta])


def roll_to_today(stats: DeckStatistics, today: date) -> bool:
    """Align every counter array so that slot 0 means *today*.

    Returns True when the window moved. A *today* earlier than the stored
    indicator leaves the arrays untouched.
    """
    delta = (today - stats.today_indicator).days
    if delta <= 0:
        return False

    if delta >= stats.horizon:
        log.debug("Statistics %s expired (%d days idle)", stats.id, delta)
        stats.first_time_reviewed = [0] * len(stats.first_time_reviewed)
        for rc in stats.revision_counts.values():
            rc.counts = [0] * len(rc.counts)
    else:
        stats.first_time_reviewed = _shift(stats.first_time_reviewed, delta)
        for rc in stats.revision_counts.values():
            rc.counts = _shift(rc.counts, delta)

    log.debug("Rolled statistics %s from %s to %s", stats.id, stats.today_indicator, today)
    stats.today_indicator = today
    return True


def revision_counts_for(stats: DeckStatistics, strategy_index: int) -> RevisionCounts:
    """Return the counters of *strategy_index*; unknown indices are fatal."""
    if not isinstance(strategy_index, int) or strategy_index < 0:
        raise UnknownStrategyError(strategy_index)
    try:
        return stats.revision_counts[strategy_index]
    except KeyError:
        raise UnknownStrategyError(strategy_index) from None


def record_first_time_review(stats: DeckStatistics, today: date) -> None:
    """Count one card leaving the "new" state today."""
    roll_to_today(stats, today)
    counts = list(stats.first_time_reviewed)
    counts[0] += 1
    stats.first_time_reviewed = counts


def record_strategy_review(stats: DeckStatistics, strategy_index: int, today: date) -> None:
    """Count one finished review for the strategy at *strategy_index*."""
    rc = revision_counts_for(stats, strategy_index)
    roll_to_today(stats, today)
    counts = list(rc.counts)
    counts[0] += 1
    rc.counts = counts


def first_time_counts(stats: DeckStatistics, today: date) -> List[int]:
    roll_to_today(stats, today)
    return list(stats.first_time_reviewed)


def strategy_counts(stats: DeckStatistics, strategy_index: int, today: date) -> List[int]:
    rc = revision_counts_for(stats, strategy_index)
    roll_to_today(stats, today)
    return list(rc.counts)


def new_cards_for_today(stats: DeckStatistics, new_cards_available: int, today: date) -> int:
    """How many new cards may still be introduced today."""
    roll_to_today(stats, today)
    remaining = stats.new_cards_per_day - stats.first_time_reviewed[0]
    return max(min(remaining, new_cards_available), 0)
