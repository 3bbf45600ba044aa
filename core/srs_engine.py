"""
DeckRecall – Review engine
===========================
Due-card queries, the "record a review" operation, and ``ReviewSession``,
the object a presentation layer drives: it hands out a card and its action
labels, and takes back the index of the chosen action.
"""

from __future__ import annotations

import logging
import random
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from core.algorithms import GradeOutcome, algorithm_for
from core.clock import Clock, SystemClock
from core.errors import ProgrammingError
from core.statistics import (
    new_cards_for_today,
    record_first_time_review,
    record_strategy_review,
    revision_counts_for,
)
from core.strategies import RevisionStrategy
from db.models import Card, Deck, ReviewLog
from db.repository import commit

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

def get_due_cards(session: Session, deck: Deck, strategy: RevisionStrategy, today: date,
                  *, limit: Optional[int] = None) -> List[Card]:
    """Return reviewed cards of *deck* due on or before *today* for *strategy*.

    Results are ordered oldest-first so the most overdue cards come first.
    """
    due_column = getattr(Card, f"next_{strategy.direction.value}_due")
    q = (
        session.query(Card)
        .filter(Card.deck_id == deck.id, Card.is_new.is_(False), due_column <= today)
        .order_by(due_column.asc(), Card.id)
    )
    if limit is not None:
        q = q.limit(limit)
    cards = q.all()
    log.info("Found %d due cards for deck %d (%s)", len(cards), deck.id, strategy.translation_key)
    return cards


def get_new_cards_for_today(session: Session, deck: Deck, today: date) -> List[Card]:
    """Return the oldest new cards, as many as today's allowance permits."""
    new_cards = (
        session.query(Card)
        .filter(Card.deck_id == deck.id, Card.is_new.is_(True))
        .order_by(Card.created_at, Card.id)
        .all()
    )
    allowance = new_cards_for_today(deck.statistics, len(new_cards), today)
    return new_cards[:allowance]


# ---------------------------------------------------------------------------
# Review recording
# ---------------------------------------------------------------------------

def record_review(session: Session, deck: Deck, strategy: RevisionStrategy, card: Card,
                  action_index: int, today: date) -> GradeOutcome:
    """Grade *card* with *action_index*, update statistics, and persist.

    Also inserts a ``ReviewLog`` for historical tracking. Nothing is kept if
    the commit fails: the session is rolled back and ``PersistenceError``
    propagates.
    """
    stats = deck.statistics
    revision_counts_for(stats, strategy.index)
    was_new = card.is_new

    outcome = strategy.apply_grade(action_index, card, today)

    if was_new:
        record_first_time_review(stats, today)
    if outcome.session_done:
        record_strategy_review(stats, strategy.index, today)
    card.is_new = False

    session.add(
        ReviewLog(
            card=card,
            reviewed_on=today,
            strategy_index=strategy.index,
            action_index=action_index,
            session_done=outcome.session_done,
        )
    )
    commit(session, f"record review of card {card.id}")

    log.info(
        "Reviewed card %d (%s, action=%d) → due=%s done=%s",
        card.id, strategy.translation_key, action_index, outcome.due, outcome.session_done,
    )
    return outcome


# ---------------------------------------------------------------------------
# Deck-level statistics
# ---------------------------------------------------------------------------

def deck_stats(session: Session, deck: Deck, today: date) -> dict:
    """Return quick stats for a deck: total, new, new for today, due per strategy."""
    total = session.query(Card).filter(Card.deck_id == deck.id).count()
    new = (
        session.query(Card)
        .filter(Card.deck_id == deck.id, Card.is_new.is_(True))
        .count()
    )
    due = {
        strategy.translation_key: strategy.get_due_count(deck, today)
        for strategy in algorithm_for(deck).strategies
    }
    return {
        "total": total,
        "new": new,
        "new_today": new_cards_for_today(deck.statistics, new, today),
        "due": due,
    }


# ---------------------------------------------------------------------------
# Review session
# ---------------------------------------------------------------------------

class ReviewSession:
    """One pass over the due and new cards of a deck for one strategy.

    Cards whose grade does not finish them stay in the pool and can be drawn
    again. Cards are drawn at random from the remaining pool.
    """

    def __init__(self, session: Session, deck: Deck, strategy: RevisionStrategy,
                 clock: Optional[Clock] = None, rng: Optional[random.Random] = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random()
        self.deck = deck
        self.strategy = strategy

        today = self._clock.today()
        self._old_cards = get_due_cards(session, deck, strategy, today)
        self._new_cards = get_new_cards_for_today(session, deck, today)
        self.current_card: Optional[Card] = None
        self.next_card()

    @property
    def remaining(self) -> int:
        return len(self._old_cards) + len(self._new_cards)

    @property
    def is_finished(self) -> bool:
        return self.current_card is None

    def next_card(self) -> Optional[Card]:
        total = self.remaining
        if total == 0:
            self.current_card = None
            return None
        i = self._rng.randrange(total)
        if i < len(self._old_cards):
            self.current_card = self._old_cards[i]
        else:
            self.current_card = self._new_cards[i - len(self._old_cards)]
        return self.current_card

    def _require_card(self) -> Card:
        if self.current_card is None:
            raise ProgrammingError("Review session has no card left")
        return self.current_card

    def prompt(self) -> str:
        return self.strategy.prompt(self._require_card())

    def answer(self) -> str:
        return self.strategy.answer(self._require_card())

    def action_labels(self) -> List[str]:
        """Translation keys of the answer buttons, in action-index order."""
        return [a.label_key for a in self.strategy.get_actions(self._require_card())]

    def apply_grade(self, action_index: int) -> GradeOutcome:
        card = self._require_card()
        outcome = record_review(
            self._session, self.deck, self.strategy, card, action_index, self._clock.today()
        )
        if outcome.session_done:
            if card in self._old_cards:
                self._old_cards.remove(card)
            if card in self._new_cards:
                self._new_cards.remove(card)
        self.next_card()
        return outcome
