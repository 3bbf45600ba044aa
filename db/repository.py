"""
DeckRecall – Persistence helpers
=================================
Load / save / delete operations for decks, cards and deck statistics.
Every write commits; a failed commit is rolled back so the session's
objects fall back to their stored state, then re-raised as
``PersistenceError``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.algorithms import RevisionAlgorithm, algorithm_for
from core.errors import PersistenceError
from core.statistics import MAX_RANGE, create_statistics
from db.models import Card, Deck, DeckStatistics

log = logging.getLogger(__name__)


def commit(session: Session, what: str) -> None:
    """Commit the session or roll it back and raise ``PersistenceError``."""
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        log.warning("Could not %s: %s", what, exc)
        raise PersistenceError(f"Could not {what}") from exc


# ── Decks ─────────────────────────────────────────────────────────────

def create_deck(session: Session, name: str, algorithm: RevisionAlgorithm,
                today: date, *, horizon: int = MAX_RANGE) -> Deck:
    """Create a deck bound to *algorithm*, together with its statistics."""
    deck = Deck(
        name=name.strip(),
        is_deleted=False,
        algorithm_name=algorithm.name,
        hyperparameters=algorithm.hyperparameters(),
    )
    deck.statistics = create_statistics(
        today, [s.index for s in algorithm.strategies], horizon=horizon
    )
    session.add(deck)
    commit(session, f"create deck {deck.name!r}")
    log.info("Created deck %d %r (%s)", deck.id, deck.name, algorithm.name)
    return deck


def load_deck(session: Session, deck_id: int) -> Optional[Deck]:
    return session.get(Deck, deck_id)


def list_decks(session: Session, *, deleted: bool = False) -> List[Deck]:
    """Return decks in the trash (``deleted=True``) or out of it."""
    return (
        session.query(Deck)
        .filter(Deck.is_deleted == deleted)
        .order_by(Deck.name)
        .all()
    )


def configure_algorithm(session: Session, deck: Deck, **changes) -> RevisionAlgorithm:
    """Change hyperparameters of the deck's algorithm.

    Raises ``ConfigurationError`` and leaves the deck untouched when a value
    is invalid. Existing cards keep their accumulated state.
    """
    algorithm = algorithm_for(deck).reconfigure(**changes)
    deck.hyperparameters = algorithm.hyperparameters()
    commit(session, f"configure deck {deck.id}")
    log.info("Reconfigured deck %d: %s", deck.id, changes)
    return algorithm


def set_new_cards_per_day(session: Session, deck: Deck, value: int) -> None:
    deck.statistics.new_cards_per_day = value
    commit(session, f"update new cards per day of deck {deck.id}")


def trash_deck(session: Session, deck: Deck) -> None:
    """Move a deck to the trash; nothing is deleted."""
    deck.is_deleted = True
    commit(session, f"trash deck {deck.id}")
    log.info("Moved deck %d to trash", deck.id)


def restore_deck(session: Session, deck: Deck) -> None:
    deck.is_deleted = False
    commit(session, f"restore deck {deck.id}")
    log.info("Restored deck %d", deck.id)


def remove_deck(session: Session, deck: Deck) -> None:
    """Delete a deck with its cards, logs and statistics (cascade)."""
    deck_id = deck.id
    session.delete(deck)
    commit(session, f"remove deck {deck_id}")
    log.info("Removed deck %d", deck_id)


# ── Cards ─────────────────────────────────────────────────────────────

def load_cards_for_deck(session: Session, deck_id: int) -> List[Card]:
    """Return every card in a deck regardless of schedule."""
    return (
        session.query(Card)
        .filter(Card.deck_id == deck_id)
        .order_by(Card.id)
        .all()
    )


def add_card(session: Session, deck: Deck, front: str, back: str, today: date,
             created_at: Optional[datetime] = None) -> Optional[Card]:
    """Create a card with the deck's algorithm.

    Returns None when the deck already holds a card with the same front.
    """
    exists = (
        session.query(Card.id)
        .filter(Card.deck_id == deck.id, Card.front == front)
        .first()
    )
    if exists:
        log.info("Deck %d already has a card %r", deck.id, front)
        return None

    card = algorithm_for(deck).create_card(front, back, today=today, created_at=created_at)
    deck.cards.append(card)
    commit(session, f"add card to deck {deck.id}")
    log.info("Added card %d to deck %d", card.id, deck.id)
    return card


def save_card(session: Session, card: Card) -> None:
    session.add(card)
    commit(session, f"save card {card.id}")


def delete_card(session: Session, card: Card) -> None:
    card_id = card.id
    session.delete(card)
    commit(session, f"delete card {card_id}")
    log.info("Deleted card %d", card_id)


def find_cards(session: Session, deck: Deck, front_phrase: str = "",
               back_phrase: str = "") -> List[Card]:
    """Return cards of *deck* whose front / back contain the given phrases."""
    q = session.query(Card).filter(Card.deck_id == deck.id)
    if front_phrase:
        q = q.filter(Card.front.contains(front_phrase, autoescape=True))
    if back_phrase:
        q = q.filter(Card.back.contains(back_phrase, autoescape=True))
    return q.order_by(Card.id).all()


# ── Statistics ────────────────────────────────────────────────────────

def load_statistics(session: Session, deck_id: int) -> Optional[DeckStatistics]:
    return (
        session.query(DeckStatistics)
        .filter(DeckStatistics.deck_id == deck_id)
        .one_or_none()
    )


def save_statistics(session: Session, stats: DeckStatistics) -> None:
    session.add(stats)
    commit(session, f"save statistics {stats.id}")
