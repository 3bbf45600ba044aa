"""
DeckRecall – SQLAlchemy ORM Models
===================================
Defines the data schema: Decks, Cards (two scheduling variants sharing one
table), per-deck rolling statistics, and ReviewLogs.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.orm.collections import attribute_keyed_dict

Base = declarative_base()

# Floors for the scheduling state. Values below are clamped, not rejected.
MIN_BASE_TIME = 0.01
MIN_INTERVAL = 1
MIN_EASINESS = 1.3

# Ceilings keep due dates within the calendar (100 years ahead at most).
MAX_INTERVAL = 36500
MAX_BASE_TIME = float(MAX_INTERVAL)

DEFAULT_BASE_TIME = 1.0
DEFAULT_EASINESS = 2.5


class Direction(enum.Enum):
    """Which side of the card is prompted."""

    REGULAR = "regular"   # prompt = front
    REVERSE = "reverse"   # prompt = back


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Deck – a collection of flashcards bound to one scheduling algorithm
# ---------------------------------------------------------------------------
class Deck(Base):
    __tablename__ = "decks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=_utcnow)

    # Algorithm binding – the policy object is rebuilt from these two fields
    algorithm_name = Column(String(64), nullable=False)
    hyperparameters = Column(JSON, nullable=False, default=dict)

    # Relationships
    cards = relationship(
        "Card",
        back_populates="deck",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Card.id",
    )
    statistics = relationship(
        "DeckStatistics",
        back_populates="deck",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Deck id={self.id} name={self.name!r} algorithm={self.algorithm_name!r}>"


# ---------------------------------------------------------------------------
# Card – common base; the ``kind`` column selects the scheduling variant
# ---------------------------------------------------------------------------
class Card(Base):
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deck_id = Column(Integer, ForeignKey("decks.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(32), nullable=False)

    # Content
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    is_new = Column(Boolean, nullable=False, default=True)

    # Calendar-day due dates, one per direction
    next_regular_due = Column(Date, nullable=False)
    next_reverse_due = Column(Date, nullable=False)

    regular_incorrect_count = Column(Integer, nullable=False, default=0)
    reverse_incorrect_count = Column(Integer, nullable=False, default=0)

    # Relationships
    deck = relationship("Deck", back_populates="cards")
    review_logs = relationship(
        "ReviewLog", back_populates="card", cascade="all, delete-orphan", passive_deletes=True
    )

    __mapper_args__ = {"polymorphic_on": kind}

    def __init__(self, **kwargs):
        kwargs.setdefault("created_at", _utcnow())
        kwargs.setdefault("is_new", True)
        kwargs.setdefault("back", "")
        kwargs.setdefault("regular_incorrect_count", 0)
        kwargs.setdefault("reverse_incorrect_count", 0)
        created = kwargs["created_at"]
        created_day = created.date() if isinstance(created, datetime) else created
        kwargs.setdefault("next_regular_due", created_day)
        kwargs.setdefault("next_reverse_due", created_day)
        super().__init__(**kwargs)

    @validates("regular_incorrect_count", "reverse_incorrect_count")
    def _clamp_incorrect_count(self, key, value):
        return max(int(value), 0)

    # -- direction-keyed access ---------------------------------------------

    def due_date(self, direction: Direction) -> date:
        return getattr(self, f"next_{direction.value}_due")

    def set_due_date(self, direction: Direction, value: date) -> None:
        setattr(self, f"next_{direction.value}_due", value)

    def state(self, direction: Direction, name: str):
        """Read a per-direction scheduling field, e.g. ``state(REVERSE, "interval")``."""
        return getattr(self, f"{direction.value}_{name}")

    def set_state(self, direction: Direction, name: str, value) -> None:
        setattr(self, f"{direction.value}_{name}", value)

    def created_on(self) -> date:
        return self.created_at.date() if isinstance(self.created_at, datetime) else self.created_at

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.id} front={self.front!r} "
            f"regular={self.next_regular_due} reverse={self.next_reverse_due}>"
        )


class ConstantCoefficientCard(Card):
    """Card whose interval is a base time scaled by fixed coefficients."""

    regular_base_time = Column(Float)
    reverse_base_time = Column(Float)

    __mapper_args__ = {"polymorphic_identity": "constant_coefficient"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for direction in Direction:
            if self.state(direction, "base_time") is None:
                self.reset_revision(direction)

    @validates("regular_base_time", "reverse_base_time")
    def _clamp_base_time(self, key, value):
        return min(max(float(value), MIN_BASE_TIME), MAX_BASE_TIME)

    def reset_revision(self, direction: Direction) -> None:
        self.set_state(direction, "base_time", DEFAULT_BASE_TIME)
        self.set_state(direction, "incorrect_count", 0)


class SuperMemo2Card(Card):
    """Card scheduled with the SuperMemo-2 repetition/easiness recurrence."""

    regular_repetition = Column(Integer)
    reverse_repetition = Column(Integer)
    regular_interval = Column(Integer)
    reverse_interval = Column(Integer)
    regular_easiness = Column(Float)
    reverse_easiness = Column(Float)

    __mapper_args__ = {"polymorphic_identity": "supermemo2"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for direction in Direction:
            if self.state(direction, "repetition") is None:
                easiness = self.state(direction, "easiness")
                self.reset_revision(direction, DEFAULT_EASINESS if easiness is None else easiness)

    @validates("regular_repetition", "reverse_repetition")
    def _clamp_repetition(self, key, value):
        return max(int(value), 0)

    @validates("regular_interval", "reverse_interval")
    def _clamp_interval(self, key, value):
        return min(max(int(value), MIN_INTERVAL), MAX_INTERVAL)

    @validates("regular_easiness", "reverse_easiness")
    def _clamp_easiness(self, key, value):
        return max(float(value), MIN_EASINESS)

    def reset_revision(self, direction: Direction, easiness: float) -> None:
        self.set_state(direction, "repetition", 0)
        self.set_state(direction, "interval", MIN_INTERVAL)
        self.set_state(direction, "incorrect_count", 0)
        self.set_state(direction, "easiness", easiness)


# ---------------------------------------------------------------------------
# DeckStatistics – rolling day-indexed counters, index 0 = today_indicator
# ---------------------------------------------------------------------------
class DeckStatistics(Base):
    __tablename__ = "deck_statistics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deck_id = Column(
        Integer, ForeignKey("decks.id", ondelete="CASCADE"), nullable=True, unique=True
    )
    today_indicator = Column(Date, nullable=False)
    horizon = Column(Integer, nullable=False)
    new_cards_per_day = Column(Integer, nullable=False, default=0)
    first_time_reviewed = Column(JSON, nullable=False)

    # Relationships
    deck = relationship("Deck", back_populates="statistics")
    revision_counts = relationship(
        "RevisionCounts",
        back_populates="statistics",
        collection_class=attribute_keyed_dict("strategy_index"),
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("new_cards_per_day", 0)
        if "horizon" not in kwargs and "first_time_reviewed" in kwargs:
            kwargs["horizon"] = len(kwargs["first_time_reviewed"])
        kwargs.setdefault("first_time_reviewed", [0] * kwargs["horizon"])
        super().__init__(**kwargs)

    @validates("new_cards_per_day")
    def _clamp_new_cards_per_day(self, key, value):
        return max(int(value), 0)

    def __repr__(self) -> str:
        return (
            f"<DeckStatistics deck_id={self.deck_id} today={self.today_indicator} "
            f"horizon={self.horizon}>"
        )


class RevisionCounts(Base):
    __tablename__ = "revision_counts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    statistics_id = Column(
        Integer, ForeignKey("deck_statistics.id", ondelete="CASCADE"), nullable=True
    )
    strategy_index = Column(Integer, nullable=False)
    counts = Column(JSON, nullable=False)

    statistics = relationship("DeckStatistics", back_populates="revision_counts")

    __table_args__ = (
        UniqueConstraint("statistics_id", "strategy_index", name="uq_counts_strategy"),
    )

    def __repr__(self) -> str:
        return f"<RevisionCounts strategy={self.strategy_index} today={self.counts[:1]}>"


# ---------------------------------------------------------------------------
# ReviewLog – audit trail for every graded action
# ---------------------------------------------------------------------------
class ReviewLog(Base):
    __tablename__ = "review_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False)
    reviewed_on = Column(Date, nullable=False)
    strategy_index = Column(Integer, nullable=False)
    action_index = Column(Integer, nullable=False)
    session_done = Column(Boolean, nullable=False)

    # Relationship
    card = relationship("Card", back_populates="review_logs")

    def __repr__(self) -> str:
        return (
            f"<ReviewLog card_id={self.card_id} strategy={self.strategy_index} "
            f"action={self.action_index} on={self.reviewed_on}>"
        )
