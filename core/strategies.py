"""
DeckRecall – Revision strategies
=================================
A strategy binds one review direction to its algorithm: which side of the
card is the prompt, which due date decides "is due", which actions are
offered, and which statistics slot is incremented.

Strategies are built by the algorithm, in a fixed order. Their position in
``algorithm.strategies`` is the key of the per-strategy statistics, so the
order must never change for an existing deck.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Optional, Tuple

from db.models import Card, Deck, Direction

if TYPE_CHECKING:
    from core.algorithms import GradeAction, GradeOutcome, RevisionAlgorithm


class RevisionStrategy:
    direction: Direction
    translation_key: str

    def __init__(self, algorithm: "RevisionAlgorithm", index: int) -> None:
        self.algorithm = algorithm
        self.index = index

    def prompt(self, card: Card) -> str:
        raise NotImplementedError

    def answer(self, card: Card) -> str:
        raise NotImplementedError

    def next_due_date(self, card: Card) -> date:
        return card.due_date(self.direction)

    def is_due(self, card: Card, today: date) -> bool:
        """New cards are never "due"; they are introduced separately."""
        return not card.is_new and self.next_due_date(card) <= today

    def get_due_count(self, deck: Deck, today: date) -> int:
        return sum(1 for card in deck.cards if self.is_due(card, today))

    def get_actions(self, card: Optional[Card] = None) -> Tuple["GradeAction", ...]:
        return self.algorithm.actions(self.direction)

    def apply_grade(self, action_index: int, card: Card, today: date) -> "GradeOutcome":
        return self.algorithm.grade(card, self.direction, action_index, today)

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, RevisionStrategy)
            and other.direction is self.direction
            and other.index == self.index
            and other.algorithm == self.algorithm
        )

    def __hash__(self) -> int:
        return hash((self.direction, self.index))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} index={self.index} algorithm={self.algorithm.name}>"


class RegularTextModeStrategy(RevisionStrategy):
    """Show the front, expect the back."""

    direction = Direction.REGULAR
    translation_key = "regular_text_mode"

    def prompt(self, card: Card) -> str:
        return card.front

    def answer(self, card: Card) -> str:
        return card.back


class ReverseTextModeStrategy(RevisionStrategy):
    """Show the back, expect the front."""

    direction = Direction.REVERSE
    translation_key = "reverse_text_mode"

    def prompt(self, card: Card) -> str:
        return card.back

    def answer(self, card: Card) -> str:
        return card.front
