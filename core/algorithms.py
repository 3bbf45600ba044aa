"""
DeckRecall – Scheduling algorithms
===================================
Two closed scheduling policies, each owning one card variant:

* ``ConstantCoefficientAlgorithm`` – the base revision time is multiplied by
  a fixed coefficient per answer button.
* ``SuperMemo2Algorithm`` – the classic SM-2 repetition / easiness recurrence.

Algorithms are frozen dataclasses. Their fields are the hyperparameters,
validated once on construction; ``reconfigure`` returns a new instance.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timedelta, timezone
from functools import cached_property
from typing import ClassVar, Dict, List, Optional, Tuple

from core.errors import CardVariantMismatchError, ConfigurationError, InvalidActionError
from core.strategies import RegularTextModeStrategy, ReverseTextModeStrategy, RevisionStrategy
from db.models import (
    MAX_BASE_TIME,
    MAX_INTERVAL,
    MIN_BASE_TIME,
    MIN_EASINESS,
    Card,
    ConstantCoefficientCard,
    Deck,
    Direction,
    SuperMemo2Card,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradeAction:
    """One answer button: its position and the translation key of its label."""

    index: int
    label_key: str


@dataclass(frozen=True)
class GradeOutcome:
    card: Card
    due: date
    session_done: bool


def hyperparameter(default, *, key: str, minimum=None, above=None, below=None,
                   integer: bool = False):
    """Declare a validated hyperparameter field.

    ``minimum`` is inclusive, ``above`` / ``below`` are exclusive bounds and
    ``key`` is the translation key describing the value in a settings screen.
    """
    return field(
        default=default,
        metadata={
            "key": key,
            "minimum": minimum,
            "above": above,
            "below": below,
            "integer": integer,
        },
    )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties away from zero for positive values."""
    return int(math.floor(value + 0.5))


def days_ahead(today: date, days: int) -> date:
    """Return *today* plus *days*, capped at ``MAX_INTERVAL`` and ``date.max``."""
    days = min(int(days), MAX_INTERVAL, (date.max - today).days)
    return today + timedelta(days=days)


# ---------------------------------------------------------------------------
# Common contract
# ---------------------------------------------------------------------------

class RevisionAlgorithm:
    """Behaviour shared by every scheduling policy."""

    name: ClassVar[str]
    name_key: ClassVar[str]
    card_class: ClassVar[type]

    def __post_init__(self) -> None:
        for f in fields(self):
            self._validate(f, getattr(self, f.name))

    @staticmethod
    def _validate(f, value) -> None:
        meta = f.metadata
        if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"{f.name} must be a number, got {value!r}")
        if meta.get("integer") and value != int(value):
            raise ConfigurationError(f"{f.name} must be an integer, got {value!r}")
        if meta.get("minimum") is not None and value < meta["minimum"]:
            raise ConfigurationError(f"{f.name} must be >= {meta['minimum']}, got {value!r}")
        if meta.get("above") is not None and value <= meta["above"]:
            raise ConfigurationError(f"{f.name} must be > {meta['above']}, got {value!r}")
        if meta.get("below") is not None and value >= meta["below"]:
            raise ConfigurationError(f"{f.name} must be < {meta['below']}, got {value!r}")

    # -- configuration -------------------------------------------------------

    def hyperparameters(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def hyperparameter_descriptions(cls) -> List[Tuple[str, str]]:
        """Return ``[(field name, translation key), ...]`` in declaration order."""
        return [(f.name, f.metadata["key"]) for f in fields(cls)]

    def reconfigure(self, **changes) -> "RevisionAlgorithm":
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown hyperparameters for {self.name}: {sorted(unknown)}")
        return replace(self, **changes)

    # -- strategies ----------------------------------------------------------

    @cached_property
    def strategies(self) -> Tuple[RevisionStrategy, ...]:
        """Ordered strategies; the position is the statistics key."""
        return (
            RegularTextModeStrategy(self, 0),
            ReverseTextModeStrategy(self, 1),
        )

    # -- scheduling ----------------------------------------------------------

    def actions(self, direction: Direction) -> Tuple[GradeAction, ...]:
        raise NotImplementedError

    def create_card(self, front: str, back: str, today: Optional[date] = None,
                    created_at: Optional[datetime] = None) -> Card:
        created_at = created_at or datetime.now(timezone.utc)
        today = today or created_at.date()
        return self._new_card(
            front=front,
            back=back,
            created_at=created_at,
            next_regular_due=today,
            next_reverse_due=today,
        )

    def grade(self, card: Card, direction: Direction, action_index: int,
              today: date) -> GradeOutcome:
        """Apply the chosen action to *card* for *direction*.

        Raises ``CardVariantMismatchError`` for a card this algorithm does not
        own and ``InvalidActionError`` for an index outside ``actions``.
        """
        if not isinstance(card, self.card_class):
            raise CardVariantMismatchError(
                f"{self.name} cannot grade {type(card).__name__}"
            )
        actions = self.actions(direction)
        if (
            isinstance(action_index, bool)
            or not isinstance(action_index, int)
            or not 0 <= action_index < len(actions)
        ):
            raise InvalidActionError(
                f"action index {action_index} outside 0..{len(actions) - 1} "
                f"for {self.name}/{direction.value}"
            )
        session_done = self._apply(card, direction, action_index, today)
        due = card.due_date(direction)
        log.debug(
            "Graded card %s (%s, action=%d) → due=%s done=%s",
            card.id, direction.value, action_index, due, session_done,
        )
        return GradeOutcome(card=card, due=due, session_done=session_done)

    def _new_card(self, **kwargs) -> Card:
        raise NotImplementedError

    def _apply(self, card, direction: Direction, action_index: int, today: date) -> bool:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Constant-coefficient policy
# ---------------------------------------------------------------------------

_CC_KEY = "revision_algorithm.const_coeff"

_CC_REGULAR_ACTIONS = tuple(
    GradeAction(i, f"{_CC_KEY}.normal_button_{i + 1}") for i in range(4)
)
_CC_REVERSE_ACTIONS = tuple(
    GradeAction(i, f"{_CC_KEY}.reverse_button_{i + 1}") for i in range(2)
)


@dataclass(frozen=True)
class ConstantCoefficientAlgorithm(RevisionAlgorithm):
    """Scale the base revision time by one coefficient per answer.

    Action 0 is the "again" answer: it shrinks the base time, counts an
    incorrect answer and keeps the card in the current session. Every other
    action multiplies the base time by its coefficient and schedules the
    card ``floor(base_time)`` days ahead (at least one day).
    """

    name: ClassVar[str] = "constant_coefficient"
    name_key: ClassVar[str] = f"{_CC_KEY}.algorithm_name"
    card_class: ClassVar[type] = ConstantCoefficientCard

    coefficient1: float = hyperparameter(0.25, key=f"{_CC_KEY}.normal_coeff_1", above=0, below=1)
    coefficient2: float = hyperparameter(0.5, key=f"{_CC_KEY}.normal_coeff_2", above=0)
    coefficient3: float = hyperparameter(1.0, key=f"{_CC_KEY}.normal_coeff_3", above=0)
    coefficient4: float = hyperparameter(1.5, key=f"{_CC_KEY}.normal_coeff_4", above=0)
    incorrect_threshold: int = hyperparameter(
        5, key=f"{_CC_KEY}.normal_incorrect", minimum=1, integer=True
    )
    reverse_coefficient1: float = hyperparameter(
        0.25, key=f"{_CC_KEY}.reverse_coeff_1", above=0, below=1
    )
    reverse_coefficient2: float = hyperparameter(1.5, key=f"{_CC_KEY}.reverse_coeff_2", above=0)
    reverse_incorrect_threshold: int = hyperparameter(
        5, key=f"{_CC_KEY}.reverse_incorrect", minimum=1, integer=True
    )

    def actions(self, direction: Direction) -> Tuple[GradeAction, ...]:
        if direction is Direction.REGULAR:
            return _CC_REGULAR_ACTIONS
        return _CC_REVERSE_ACTIONS

    def coefficients(self, direction: Direction) -> Tuple[float, ...]:
        if direction is Direction.REGULAR:
            return (self.coefficient1, self.coefficient2, self.coefficient3, self.coefficient4)
        return (self.reverse_coefficient1, self.reverse_coefficient2)

    def incorrect_threshold_for(self, direction: Direction) -> int:
        if direction is Direction.REGULAR:
            return int(self.incorrect_threshold)
        return int(self.reverse_incorrect_threshold)

    def _new_card(self, **kwargs) -> ConstantCoefficientCard:
        return ConstantCoefficientCard(**kwargs)

    def _apply(self, card, direction, action_index, today):
        coefficient = self.coefficients(direction)[action_index]
        base_time = card.state(direction, "base_time") * coefficient
        base_time = min(max(base_time, MIN_BASE_TIME), MAX_BASE_TIME)

        if action_index == 0:
            card.set_state(direction, "base_time", base_time)
            card.set_state(direction, "incorrect_count", card.state(direction, "incorrect_count") + 1)
            if card.state(direction, "incorrect_count") >= self.incorrect_threshold_for(direction):
                card.reset_revision(direction)
            card.set_due_date(direction, today)
            return False

        due = days_ahead(today, max(math.floor(base_time), 1))
        card.set_state(direction, "base_time", base_time)
        card.set_due_date(direction, due)
        return True


# ---------------------------------------------------------------------------
# SuperMemo-2 policy
# ---------------------------------------------------------------------------

_SM2_KEY = "revision_algorithm.supermemo2"

_SM2_REGULAR_ACTIONS = tuple(
    GradeAction(i, f"{_SM2_KEY}.normal_button_{i + 1}") for i in range(5)
)
_SM2_REVERSE_ACTIONS = tuple(
    GradeAction(i, f"{_SM2_KEY}.reverse_button_{i + 1}") for i in range(5)
)


def calculate_sm2(
    grade: int,
    repetition: int,
    easiness: float,
    interval: int,
) -> Tuple[int, float, int]:
    """Apply the SM-2 recurrence and return updated scheduling values.

    Parameters
    ----------
    grade : int
        User self-assessment, 1 (worst) … 5 (best).
    repetition : int
        Current number of consecutive successful reviews.
    easiness : float
        Current easiness factor, at least 1.3.
    interval : int
        Current inter-repetition interval in days.

    Returns
    -------
    (new_repetition, new_easiness, new_interval)
    """
    if grade < 1 or grade > 5:
        raise ValueError(f"grade must be 1-5, got {grade}")

    # Failed review: back to the first step, easiness untouched
    if grade < 3:
        return 0, easiness, 1

    new_repetition = repetition + 1
    new_easiness = easiness + (0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02))
    new_easiness = max(MIN_EASINESS, new_easiness)

    if new_repetition == 1:
        new_interval = 1
    elif new_repetition == 2:
        new_interval = 6
    else:
        new_interval = round_half_up(interval * new_easiness)

    return new_repetition, new_easiness, new_interval


@dataclass(frozen=True)
class SuperMemo2Algorithm(RevisionAlgorithm):
    """SuperMemo-2 with grades 1..5 on both directions.

    A failed grade always ends the card's session and reschedules it for
    tomorrow, unlike the constant-coefficient "again" answer.
    """

    name: ClassVar[str] = "supermemo2"
    name_key: ClassVar[str] = f"{_SM2_KEY}.algorithm_name"
    card_class: ClassVar[type] = SuperMemo2Card

    initial_easiness: float = hyperparameter(
        2.5, key=f"{_SM2_KEY}.easiness_factor", minimum=MIN_EASINESS
    )
    incorrect_threshold: int = hyperparameter(
        3, key=f"{_SM2_KEY}.incorrect_threshold", minimum=1, integer=True
    )
    reverse_initial_easiness: float = hyperparameter(
        2.5, key=f"{_SM2_KEY}.reverse_easiness_factor", minimum=MIN_EASINESS
    )
    reverse_incorrect_threshold: int = hyperparameter(
        3, key=f"{_SM2_KEY}.reverse_incorrect_threshold", minimum=1, integer=True
    )

    def actions(self, direction: Direction) -> Tuple[GradeAction, ...]:
        if direction is Direction.REGULAR:
            return _SM2_REGULAR_ACTIONS
        return _SM2_REVERSE_ACTIONS

    def initial_easiness_for(self, direction: Direction) -> float:
        if direction is Direction.REGULAR:
            return float(self.initial_easiness)
        return float(self.reverse_initial_easiness)

    def incorrect_threshold_for(self, direction: Direction) -> int:
        if direction is Direction.REGULAR:
            return int(self.incorrect_threshold)
        return int(self.reverse_incorrect_threshold)

    def _new_card(self, **kwargs) -> SuperMemo2Card:
        return SuperMemo2Card(
            regular_easiness=self.initial_easiness_for(Direction.REGULAR),
            reverse_easiness=self.initial_easiness_for(Direction.REVERSE),
            **kwargs,
        )

    def _apply(self, card, direction, action_index, today):
        grade = action_index + 1
        repetition, easiness, interval = calculate_sm2(
            grade,
            card.state(direction, "repetition"),
            card.state(direction, "easiness"),
            card.state(direction, "interval"),
        )
        interval = min(interval, MAX_INTERVAL)
        due = days_ahead(today, interval)

        card.set_state(direction, "repetition", repetition)
        card.set_state(direction, "easiness", easiness)
        card.set_state(direction, "interval", interval)

        if grade < 3:
            card.set_state(direction, "incorrect_count", card.state(direction, "incorrect_count") + 1)
            if card.state(direction, "incorrect_count") >= self.incorrect_threshold_for(direction):
                card.reset_revision(direction, self.initial_easiness_for(direction))

        card.set_due_date(direction, due)
        return True


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ALGORITHMS: Dict[str, type] = {
    cls.name: cls for cls in (ConstantCoefficientAlgorithm, SuperMemo2Algorithm)
}


def algorithm_names() -> List[str]:
    return list(ALGORITHMS)


def build_algorithm(name: str, params: Optional[dict] = None) -> RevisionAlgorithm:
    """Instantiate the algorithm registered as *name* with *params*."""
    try:
        cls = ALGORITHMS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown revision algorithm {name!r}") from None
    try:
        return cls(**(params or {}))
    except TypeError as exc:
        raise ConfigurationError(f"Invalid hyperparameters for {name}: {exc}") from exc


def algorithm_for(deck: Deck) -> RevisionAlgorithm:
    """Rebuild the immutable policy bound to *deck*."""
    return build_algorithm(deck.algorithm_name, deck.hyperparameters)
