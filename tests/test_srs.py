"""
Tests for the two scheduling algorithms.
"""

import random
from datetime import date, datetime, timedelta, timezone

import pytest

from core.algorithms import (
    ConstantCoefficientAlgorithm,
    GradeOutcome,
    SuperMemo2Algorithm,
    algorithm_names,
    build_algorithm,
    calculate_sm2,
    round_half_up,
)
from core.errors import (
    CardVariantMismatchError,
    ConfigurationError,
    InvalidActionError,
    ProgrammingError,
)
from db.models import (
    MAX_BASE_TIME,
    MAX_INTERVAL,
    ConstantCoefficientCard,
    Direction,
    SuperMemo2Card,
)

TODAY = date(2024, 3, 15)
REGULAR, REVERSE = Direction.REGULAR, Direction.REVERSE


class TestCalculateSM2:
    """Validate SM-2 outputs for key grades."""

    def test_first_good_review(self):
        reps, ef, interval = calculate_sm2(grade=4, repetition=0, easiness=2.5, interval=1)
        assert reps == 1
        assert interval == 1
        assert ef == pytest.approx(2.5)

    def test_second_good_review(self):
        reps, ef, interval = calculate_sm2(grade=4, repetition=1, easiness=2.5, interval=1)
        assert reps == 2
        assert interval == 6

    def test_third_review_uses_updated_easiness(self):
        reps, ef, interval = calculate_sm2(grade=5, repetition=2, easiness=2.5, interval=6)
        assert reps == 3
        assert ef == pytest.approx(2.6)
        assert interval == round_half_up(6 * ef)  # 16

    def test_fail_resets_repetition_keeps_easiness(self):
        reps, ef, interval = calculate_sm2(grade=2, repetition=5, easiness=2.1, interval=30)
        assert reps == 0
        assert interval == 1
        assert ef == 2.1

    def test_grade_3_is_passing(self):
        reps, ef, interval = calculate_sm2(grade=3, repetition=0, easiness=2.5, interval=1)
        assert reps == 1
        assert ef == pytest.approx(2.36)

    def test_easiness_never_below_1_3(self):
        ef = 1.4
        for _ in range(5):
            _, ef, _ = calculate_sm2(grade=3, repetition=3, easiness=ef, interval=10)
        assert ef == 1.3

    def test_interval_ties_round_up(self):
        # 5 * 2.5 = 12.5; banker's rounding would give 12
        assert calculate_sm2(grade=4, repetition=2, easiness=2.5, interval=5) == (3, 2.5, 13)

    @pytest.mark.parametrize("grade, expected", [
        (4, [1, 6, 15, 38, 95]),
        (5, [1, 6, 17, 49, 147]),
        (3, [1, 6, 12, 23, 41]),
    ])
    def test_reference_intervals_from_fresh_card(self, grade, expected):
        repetition, ef, interval = 0, 2.5, 1
        intervals = []
        for _ in expected:
            repetition, ef, interval = calculate_sm2(grade, repetition, ef, interval)
            intervals.append(interval)
        assert intervals == expected

    def test_invalid_grade_raises(self):
        with pytest.raises(ValueError):
            calculate_sm2(grade=6, repetition=0, easiness=2.5, interval=1)
        with pytest.raises(ValueError):
            calculate_sm2(grade=0, repetition=0, easiness=2.5, interval=1)


class TestRoundHalfUp:
    def test_ties_go_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(14.5) == 15

    def test_other_values(self):
        assert round_half_up(14.4) == 14
        assert round_half_up(14.6) == 15


class TestSuperMemo2Algorithm:
    def setup_method(self):
        self.algorithm = SuperMemo2Algorithm()
        self.card = self.algorithm.create_card("der Hund", "dog", today=TODAY)

    def test_create_card(self):
        card = self.card
        assert isinstance(card, SuperMemo2Card)
        assert card.is_new is True
        assert card.next_regular_due == TODAY
        assert card.next_reverse_due == TODAY
        for d in Direction:
            assert card.state(d, "repetition") == 0
            assert card.state(d, "interval") == 1
            assert card.state(d, "easiness") == 2.5
            assert card.state(d, "incorrect_count") == 0

    def test_create_card_uses_initial_easiness(self):
        card = SuperMemo2Algorithm(reverse_initial_easiness=1.8).create_card("a", "b", today=TODAY)
        assert card.regular_easiness == 2.5
        assert card.reverse_easiness == 1.8

    def test_empty_text_allowed(self):
        card = self.algorithm.create_card("", "", today=TODAY)
        assert card.front == ""
        assert card.back == ""

    def test_five_actions_per_direction(self):
        for d in Direction:
            actions = self.algorithm.actions(d)
            assert [a.index for a in actions] == [0, 1, 2, 3, 4]
        assert self.algorithm.actions(REGULAR)[0].label_key == "revision_algorithm.supermemo2.normal_button_1"
        assert self.algorithm.actions(REVERSE)[4].label_key == "revision_algorithm.supermemo2.reverse_button_5"

    def test_consecutive_good_grades(self):
        # grade 4 = action index 3
        out = self.algorithm.grade(self.card, REGULAR, 3, TODAY)
        assert isinstance(out, GradeOutcome)
        assert (self.card.regular_repetition, self.card.regular_interval) == (1, 1)
        assert out.due == TODAY + timedelta(days=1)
        assert out.session_done is True

        self.algorithm.grade(self.card, REGULAR, 3, TODAY)
        assert (self.card.regular_repetition, self.card.regular_interval) == (2, 6)

        out = self.algorithm.grade(self.card, REGULAR, 3, TODAY)
        assert self.card.regular_repetition == 3
        assert self.card.regular_interval == round_half_up(6 * self.card.regular_easiness)
        assert out.due == TODAY + timedelta(days=self.card.regular_interval)

    def test_directions_are_independent(self):
        self.algorithm.grade(self.card, REVERSE, 4, TODAY)
        assert self.card.reverse_repetition == 1
        assert self.card.regular_repetition == 0
        assert self.card.next_regular_due == TODAY
        assert self.card.next_reverse_due == TODAY + timedelta(days=1)

    def test_failed_grade_ends_session_and_reschedules_tomorrow(self):
        """A failed SM-2 grade ends the session, unlike the "again" answer of
        the constant-coefficient policy. The asymmetry is intentional."""
        self.algorithm.grade(self.card, REGULAR, 4, TODAY)
        self.algorithm.grade(self.card, REGULAR, 4, TODAY)
        out = self.algorithm.grade(self.card, REGULAR, 0, TODAY)
        assert out.session_done is True
        assert out.due == TODAY + timedelta(days=1)
        assert self.card.regular_repetition == 0
        assert self.card.regular_interval == 1
        assert self.card.regular_incorrect_count == 1

    def test_incorrect_threshold_restores_initial_easiness(self):
        self.algorithm.grade(self.card, REGULAR, 2, TODAY)  # grade 3 lowers easiness
        assert self.card.regular_easiness == pytest.approx(2.36)
        for _ in range(3):
            self.algorithm.grade(self.card, REGULAR, 1, TODAY)
        assert self.card.regular_incorrect_count == 0
        assert self.card.regular_easiness == 2.5

    def test_invalid_action_index_is_fatal(self):
        with pytest.raises(InvalidActionError):
            self.algorithm.grade(self.card, REGULAR, 5, TODAY)
        with pytest.raises(IndexError):
            self.algorithm.grade(self.card, REGULAR, -1, TODAY)
        with pytest.raises(InvalidActionError):
            self.algorithm.grade(self.card, REGULAR, 2.0, TODAY)
        assert self.card.regular_repetition == 0

    def test_wrong_card_variant_is_fatal(self):
        card = ConstantCoefficientAlgorithm().create_card("a", "b", today=TODAY)
        with pytest.raises(CardVariantMismatchError):
            self.algorithm.grade(card, REGULAR, 4, TODAY)


class TestConstantCoefficientAlgorithm:
    def setup_method(self):
        self.algorithm = ConstantCoefficientAlgorithm()
        self.card = self.algorithm.create_card("die Katze", "cat", today=TODAY)

    def test_create_card(self):
        assert isinstance(self.card, ConstantCoefficientCard)
        assert self.card.is_new is True
        for d in Direction:
            assert self.card.state(d, "base_time") == 1.0
            assert self.card.state(d, "incorrect_count") == 0
            assert self.card.due_date(d) == TODAY

    def test_action_counts(self):
        assert len(self.algorithm.actions(REGULAR)) == 4
        assert len(self.algorithm.actions(REVERSE)) == 2

    def test_correct_answer_floors_base_time(self):
        self.card.regular_base_time = 10.0
        out = self.algorithm.grade(self.card, REGULAR, 1, TODAY)  # coefficient2 = 0.5
        assert self.card.regular_base_time == 5.0
        assert out.due == TODAY + timedelta(days=5)
        assert out.session_done is True

    def test_reverse_correct_answer(self):
        algorithm = ConstantCoefficientAlgorithm(reverse_coefficient2=0.5)
        self.card.reverse_base_time = 10.0
        out = algorithm.grade(self.card, REVERSE, 1, TODAY)
        assert out.due == TODAY + timedelta(days=5)

    def test_base_time_stays_fractional(self):
        self.card.regular_base_time = 3.0
        self.algorithm.grade(self.card, REGULAR, 3, TODAY)  # x1.5
        assert self.card.regular_base_time == 4.5
        assert self.card.next_regular_due == TODAY + timedelta(days=4)

    def test_correct_answer_schedules_at_least_one_day(self):
        out = self.algorithm.grade(self.card, REGULAR, 1, TODAY)  # 1.0 * 0.5
        assert self.card.regular_base_time == 0.5
        assert out.due == TODAY + timedelta(days=1)

    def test_correct_answer_keeps_incorrect_count(self):
        self.card.regular_incorrect_count = 2
        self.algorithm.grade(self.card, REGULAR, 2, TODAY)
        assert self.card.regular_incorrect_count == 2

    def test_incorrect_answer_keeps_card_in_session(self):
        out = self.algorithm.grade(self.card, REGULAR, 0, TODAY)
        assert out.session_done is False
        assert out.due == TODAY
        assert self.card.regular_base_time == 0.25
        assert self.card.regular_incorrect_count == 1

    def test_incorrect_threshold_resets_direction(self):
        algorithm = ConstantCoefficientAlgorithm(incorrect_threshold=2)
        algorithm.grade(self.card, REGULAR, 0, TODAY)
        algorithm.grade(self.card, REGULAR, 0, TODAY)
        assert self.card.regular_incorrect_count == 0
        assert self.card.regular_base_time == 1.0

    def test_invalid_action_index_is_not_clamped(self):
        with pytest.raises(InvalidActionError):
            self.algorithm.grade(self.card, REVERSE, 99, TODAY)
        with pytest.raises(ProgrammingError):
            self.algorithm.grade(self.card, REVERSE, 2, TODAY)
        with pytest.raises(InvalidActionError):
            self.algorithm.grade(self.card, REGULAR, 1.0, TODAY)
        assert self.card.regular_base_time == 1.0

    def test_wrong_card_variant_is_fatal(self):
        card = SuperMemo2Algorithm().create_card("a", "b", today=TODAY)
        with pytest.raises(CardVariantMismatchError):
            self.algorithm.grade(card, REGULAR, 1, TODAY)


@pytest.mark.parametrize("seed", range(5))
def test_random_grade_sequences_respect_floors(seed):
    rng = random.Random(seed)
    day = TODAY
    for algorithm in (ConstantCoefficientAlgorithm(incorrect_threshold=50), SuperMemo2Algorithm()):
        card = algorithm.create_card("x", "y", today=day)
        for _ in range(200):
            d = rng.choice(list(Direction))
            action = rng.randrange(len(algorithm.actions(d)))
            out = algorithm.grade(card, d, action, day)
            assert out.due >= day
            assert card.state(d, "incorrect_count") >= 0
            if isinstance(card, ConstantCoefficientCard):
                assert card.state(d, "base_time") >= 0.01
            else:
                assert card.state(d, "repetition") >= 0
                assert card.state(d, "interval") >= 1
                assert card.state(d, "easiness") >= 1.3


class TestLongStreaks:
    def test_sm2_perfect_streak_stays_on_calendar(self):
        algorithm = SuperMemo2Algorithm()
        card = algorithm.create_card("x", "y", today=TODAY)
        for _ in range(50):
            out = algorithm.grade(card, REGULAR, 4, TODAY)
        assert card.regular_interval == MAX_INTERVAL
        assert out.due == TODAY + timedelta(days=MAX_INTERVAL)
        assert card.regular_repetition == 50

    def test_constant_coefficient_excellent_streak_stays_on_calendar(self):
        algorithm = ConstantCoefficientAlgorithm()
        card = algorithm.create_card("x", "y", today=TODAY)
        for _ in range(100):
            out = algorithm.grade(card, REGULAR, 3, TODAY)
        assert card.regular_base_time == MAX_BASE_TIME
        assert out.due == TODAY + timedelta(days=MAX_INTERVAL)

    def test_due_date_capped_at_calendar_end(self):
        algorithm = SuperMemo2Algorithm()
        card = algorithm.create_card("x", "y", today=TODAY)
        card.regular_repetition = 5
        card.regular_interval = 30000
        late = date.max - timedelta(days=10)
        out = algorithm.grade(card, REGULAR, 4, late)
        assert out.due == date.max
        assert card.regular_repetition == 6


class TestConfiguration:
    def test_defaults(self):
        assert ConstantCoefficientAlgorithm().hyperparameters() == {
            "coefficient1": 0.25,
            "coefficient2": 0.5,
            "coefficient3": 1.0,
            "coefficient4": 1.5,
            "incorrect_threshold": 5,
            "reverse_coefficient1": 0.25,
            "reverse_coefficient2": 1.5,
            "reverse_incorrect_threshold": 5,
        }
        assert SuperMemo2Algorithm().hyperparameters()["initial_easiness"] == 2.5

    @pytest.mark.parametrize(
        "params",
        [
            {"coefficient1": 0},
            {"coefficient1": 1.0},
            {"coefficient2": -0.5},
            {"incorrect_threshold": 0},
            {"incorrect_threshold": 2.5},
            {"reverse_coefficient2": None},
            {"reverse_incorrect_threshold": True},
        ],
    )
    def test_invalid_constant_coefficient_params(self, params):
        with pytest.raises(ConfigurationError):
            ConstantCoefficientAlgorithm(**params)

    def test_invalid_supermemo2_params(self):
        with pytest.raises(ConfigurationError):
            SuperMemo2Algorithm(initial_easiness=1.2)
        with pytest.raises(ValueError):
            SuperMemo2Algorithm(reverse_incorrect_threshold=0)

    def test_reconfigure_returns_new_instance(self):
        algorithm = SuperMemo2Algorithm()
        changed = algorithm.reconfigure(incorrect_threshold=4)
        assert changed.incorrect_threshold == 4
        assert algorithm.incorrect_threshold == 3

    def test_reconfigure_validates(self):
        with pytest.raises(ConfigurationError):
            SuperMemo2Algorithm().reconfigure(initial_easiness=0.5)
        with pytest.raises(ConfigurationError):
            SuperMemo2Algorithm().reconfigure(bogus=1)

    def test_hyperparameter_descriptions(self):
        names = [name for name, _ in SuperMemo2Algorithm.hyperparameter_descriptions()]
        assert names == [
            "initial_easiness",
            "incorrect_threshold",
            "reverse_initial_easiness",
            "reverse_incorrect_threshold",
        ]

    def test_registry(self):
        assert algorithm_names() == ["constant_coefficient", "supermemo2"]
        algorithm = build_algorithm("constant_coefficient", {"coefficient4": 2.0})
        assert isinstance(algorithm, ConstantCoefficientAlgorithm)
        assert algorithm.coefficient4 == 2.0

    def test_registry_errors(self):
        with pytest.raises(ConfigurationError):
            build_algorithm("leitner")
        with pytest.raises(ConfigurationError):
            build_algorithm("supermemo2", {"bogus": 1})

    def test_card_created_at(self):
        created = datetime(2024, 3, 10, 8, 30, tzinfo=timezone.utc)
        card = SuperMemo2Algorithm().create_card("a", "b", created_at=created)
        assert card.created_at == created
        assert card.next_regular_due == date(2024, 3, 10)
