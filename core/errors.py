"""
DeckRecall – Error taxonomy
============================
Configuration errors surface to whoever configures an algorithm.
Programming errors abort the current operation and are never clamped.
"""


class DeckRecallError(Exception):
    """Base class for every error raised by DeckRecall."""


class ConfigurationError(DeckRecallError, ValueError):
    """An algorithm hyperparameter is missing or out of range."""


class ProgrammingError(DeckRecallError):
    """The caller broke a contract; the operation cannot continue."""


class InvalidActionError(ProgrammingError, IndexError):
    """An action index outside the algorithm's action list."""


class CardVariantMismatchError(ProgrammingError, TypeError):
    """A card was handed to an algorithm that does not own its variant."""


class UnknownStrategyError(ProgrammingError, KeyError):
    """A strategy index with no counters in the deck statistics."""


class PersistenceError(DeckRecallError):
    """Saving to the database failed; nothing was applied."""
