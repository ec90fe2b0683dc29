"""Error taxonomy for formula editing and evaluation."""
from typing import Optional


class FormulaSyntaxError(SyntaxError):
    """
    Raised when a token sequence cannot be parsed as an arithmetic expression.

    :param str message: Human readable description of the problem
    :param int index: Position of the offending token in the sequence
    """

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message if index is None else f"{message} (token {index})")
        self.index = index


class SuggestionUnavailable(RuntimeError):
    """Raised when the suggestion service fails or does not answer in time."""


class PersistenceFailure(RuntimeError):
    """Raised when the token sequence cannot be saved to or loaded from a store."""
