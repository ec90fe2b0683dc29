"""Ordered, index-addressable container of formula tokens."""
import threading
from typing import Iterable, Iterator, List, Tuple

from formula_tags.common.tokens import NumberToken, OperatorToken, Token, VariableToken


class FormulaSequence:
    """
    The tokens of a formula, in display and evaluation order.

    Indices shift on every insertion and removal; only ``VariableToken.id`` is a
    stable identifier. Every mutation runs under ``lock`` so that one writer at a
    time sees consistent indices. Callers composing several mutations hold
    ``lock`` themselves (it is re-entrant).
    """

    def __init__(self, tokens: Iterable[Token] = ()):
        self.lock: threading.RLock = threading.RLock()
        self._tokens: List[Token] = [self._check_token(token) for token in tokens]

    @staticmethod
    def _check_token(token: Token) -> Token:
        if not isinstance(token, (NumberToken, VariableToken, OperatorToken)):
            raise TypeError(f"Not a formula token: {token!r}")
        return token

    def check_index(self, index: int) -> None:
        """Raise IndexError unless ``index`` addresses an existing token."""
        # Negative indices are rejected, unlike list indexing
        if not 0 <= index < len(self._tokens):
            raise IndexError(f"Token index {index} out of range for sequence of length {len(self._tokens)}")

    def append(self, token: Token) -> None:
        """Add a token at the end of the sequence."""
        token = self._check_token(token)
        with self.lock:
            self._tokens.append(token)

    def remove_at(self, index: int) -> Token:
        """
        Remove the token at ``index`` and shift the following tokens down.

        :param int index: Position in ``[0, len)``

        :return: The removed token
        :rtype: Token
        :raises IndexError: If ``index`` is out of range; the sequence is left unchanged
        """
        with self.lock:
            self.check_index(index)
            return self._tokens.pop(index)

    def replace_at(self, index: int, token: Token) -> Token:
        """
        Replace the token at ``index``.

        :param int index: Position in ``[0, len)``
        :param Token token: Replacement token

        :return: The replaced token
        :rtype: Token
        :raises IndexError: If ``index`` is out of range; the sequence is left unchanged
        """
        token = self._check_token(token)
        with self.lock:
            self.check_index(index)
            previous = self._tokens[index]
            self._tokens[index] = token
            return previous

    def set_tokens(self, tokens: Iterable[Token]) -> None:
        """Replace the whole content of the sequence."""
        checked = [self._check_token(token) for token in tokens]
        with self.lock:
            self._tokens = checked

    def clear(self) -> None:
        with self.lock:
            self._tokens = []

    def snapshot(self) -> Tuple[Token, ...]:
        """Return an immutable copy of the current tokens."""
        with self.lock:
            return tuple(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __getitem__(self, index: int) -> Token:
        with self.lock:
            self.check_index(index)
            return self._tokens[index]

    def __iter__(self) -> Iterator[Token]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"FormulaSequence({' '.join(token.label for token in self.snapshot())!r})"
