"""Pydantic models for the tokens of a formula sequence."""
import math
import re
from typing import Annotated, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# The seven symbols a user can type as operator tags
OPERATOR_SYMBOLS: tuple[str, ...] = ("+", "-", "*", "/", "^", "(", ")")

OperatorSymbol = Literal["+", "-", "*", "/", "^", "(", ")"]

# A plain decimal literal: optional sign, digits with optional fraction, optional exponent
DECIMAL_PATTERN: re.Pattern = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def parse_decimal(text: str) -> Optional[float]:
    """
    Parse free text as a finite decimal number.

    Only the whole (stripped) text counts: ``"12abc"``, ``"inf"`` or ``"1_000"``
    are not numbers, even though ``float()`` accepts some of them.

    :param str text: Raw text typed by the user

    :return: The parsed value, or None if the text is not a finite decimal literal
    :rtype: Optional[float]
    """
    candidate = text.strip()
    if not DECIMAL_PATTERN.match(candidate):
        return None
    value = float(candidate)
    # Literals such as 1e999 overflow to infinity
    return value if math.isfinite(value) else None


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


class NumberToken(BaseModel):
    """A literal number tag."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    value: float = Field(default=0.0, allow_inf_nan=False, description="Finite numeric value")

    @property
    def label(self) -> str:
        return _format_number(self.value)


class VariableToken(BaseModel):
    """
    A named variable tag.

    ``id`` identifies this tag instance and survives every edit of the sequence,
    while list positions shift. It is deliberately left out of equality: two
    variables with the same name, category and value compare equal.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["variable"] = "variable"
    id: str = Field(default_factory=lambda: uuid4().hex, min_length=1, description="Unique tag identifier")
    name: str = Field(..., min_length=1, description="Display label")
    category: str = Field(default="custom", description="Category reported by the suggestion service")
    value: float = Field(default=0.0, allow_inf_nan=False, description="Numeric contribution to evaluation")

    @property
    def label(self) -> str:
        return self.name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VariableToken):
            return NotImplemented
        return (self.name, self.category, self.value) == (other.name, other.category, other.value)

    def __hash__(self) -> int:
        return hash((self.kind, self.name, self.category, self.value))


class OperatorToken(BaseModel):
    """An operator or parenthesis tag."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["operator"] = "operator"
    symbol: OperatorSymbol = Field(..., description="One of + - * / ^ ( )")

    @property
    def label(self) -> str:
        return self.symbol


Token = Annotated[Union[NumberToken, VariableToken, OperatorToken], Field(discriminator="kind")]

# Validates and serializes whole sequences as tagged records
TOKEN_LIST_ADAPTER: TypeAdapter = TypeAdapter(List[Token])
