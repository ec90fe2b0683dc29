"""Test token models NumberToken, VariableToken and OperatorToken."""
import math

from pydantic import ValidationError
import pytest

from formula_tags.common.config import EditorSettings
from formula_tags.common.tokens import (
    TOKEN_LIST_ADAPTER,
    NumberToken,
    OperatorToken,
    VariableToken,
    parse_decimal,
)


@pytest.mark.parametrize("text,expected", [
    ("42", 42.0),
    ("-8.9", -8.9),
    ("+3", 3.0),
    (" 7 ", 7.0),
    (".5", 0.5),
    ("5.", 5.0),
    ("1e3", 1000.0),
])
def test_parse_decimal_numbers(text: str, expected: float) -> None:
    """Decimal literals parse to their float value."""
    assert parse_decimal(text) == expected


@pytest.mark.parametrize("text", ["revenue", "12abc", "inf", "nan", "1_000", "", "-", "1e999", "0x10"])
def test_parse_decimal_rejects_non_literals(text: str) -> None:
    """Anything but a finite decimal literal is not a number."""
    assert parse_decimal(text) is None


def test_number_defaults_to_zero() -> None:
    """A number without value is 0."""
    assert NumberToken().value == 0.0


@pytest.mark.parametrize("value", [math.inf, -math.inf, math.nan])
def test_number_rejects_non_finite(value: float) -> None:
    """Numbers must be finite."""
    with pytest.raises(ValidationError):
        NumberToken(value=value)


def test_operator_rejects_unknown_symbol() -> None:
    """Only the seven operator symbols are accepted."""
    with pytest.raises(ValidationError):
        OperatorToken(symbol="%")


def test_tokens_are_frozen() -> None:
    """Tokens cannot be modified once created."""
    token = NumberToken(value=1)
    with pytest.raises(ValidationError):
        token.value = 2


def test_variable_ids_are_distinct() -> None:
    """Each variable gets its own identifier."""
    ids = {VariableToken(name="x").id for _ in range(100)}
    assert len(ids) == 100


def test_variable_equality_ignores_id() -> None:
    """Independently created variables with the same content compare equal."""
    first = VariableToken(name="revenue", value=10)
    second = VariableToken(name="revenue", value=10)
    assert first.id != second.id
    assert first == second
    assert hash(first) == hash(second)
    assert first != VariableToken(name="revenue", value=11)


def test_variable_requires_name() -> None:
    """Variable names cannot be empty."""
    with pytest.raises(ValidationError):
        VariableToken(name="")


@pytest.mark.parametrize("token,label", [
    (NumberToken(value=3), "3"),
    (NumberToken(value=2.5), "2.5"),
    (VariableToken(name="cost"), "cost"),
    (OperatorToken(symbol="^"), "^"),
])
def test_labels(token, label: str) -> None:
    """Labels are the text displayed on each tag."""
    assert token.label == label


def test_records_are_tagged_by_kind() -> None:
    """Serialized tokens carry their kind and kind-specific fields."""
    variable = VariableToken(name="x", value=2)
    records = TOKEN_LIST_ADAPTER.dump_python([NumberToken(value=1), variable, OperatorToken(symbol="+")], mode="json")
    assert records[0] == {"kind": "number", "value": 1.0}
    assert records[1] == {"kind": "variable", "id": variable.id, "name": "x", "category": "custom", "value": 2.0}
    assert records[2] == {"kind": "operator", "symbol": "+"}


def test_unknown_kind_is_rejected() -> None:
    """Records of an unknown kind do not validate."""
    with pytest.raises(ValidationError):
        TOKEN_LIST_ADAPTER.validate_python([{"kind": "function", "name": "sin"}])


def test_settings_validation() -> None:
    """Editor settings are validated."""
    assert EditorSettings().lookup_timeout == 2.0
    with pytest.raises(ValidationError):
        EditorSettings(lookup_timeout=0)
    with pytest.raises(ValidationError):
        EditorSettings(max_visible_suggestions=0)
