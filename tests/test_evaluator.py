"""Test class FormulaEvaluator."""
import math
from typing import List

import pytest

from formula_tags.common.errors import FormulaSyntaxError
from formula_tags.common.evaluator import FormulaEvaluator
from formula_tags.common.tokens import NumberToken, OperatorToken, Token, VariableToken


def tokens(*items) -> List[Token]:
    """Build a sequence: numbers become NumberToken, strings become OperatorToken."""
    return [
        item if isinstance(item, VariableToken)
        else OperatorToken(symbol=item) if isinstance(item, str)
        else NumberToken(value=item)
        for item in items
    ]


def test_tokenize_keeps_sequence_index() -> None:
    """Lexical items remember where their token sits in the sequence."""
    items = FormulaEvaluator.tokenize(tokens("(", 1, "+", 2, ")"))
    assert [item.kind for item in items] == ["lparen", "operand", "binary", "operand", "rparen"]
    assert [item.index for item in items] == [0, 1, 2, 3, 4]


def test_to_rpn_basic() -> None:
    """to_rpn orders operands and operators by precedence."""
    rpn = FormulaEvaluator.to_rpn(FormulaEvaluator.tokenize(tokens(3, "+", 4, "*", 2)))
    assert [item.symbol or item.value for item in rpn] == [3.0, 4.0, 2.0, "*", "+"]


def test_to_rpn_marks_unary_sign() -> None:
    """A leading minus is turned into a unary operator."""
    rpn = FormulaEvaluator.to_rpn(FormulaEvaluator.tokenize(tokens("-", 2, "*", 3)))
    assert [item.kind for item in rpn] == ["operand", "unary", "operand", "binary"]


@pytest.mark.parametrize("sequence,expected", [
    (tokens(3, "+", 4, "*", 2), 11.0),
    (tokens("(", 1, "+", 2, ")", "^", 2), 9.0),
    (tokens(10, "-", 2, "-", 3), 5.0),
    (tokens(8, "/", 2, "/", 2), 2.0),
    (tokens(2, "^", 3, "^", 2), 512.0),
    (tokens("-", 2, "^", 2), -4.0),
    (tokens(2, "^", "-", 1), 0.5),
    (tokens("-", 2, "*", 3), -6.0),
    (tokens(2, "*", "-", 3), -6.0),
    (tokens("-", "-", 3), 3.0),
    (tokens("+", 3), 3.0),
    (tokens("(", "-", 3, ")", "*", 2), -6.0),
    (tokens("(", "(", 7, ")", ")"), 7.0),
    (tokens(7, "+", 3, "*", 2, "-", 4, "/", 2), 11.0),
])
def test_evaluate_valid(sequence: List[Token], expected: float) -> None:
    """Evaluate respects precedence, associativity and unary signs."""
    assert FormulaEvaluator.evaluate(sequence) == expected


def test_evaluate_empty_sequence_is_zero() -> None:
    """An empty formula evaluates to 0."""
    assert FormulaEvaluator.evaluate([]) == 0.0


def test_evaluate_uses_variable_values() -> None:
    """Variables contribute their value, unresolved ones count as 0."""
    revenue = VariableToken(name="revenue", value=100)
    unknown = VariableToken(name="unknown")
    assert FormulaEvaluator.evaluate([revenue, OperatorToken(symbol="-"), NumberToken(value=40)]) == 60.0
    assert FormulaEvaluator.evaluate([unknown, OperatorToken(symbol="+"), NumberToken(value=5)]) == 5.0


def test_evaluate_variable_names_are_never_executed() -> None:
    """Names that look like code are plain labels with a value."""
    payload = VariableToken(name="__import__('os').system('echo hi')", value=2)
    assert FormulaEvaluator.evaluate([payload, OperatorToken(symbol="*"), NumberToken(value=3)]) == 6.0


@pytest.mark.parametrize("sequence,expected", [
    (tokens(1, "/", 0), math.inf),
    (tokens("-", 1, "/", 0), -math.inf),
    (tokens(10, "^", 400), math.inf),
    (tokens("-", 10, "^", 401), -math.inf),
    (tokens(0, "^", "-", 1), math.inf),
])
def test_evaluate_infinities(sequence: List[Token], expected: float) -> None:
    """Division by zero and overflow give IEEE 754 infinities."""
    assert FormulaEvaluator.evaluate(sequence) == expected


@pytest.mark.parametrize("sequence", [
    tokens(0, "/", 0),
    tokens("(", "-", 8, ")", "^", 0.5),
])
def test_evaluate_nan(sequence: List[Token]) -> None:
    """Undefined results are NaN, not errors."""
    assert math.isnan(FormulaEvaluator.evaluate(sequence))


@pytest.mark.parametrize("sequence,index", [
    (tokens("+"), 0),                 # Lone operator
    (tokens(3, "+"), 1),              # Trailing operator
    (tokens(3, "*", "/", 2), 2),      # Missing operand between operators
    (tokens("*", 3), 0),              # Leading binary operator
    (tokens("(", 1, "+", 2), 0),      # Unclosed parenthesis
    (tokens(1, "+", 2, ")"), 3),      # Unopened parenthesis
    (tokens("(", ")"), 1),            # Empty parentheses
    (tokens(3, 4), 1),                # Two operands in a row
    (tokens(2, "(", 3, ")"), 1),      # Implicit multiplication
    (tokens("(", 1, ")", 2), 3),      # Operand after closing parenthesis
])
def test_evaluate_invalid_sequence(sequence: List[Token], index: int) -> None:
    """Evaluate raises FormulaSyntaxError naming the offending token."""
    with pytest.raises(FormulaSyntaxError) as exc_info:
        FormulaEvaluator.evaluate(sequence)
    assert exc_info.value.index == index
    assert isinstance(exc_info.value, SyntaxError)


def test_evaluate_is_deterministic() -> None:
    """Evaluating the same sequence twice gives the same result."""
    sequence = tokens("(", 1.5, "+", 2, ")", "*", 3, "/", 7)
    assert FormulaEvaluator.evaluate(sequence) == FormulaEvaluator.evaluate(sequence)


def test_to_rpn_rejects_empty_items() -> None:
    """to_rpn on its own refuses an empty item list."""
    with pytest.raises(FormulaSyntaxError):
        FormulaEvaluator.to_rpn([])
