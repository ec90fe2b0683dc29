"""Evaluate formula token sequences safely."""
from collections.abc import Callable as ABCCallable
import math
import operator
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple

from formula_tags.common.errors import FormulaSyntaxError
from formula_tags.common.tokens import NumberToken, OperatorToken, Token, VariableToken


# Type alias for operator functions (taking two floats, returning a float)
OperatorFn: ABCCallable[[float, float], float] = Callable[[float, float], float]


def _divide(a: float, b: float) -> float:
    """Divide with IEEE 754 results instead of ZeroDivisionError."""
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or math.isnan(a):
            return math.nan
        # copysign keeps the sign of a negative zero divisor
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _is_odd_integer(x: float) -> bool:
    return math.isfinite(x) and x.is_integer() and math.fmod(x, 2.0) != 0


def _power(a: float, b: float) -> float:
    """Raise to a power with IEEE 754 results for overflow and domain errors."""
    try:
        return math.pow(a, b)
    except OverflowError:
        if a < 0 and _is_odd_integer(b):
            return -math.inf
        return math.inf
    except ValueError:
        # math.pow refuses 0 ** negative and negative ** fraction
        if a == 0:
            return math.copysign(math.inf, a) if _is_odd_integer(b) else math.inf
        return math.nan


# Mapping of binary operator symbols to (precedence, right associative, function)
OPERATORS: dict[str, Tuple[int, bool, OperatorFn]] = {
    "+": (1, False, operator.add),
    "-": (1, False, operator.sub),
    "*": (2, False, operator.mul),
    "/": (2, False, _divide),
    "^": (4, True, _power),
}

# Prefix signs bind tighter than * and / but looser than ^, so -2^2 == -4
UNARY_PRECEDENCE: int = 3
UNARY_OPERATORS: dict[str, ABCCallable[[float], float]] = {
    "+": operator.pos,
    "-": operator.neg,
}


class LexItem(NamedTuple):
    """
    A token reduced to what the parser needs.

    ``kind`` is one of ``operand``, ``binary``, ``unary``, ``lparen``, ``rparen``.
    ``index`` is the position of the originating token in the sequence.
    """

    kind: str
    index: int
    value: float = 0.0
    symbol: Optional[str] = None


class FormulaEvaluator:
    """
    Evaluate a sequence of formula tokens as an arithmetic expression.

    Design constraints:
        - No eval(), no dynamic code execution
        - Only the fixed grammar of numbers, variables and + - * / ^ ( )
        - Malformed sequences raise FormulaSyntaxError naming the offending token

    Algorithm:
        1. Map every token to a lexical item (operand, operator or parenthesis)
        2. Validate and convert to Reverse Polish Notation (RPN) using Shunting-yard
        3. Evaluate RPN using a stack

    Examples:
        - Tokens: ( 1 + 2 ) ^ 2
        - Corresponding RPN: 1 2 + 2 ^
    """

    @staticmethod
    def tokenize(sequence: Iterable[Token]) -> List[LexItem]:
        """
        Map formula tokens to lexical items.

        Variables contribute their value, which defaults to 0 when it was never resolved.

        :param Iterable[Token] sequence: Formula tokens in display order

        :return: Lexical items carrying their sequence index
        :rtype: List[LexItem]
        """
        items: List[LexItem] = []
        for index, token in enumerate(sequence):
            if isinstance(token, (NumberToken, VariableToken)):
                items.append(LexItem("operand", index, float(token.value)))
            elif isinstance(token, OperatorToken):
                if token.symbol == "(":
                    items.append(LexItem("lparen", index, symbol="("))
                elif token.symbol == ")":
                    items.append(LexItem("rparen", index, symbol=")"))
                else:
                    items.append(LexItem("binary", index, symbol=token.symbol))
            else:
                raise TypeError(f"Unsupported token at position {index}: {token!r}")
        return items

    @staticmethod
    def _precedence(item: LexItem) -> int:
        if item.kind == "unary":
            return UNARY_PRECEDENCE
        return OPERATORS[item.symbol][0]

    @staticmethod
    def to_rpn(items: List[LexItem]) -> List[LexItem]:
        """
        Validate lexical items and convert them to Reverse Polish Notation.

        A ``+`` or ``-`` found where an operand is expected becomes a unary sign.

        :param List[LexItem] items: Lexical items in infix order

        :return: Items in RPN order, parentheses removed
        :rtype: List[LexItem]
        :raises FormulaSyntaxError: On a missing operand or operator, or unbalanced parentheses
        """
        output: List[LexItem] = []
        stack: List[LexItem] = []
        # Alternates between operand position and operator position
        expect_operand = True

        for item in items:
            if item.kind == "operand":
                if not expect_operand:
                    raise FormulaSyntaxError("Missing operator before operand", item.index)
                output.append(item)
                expect_operand = False

            elif item.kind == "lparen":
                if not expect_operand:
                    raise FormulaSyntaxError("Missing operator before '('", item.index)
                stack.append(item)

            elif item.kind == "rparen":
                if expect_operand:
                    raise FormulaSyntaxError("Missing operand before ')'", item.index)
                while stack and stack[-1].kind != "lparen":
                    output.append(stack.pop())
                if not stack:
                    raise FormulaSyntaxError("Unbalanced parentheses: ')' has no matching '('", item.index)
                stack.pop()

            elif expect_operand:
                if item.symbol not in UNARY_OPERATORS:
                    raise FormulaSyntaxError(f"Missing operand before '{item.symbol}'", item.index)
                # Prefix operators never pop the stack
                stack.append(item._replace(kind="unary"))

            else:
                prec, right_assoc, _ = OPERATORS[item.symbol]
                while stack and stack[-1].kind != "lparen":
                    top_prec = FormulaEvaluator._precedence(stack[-1])
                    if top_prec > prec or (top_prec == prec and not right_assoc):
                        output.append(stack.pop())
                    else:
                        break
                stack.append(item)
                expect_operand = True

        if expect_operand:
            if not items:
                raise FormulaSyntaxError("Empty formula")
            raise FormulaSyntaxError("Missing operand at end of formula", items[-1].index)

        while stack:
            top = stack.pop()
            if top.kind == "lparen":
                raise FormulaSyntaxError("Unbalanced parentheses: '(' is never closed", top.index)
            output.append(top)

        return output

    @staticmethod
    def evaluate(sequence: Iterable[Token]) -> float:
        """
        Evaluate a formula token sequence.

        An empty sequence evaluates to 0. Division by zero and overflow follow
        IEEE 754 and yield infinities or NaN rather than errors.

        :param Iterable[Token] sequence: Formula tokens in display order

        :return: Computed result as float
        :rtype: float
        :raises FormulaSyntaxError: If the sequence is malformed
        """
        items: List[LexItem] = FormulaEvaluator.tokenize(sequence)

        if not items:
            return 0.0

        rpn: List[LexItem] = FormulaEvaluator.to_rpn(items)

        # Evaluate RPN using a stack
        stack: List[float] = []
        for item in rpn:
            if item.kind == "operand":
                stack.append(item.value)
            elif item.kind == "unary":
                stack.append(UNARY_OPERATORS[item.symbol](stack.pop()))
            else:
                b: float = stack.pop()
                a: float = stack.pop()
                stack.append(OPERATORS[item.symbol][2](a, b))

        if len(stack) != 1:
            raise FormulaSyntaxError("Invalid formula (remaining operands)", rpn[-1].index)

        return stack[0]
