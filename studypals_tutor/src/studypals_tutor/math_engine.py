"""
Math Engine

Finds `lhs = rhs` arithmetic statements in tutor responses, re-computes the
left-hand side with exact rational arithmetic and flags (and rewrites) wrong
right-hand sides. Also produces step-by-step reductions of an expression.

Statements the scanner cannot fully parse are skipped, not failed: a
response with no checkable statement is reported as valid.
"""

import logging
import re
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Number = Union[int, float]
Token = Union[Fraction, str]

MIN_TOLERANCE = Fraction(1, 10 ** 9)

_OPERATOR_ALIASES = {"×": "*", "÷": "/"}
_OPERATOR_NAMES = {"*": "Multiply", "/": "Divide", "+": "Add", "-": "Subtract"}
_HIGH_PRECEDENCE = ("*", "/")
_LOW_PRECEDENCE = ("+", "-")

_TOKEN_RE = re.compile(r"\s*(?:(?P<number>\d+(?:\.\d+)?)|(?P<symbol>[-+*/×÷()]))")

_NUM = r"\d+(?:\.\d+)?"
_OP = r"[-+*/×÷]"
_ATOM = rf"(?:{_NUM}|\(\s*-?{_NUM}(?:\s*{_OP}\s*-?{_NUM})*\s*\))"
_STATEMENT_RE = re.compile(
    # must not start in the middle of a larger expression or a comma-grouped number
    r"(?<![\w.,)(=^+*/×÷-])(?<![-+*/×÷=^]\s)"
    rf"(?P<lhs>-?{_ATOM}(?:\s*{_OP}\s*-?{_ATOM})+)"
    rf"\s*=\s*(?P<rhs>-?{_NUM})"
    r"(?![\w]|\.\d|,\d|\s*[-+*/×÷^(]\s*\d)"
)
_MARKDOWN_EMPHASIS_RE = re.compile(r"\*\*|__|`")


class MathParseError(ValueError):
    """Raised when an expression cannot be tokenized or reduced."""


@dataclass
class SolutionStep:
    """One reduction step: the expression after the step and the value just computed."""
    description: str
    expression: str
    result: Number

    def __str__(self) -> str:
        return f"{self.description}: {self.expression}"


@dataclass
class MathStatement:
    """An `lhs = rhs` assertion found in text."""
    text: str
    lhs: str
    rhs: str
    start: int
    end: int
    rhs_start: int
    rhs_end: int
    computed: Fraction
    claimed: Fraction
    correct: bool

    @property
    def correct_value(self) -> str:
        return format_number(self.computed)

    @property
    def corrected_statement(self) -> str:
        offset = self.rhs_start - self.start
        return self.text[:offset] + self.correct_value + self.text[offset + len(self.rhs):]


@dataclass
class MathValidationResult:
    """Outcome of checking every arithmetic statement in one text."""
    valid: bool
    issues: List[str] = field(default_factory=list)
    statements: List[MathStatement] = field(default_factory=list)
    corrected_text: Optional[str] = None
    calculated_values: Dict[str, Number] = field(default_factory=dict)

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)


def format_number(value: Fraction) -> str:
    if value.denominator == 1:
        return str(value.numerator)
    return f"{float(value):.6f}".rstrip("0").rstrip(".")


def _to_number(value: Fraction) -> Number:
    return value.numerator if value.denominator == 1 else float(value)


def tokenize(expression: str) -> List[Token]:
    """Split an expression into Fraction literals, operators and parentheses."""
    tokens: List[Token] = []
    pos = 0
    text = expression.strip()
    negate_next = False

    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            raise MathParseError(f"Unexpected character at position {pos}: {text[pos]!r}")
        pos = match.end()

        if match.group("number") is not None:
            value = Fraction(match.group("number"))
            tokens.append(-value if negate_next else value)
            negate_next = False
            continue

        symbol = _OPERATOR_ALIASES.get(match.group("symbol"), match.group("symbol"))
        unary_position = not tokens or tokens[-1] == "(" or tokens[-1] in _OPERATOR_NAMES
        if symbol == "-" and unary_position and not negate_next:
            negate_next = True
            continue
        if negate_next:
            raise MathParseError("Unary minus is only supported before a number")
        tokens.append(symbol)

    if negate_next:
        raise MathParseError("Expression ends with an operator")
    _check_syntax(tokens)
    return tokens


def _check_syntax(tokens: List[Token]) -> None:
    if not tokens:
        raise MathParseError("Empty expression")

    depth = 0
    expect_operand = True
    for token in tokens:
        if token == "(":
            if not expect_operand:
                raise MathParseError("Missing operator before '('")
            depth += 1
        elif token == ")":
            if expect_operand:
                raise MathParseError("Missing operand before ')'")
            depth -= 1
            if depth < 0:
                raise MathParseError("Unmatched ')'")
        elif isinstance(token, Fraction):
            if not expect_operand:
                raise MathParseError("Missing operator between numbers")
            expect_operand = False
        else:
            if expect_operand:
                raise MathParseError(f"Operator {token!r} without a left operand")
            expect_operand = True

    if depth != 0:
        raise MathParseError("Unmatched '('")
    if expect_operand:
        raise MathParseError("Expression ends with an operator")


def render(tokens: List[Token]) -> str:
    out = ""
    for token in tokens:
        if token == "(":
            out += "("
        elif token == ")":
            out = out.rstrip() + ")"
        elif isinstance(token, Fraction):
            out += format_number(token)
        else:
            out = out.rstrip() + f" {token} "
    return out.strip()


def _apply(a: Fraction, op: str, b: Fraction) -> Fraction:
    if op == "*":
        return a * b
    if op == "/":
        if b == 0:
            raise MathParseError("Division by zero")
        return a / b
    if op == "+":
        return a + b
    return a - b


def _reduce(tokens: List[Token]) -> Tuple[List[SolutionStep], Fraction]:
    """
    Reduce tokens one operation at a time.

    Innermost parentheses first, then * and / left to right, then + and -
    left to right. Returns the steps taken and the exact final value.
    """
    tokens = list(tokens)
    steps: List[SolutionStep] = []

    while len(tokens) > 1:
        if "(" in tokens:
            lo = max(i for i, t in enumerate(tokens) if t == "(")
            hi = next(i for i in range(lo + 1, len(tokens)) if tokens[i] == ")")
            if hi - lo == 2:
                tokens = tokens[:lo] + [tokens[lo + 1]] + tokens[hi + 1:]
                continue
            lo += 1
        else:
            lo, hi = 0, len(tokens)

        region = tokens[lo:hi]
        idx = next((i for i, t in enumerate(region) if t in _HIGH_PRECEDENCE), None)
        if idx is None:
            idx = next((i for i, t in enumerate(region) if t in _LOW_PRECEDENCE), None)
        if idx is None:
            raise MathParseError(f"Cannot reduce {render(tokens)}")
        idx += lo

        a, op, b = tokens[idx - 1], tokens[idx], tokens[idx + 1]
        value = _apply(a, op, b)
        tokens = tokens[:idx - 1] + [value] + tokens[idx + 2:]

        pos = idx - 1
        if 0 < pos < len(tokens) - 1 and tokens[pos - 1] == "(" and tokens[pos + 1] == ")":
            tokens = tokens[:pos - 1] + [value] + tokens[pos + 2:]

        steps.append(SolutionStep(
            description=f"{_OPERATOR_NAMES[op]} {format_number(a)} {op} {format_number(b)}",
            expression=render(tokens),
            result=_to_number(value),
        ))

    final = tokens[0]
    if not steps:
        steps.append(SolutionStep(
            description="Evaluate expression",
            expression=render(tokens),
            result=_to_number(final),
        ))
    return steps, final


class MathEngine:
    """Mathematical statement validator and step-by-step solver."""

    def evaluate(self, expression: str) -> Fraction:
        """Exact value of an expression. Raises MathParseError if it cannot be parsed."""
        _, value = _reduce(tokenize(expression))
        return value

    def validate_calculation(self, expression: str, expected: Union[Number, str]) -> bool:
        """True if ``expression`` evaluates to ``expected``."""
        try:
            computed = self.evaluate(expression)
            claimed_text = str(expected).strip()
            return self._matches(computed, Fraction(claimed_text), claimed_text)
        except (MathParseError, ValueError, ZeroDivisionError) as e:
            logger.debug(f"[MathEngine] Could not validate {expression!r}: {e}")
            return False

    def extract_statements(self, text: str) -> List[MathStatement]:
        """Find and evaluate every checkable `lhs = rhs` statement in ``text``."""
        if not text:
            return []

        # Blank out markdown emphasis so "**2 + 2 = 4**" scans like plain text; offsets are kept
        scan_text = _MARKDOWN_EMPHASIS_RE.sub(lambda m: " " * len(m.group(0)), text)

        statements: List[MathStatement] = []
        for match in _STATEMENT_RE.finditer(scan_text):
            lhs = match.group("lhs").strip()
            rhs = match.group("rhs")
            try:
                computed = self.evaluate(lhs)
                claimed = Fraction(rhs)
            except MathParseError as e:
                logger.debug(f"[MathEngine] Skipping unparseable statement {match.group(0)!r}: {e}")
                continue

            start = match.start("lhs")
            statements.append(MathStatement(
                text=text[start:match.end("rhs")],
                lhs=lhs,
                rhs=rhs,
                start=start,
                end=match.end("rhs"),
                rhs_start=match.start("rhs"),
                rhs_end=match.end("rhs"),
                computed=computed,
                claimed=claimed,
                correct=self._matches(computed, claimed, rhs),
            ))
        return statements

    def validate_and_annotate(self, text: str) -> MathValidationResult:
        """
        Validate every arithmetic statement embedded in ``text``.

        Returns:
            MathValidationResult with one issue per wrong statement and the
            text rewritten with correct values (``corrected_text``)
        """
        statements = self.extract_statements(text)
        if not statements:
            return MathValidationResult(valid=True)

        logger.debug(f"🔢 [MathEngine] Checking {len(statements)} math statements")

        issues: List[str] = []
        calculated: Dict[str, Number] = {}
        for statement in statements:
            calculated[statement.lhs] = _to_number(statement.computed)
            if not statement.correct:
                issues.append(
                    f"{statement.lhs} = {statement.rhs} is incorrect; "
                    f"the correct value is {statement.correct_value}"
                )

        corrected_text = None
        if issues:
            corrected_text = text
            for statement in sorted(statements, key=lambda s: s.rhs_start, reverse=True):
                if not statement.correct:
                    corrected_text = (
                        corrected_text[:statement.rhs_start]
                        + statement.correct_value
                        + corrected_text[statement.rhs_end:]
                    )
            logger.info(f"🔢 [MathEngine] Found {len(issues)} incorrect statements")

        return MathValidationResult(
            valid=not issues,
            issues=issues,
            statements=statements,
            corrected_text=corrected_text,
            calculated_values=calculated,
        )

    def apply_corrections(self, text: str, result: MathValidationResult) -> str:
        """Rewrite the wrong statements of ``result`` wherever they still appear in ``text``."""
        for statement in result.statements:
            if not statement.correct:
                text = text.replace(statement.text, statement.corrected_statement)
        return text

    def solve_and_show_steps(self, expression: str) -> List[SolutionStep]:
        """
        Solve an expression step by step.

        Accepts a bare expression or an `lhs = rhs` equation; for an equation
        the left side is reduced and a final step compares it to the right side.
        The last step's result is always the computed answer. Unparseable input
        yields an empty list.
        """
        try:
            if "=" in expression:
                lhs, rhs = expression.split("=", 1)
                steps, value = _reduce(tokenize(lhs))
                claimed = self.evaluate(rhs)
                relation = "=" if value == claimed else "≠"
                steps.append(SolutionStep(
                    description="Verify against the right-hand side",
                    expression=f"{format_number(value)} {relation} {format_number(claimed)}",
                    result=_to_number(value),
                ))
            else:
                steps, _ = _reduce(tokenize(expression))
        except MathParseError as e:
            logger.debug(f"[MathEngine] Cannot solve {expression!r}: {e}")
            return []

        logger.debug(f"🔢 [MathEngine] Generated {len(steps)} solution steps")
        return steps

    @staticmethod
    def _matches(computed: Fraction, claimed: Fraction, claimed_text: str) -> bool:
        """
        Integers must match exactly and terminating decimals within MIN_TOLERANCE.
        A repeating decimal such as 10 / 3 may be rounded to the places shown.
        """
        if "." not in claimed_text:
            return computed == claimed
        if _terminates(computed):
            return abs(computed - claimed) <= MIN_TOLERANCE
        decimals = len(claimed_text.split(".", 1)[1])
        return abs(computed - claimed) <= Fraction(1, 2 * 10 ** decimals)


def _terminates(value: Fraction) -> bool:
    """True when ``value`` has a finite decimal expansion."""
    denominator = value.denominator
    for factor in (2, 5):
        while denominator % factor == 0:
            denominator //= factor
    return denominator == 1
