"""
Unit Tests for Math Engine

Tests statement validation, inline correction and step-by-step solving.
"""

import pytest
import sys
import os
from fractions import Fraction

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "studypals_tutor", "src"))

from studypals_tutor.math_engine import MathEngine, MathParseError, tokenize


class TestValidateAndAnnotate:
    """Test suite for MathEngine.validate_and_annotate."""

    @pytest.fixture
    def engine(self):
        return MathEngine()

    def test_correct_statement(self, engine):
        """Test that 2 + 2 = 4 is valid."""
        result = engine.validate_and_annotate("2 + 2 = 4")

        assert result.valid is True
        assert result.has_issues is False
        assert result.issues == []
        assert result.corrected_text is None

    def test_wrong_statement(self, engine):
        """Test that 3 * 4 = 13 is flagged with the correct value."""
        result = engine.validate_and_annotate("3 * 4 = 13")

        assert result.valid is False
        assert result.has_issues is True
        assert result.issues == ["3 * 4 = 13 is incorrect; the correct value is 12"]
        assert result.corrected_text == "3 * 4 = 12"

    @pytest.mark.parametrize("text", [
        "2 + 3 * 4 = 14",
        "(2 + 3) * 4 = 20",
        "10 - 4 - 3 = 3",
        "12 / 4 / 3 = 1",
        "-3 + 5 = 2",
        "6 × 7 = 42",
        "0.1 + 0.2 = 0.3",
        "2 * (3 + 4) - 5 = 9",
    ])
    def test_operator_precedence(self, engine, text):
        """Test that correct statements using precedence and parentheses pass."""
        assert engine.validate_and_annotate(text).valid is True

    def test_unicode_division(self, engine):
        result = engine.validate_and_annotate("8 ÷ 2 = 5")

        assert result.valid is False
        assert "the correct value is 4" in result.issues[0]

    def test_integer_rhs_is_exact(self, engine):
        """Test that an integer answer must match exactly."""
        assert engine.validate_and_annotate("7 / 2 = 3").valid is False

    @pytest.mark.parametrize("text,valid", [
        ("10 / 3 = 3.33", True),
        ("10 / 3 = 3.3", True),
        ("10 / 3 = 3.4", False),
        ("2 / 3 = 0.667", True),
        ("2 / 3 = 0.6", False),
        ("0.1 + 0.14 = 0.24", True),
        ("0.1 + 0.14 = 0.2", False),
        ("1 / 8 = 0.125", True),
        ("1 / 8 = 0.13", False),
    ])
    def test_decimal_tolerance(self, engine, text, valid):
        """Test that only repeating decimals may be rounded to the places shown."""
        assert engine.validate_and_annotate(text).valid is valid

    def test_rounded_terminating_decimal_is_corrected(self, engine):
        result = engine.validate_and_annotate("0.1 + 0.14 = 0.2")

        assert result.issues == ["0.1 + 0.14 = 0.2 is incorrect; the correct value is 0.24"]
        assert result.corrected_text == "0.1 + 0.14 = 0.24"

    @pytest.mark.parametrize("text", [
        "So 1,000 + 2 = 1,002 apples.",
        "That leaves 2,500 - 500 = 2,000 dollars.",
        "We get 3 * 1,000 = 3,000 in total.",
    ])
    def test_comma_grouped_numbers_are_not_misread(self, engine, text):
        """Test that thousands separators never yield a partial statement."""
        result = engine.validate_and_annotate(text)

        assert result.valid is True
        assert result.statements == []
        assert result.corrected_text is None

    def test_comma_separated_statements_still_checked(self, engine):
        result = engine.validate_and_annotate("Check: 2 + 2 = 5, 3 + 3 = 6.")

        assert len(result.statements) == 2
        assert result.corrected_text == "Check: 2 + 2 = 4, 3 + 3 = 6."

    def test_statements_inside_prose(self, engine):
        """Test that only the wrong statement is rewritten."""
        text = "First, 5 + 5 = 10, then 10 * 2 = 21."
        result = engine.validate_and_annotate(text)

        assert len(result.statements) == 2
        assert len(result.issues) == 1
        assert result.corrected_text == "First, 5 + 5 = 10, then 10 * 2 = 20."
        assert result.calculated_values == {"5 + 5": 10, "10 * 2": 20}

    def test_markdown_emphasis(self, engine):
        """Test that bold markers do not hide a statement."""
        result = engine.validate_and_annotate("The answer: **3 * 4 = 13**")

        assert result.valid is False
        assert result.corrected_text == "The answer: **3 * 4 = 12**"

    def test_no_statements_is_valid(self, engine):
        result = engine.validate_and_annotate("The derivative of x^2 is 2x.")

        assert result.valid is True
        assert result.statements == []

    def test_division_by_zero_is_skipped(self, engine):
        """Test that an unevaluable statement is skipped, not failed."""
        result = engine.validate_and_annotate("5 / 0 = 1")

        assert result.valid is True
        assert result.statements == []

    def test_does_not_start_mid_expression(self, engine):
        """Test that a statement is not cut out of an algebraic expression."""
        result = engine.validate_and_annotate("x + 2 + 3 = 5")
        assert result.statements == []

    def test_nested_parentheses_fall_back_to_valid(self, engine):
        """Test that unsupported nesting is skipped rather than judged."""
        result = engine.validate_and_annotate("((1 + 2)) * 3 = 10")

        assert result.valid is True
        assert result.statements == []

    def test_apply_corrections_to_other_text(self, engine):
        """Test that corrections can be applied to an edited copy of the text."""
        result = engine.validate_and_annotate("Note that 3 * 4 = 13. Keep going!")
        edited = "Quick recap. Note that 3 * 4 = 13. Keep going!"

        assert engine.apply_corrections(edited, result) == "Quick recap. Note that 3 * 4 = 12. Keep going!"


class TestSolveAndShowSteps:
    """Test suite for MathEngine.solve_and_show_steps."""

    @pytest.fixture
    def engine(self):
        return MathEngine()

    def test_precedence_steps(self, engine):
        """Test that multiplication is reduced before addition."""
        steps = engine.solve_and_show_steps("2 + 3 * 4")

        assert [s.expression for s in steps] == ["2 + 12", "14"]
        assert [s.result for s in steps] == [12, 14]
        assert steps[0].description == "Multiply 3 * 4"

    def test_parentheses_first(self, engine):
        """Test that the innermost parentheses are reduced first."""
        steps = engine.solve_and_show_steps("(2 + 3) * 4")

        assert [s.expression for s in steps] == ["5 * 4", "20"]
        assert steps[-1].result == 20

    def test_left_to_right(self, engine):
        steps = engine.solve_and_show_steps("20 / 2 * 5 - 3 + 1")

        assert [s.expression for s in steps] == ["10 * 5 - 3 + 1", "50 - 3 + 1", "47 + 1", "48"]
        assert steps[-1].result == 48

    def test_fractional_result(self, engine):
        steps = engine.solve_and_show_steps("1 / 4")
        assert steps[-1].result == 0.25

    def test_single_number(self, engine):
        steps = engine.solve_and_show_steps("42")

        assert len(steps) == 1
        assert steps[0].result == 42

    def test_equation_adds_verification_step(self, engine):
        """Test that an lhs = rhs input ends with a verification step."""
        steps = engine.solve_and_show_steps("3 * 4 = 13")

        assert steps[-1].description == "Verify against the right-hand side"
        assert steps[-1].expression == "12 ≠ 13"
        assert steps[-1].result == 12

    @pytest.mark.parametrize("expression", ["2 + * 3", "abc", "1 / 0", "(2 + 3", ""])
    def test_unparseable_returns_empty(self, engine, expression):
        assert engine.solve_and_show_steps(expression) == []

    def test_fresh_list_per_call(self, engine):
        """Test that each call returns a new sequence."""
        first = engine.solve_and_show_steps("2 + 2")
        first.clear()

        assert len(engine.solve_and_show_steps("2 + 2")) == 1


class TestEvaluate:
    """Test suite for evaluate / validate_calculation."""

    @pytest.fixture
    def engine(self):
        return MathEngine()

    def test_evaluate_exact(self, engine):
        assert engine.evaluate("10 / 4") == Fraction(5, 2)
        assert engine.evaluate("-2 * -3") == 6

    def test_evaluate_raises_on_bad_input(self, engine):
        with pytest.raises(MathParseError):
            engine.evaluate("2 +")

    def test_tokenize_aliases(self):
        assert tokenize("6 × 2") == [Fraction(6), "*", Fraction(2)]

    @pytest.mark.parametrize("expression,expected,valid", [
        ("2 + 2", 4, True),
        ("2 + 2", 5, False),
        ("10 / 3", "3.33", True),
        ("1 / 0", 1, False),
        ("2 +", 2, False),
    ])
    def test_validate_calculation(self, engine, expression, expected, valid):
        assert engine.validate_calculation(expression, expected) is valid
