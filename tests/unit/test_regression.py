"""
Unit Tests for the Regression Harness

Tests QA-file parsing and replaying cases through the middleware.
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "studypals_tutor", "src"))

from studypals_tutor.config import TutorSettings
from studypals_tutor.middleware import AITutorMiddleware
from studypals_tutor.regression import (
    RegressionCase,
    RegressionRunner,
    criteria_for_category,
    parse_regression_file,
    parse_regression_text,
)

QA_FILE = os.path.join(project_root, "tests", "fixtures", "tutor_questions.txt")

SAMPLE_QA = """Memory & Context
Question 1:
Do you remember what we did last week?
AI Response 1:
Yes, last time we covered derivatives.
Let's keep going.

Question 2:
What do you know about me?
AI Response 2:
Only what you tell me in this chat. What are you studying?
------------------------------------------------------------
Math Accuracy
Question 7:
What is 6 * 7?
AI Response 7:
6 * 7 = 42.
"""


class TestParser:
    """Test suite for the QA file parser."""

    def test_parse_sections(self):
        cases = parse_regression_text(SAMPLE_QA)

        assert [c.question_number for c in cases] == [1, 2, 7]
        assert cases[0].category == "Memory & Context"
        assert cases[0].question == "Do you remember what we did last week?"
        assert cases[0].expected_response == "Yes, last time we covered derivatives.\nLet's keep going."
        assert cases[2].category == "Math Accuracy"
        assert cases[2].acceptance_criteria == ["math_correct"]

    def test_criteria_for_category(self):
        assert criteria_for_category("Memory & Context") == ["no_false_memory", "asks_question"]
        assert criteria_for_category("Personality & Emotional Support") == ["acknowledges_emotion"]
        assert criteria_for_category("Math Step-by-Step") == ["step_by_step", "math_correct"]
        assert criteria_for_category("Small talk") == []

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            parse_regression_file(os.path.join(project_root, "tests", "fixtures", "missing.txt"))

    def test_fixture_file(self):
        cases = parse_regression_file(QA_FILE)
        assert len(cases) == 6


class TestRunner:
    """Test suite for RegressionRunner."""

    @pytest.mark.asyncio
    async def test_fixture_suite_passes(self):
        """Test that every bundled case meets its criteria."""
        report = await RegressionRunner().run_file(QA_FILE)

        assert report.total == 6
        assert report.failed == 0, report.summary()
        assert report.pass_rate == 1.0
        assert report.telemetry["responses_processed"] == 6

    @pytest.mark.asyncio
    async def test_false_memory_case_is_corrected(self):
        case = RegressionCase(
            question_number=1,
            category="Memory & Context",
            question="Do you remember what we discussed about algebra yesterday?",
            expected_response="Yes, we discussed algebraic expressions and equations yesterday.",
            acceptance_criteria=["no_false_memory", "asks_question"],
        )

        result = await RegressionRunner().run_case(case)

        assert result.passed is True
        assert result.memory_valid is False
        assert result.corrections

    @pytest.mark.asyncio
    async def test_failure_reported_when_checks_disabled(self):
        """Test that an uncorrected false claim fails its criterion."""
        middleware = AITutorMiddleware(settings=TutorSettings(memory_validation=False))
        runner = RegressionRunner(middleware=middleware)

        report = await runner.run_all(parse_regression_text(SAMPLE_QA))

        assert report.failed == 1
        assert report.results[0].passed is False
        assert "MUST NOT assert prior discussion when none present" in report.results[0].failures
        assert "Failed Cases:" in report.summary()

    @pytest.mark.asyncio
    async def test_sessions_cleared_after_each_case(self):
        runner = RegressionRunner()
        await runner.run_all(parse_regression_text(SAMPLE_QA))
        assert len(runner.middleware.registry) == 0
