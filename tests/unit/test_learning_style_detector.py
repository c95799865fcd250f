"""
Unit Tests for Learning Style Detector

Tests keyword scoring, depth detection and recommendations.
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "studypals_tutor", "src"))

from studypals_tutor.learning_style_detector import (
    GENERAL_RECOMMENDATION,
    LearningStyleDetector,
    StyleKeyword,
)
from studypals_tutor.models import ChatMessage, MessageRole
from studypals_tutor.session_context import SessionContext


def session_with(*texts, role=MessageRole.USER):
    session = SessionContext(user_id="user_1")
    for text in texts:
        session.add_message(ChatMessage.create(text, role))
    return session


class TestLearningStyleDetector:
    """Test suite for LearningStyleDetector."""

    @pytest.fixture
    def detector(self):
        return LearningStyleDetector()

    def test_no_keywords_all_zero(self, detector):
        """Test that plain text yields an all-zero profile, not an error."""
        profile = detector.estimate(session_with("Hello there"))

        assert profile.visual == 0
        assert profile.auditory == 0
        assert profile.kinesthetic == 0
        assert profile.reading == 0
        assert profile.dominant_style() is None
        assert detector.get_recommendations(profile) == [GENERAL_RECOMMENDATION]

    def test_empty_session(self, detector):
        profile = detector.estimate(SessionContext(user_id="user_1"))

        assert profile.confidence == 0.0
        assert profile.preferences.preferred_depth == "medium"

    def test_visual_keywords(self, detector):
        """Test that visual phrases score the visual dimension."""
        profile = detector.estimate(session_with("Can you show me a diagram?"))

        assert profile.visual == 2.0
        assert profile.dominant_style() == "visual"
        assert any("Visual" in rec for rec in detector.get_recommendations(profile))

    def test_repeated_keywords_count(self, detector):
        """Test that duplicate matches within a message all count."""
        profile = detector.estimate(session_with("diagram, diagram, diagram"))
        assert profile.visual == 3.0

    def test_style_monotonicity(self, detector):
        """Test that an extra visual message strictly raises the visual score."""
        base = ["I like to practice problems", "Can you write notes for me?"]
        without = detector.estimate(session_with(*base))
        with_visual = detector.estimate(session_with(*base, "A chart or a picture would help"))

        assert with_visual.visual > without.visual
        assert with_visual.kinesthetic == without.kinesthetic
        assert with_visual.reading == without.reading

    def test_assistant_messages_ignored(self, detector):
        """Test that the tutor's own words do not count."""
        session = session_with("Here is a diagram and a chart.", role=MessageRole.ASSISTANT)
        assert detector.estimate(session).visual == 0

    def test_current_message_counted(self, detector):
        profile = detector.estimate(session_with("hello"), current_message="Let me listen to an explanation")
        assert profile.auditory == 1.0

    def test_recent_limit(self, detector):
        """Test that only the most recent messages are scanned."""
        session = session_with("Show me a diagram", "hello", "thanks", "okay")

        assert detector.estimate(session, recent_limit=2).visual == 0
        assert detector.estimate(session, recent_limit=4).visual > 0

    def test_word_boundaries(self, detector):
        """Test that 'ready' is not read as 'read'."""
        profile = detector.estimate(session_with("I'm ready to start"))
        assert profile.reading == 0

    def test_each_dimension(self, detector):
        profile = detector.estimate(session_with(
            "I learn best hands-on with an experiment.",
            "Could you explain it out loud so I can hear it?",
            "I want to read the documentation.",
        ))

        assert profile.kinesthetic > 0
        assert profile.auditory > 0
        assert profile.reading > 0
        assert profile.visual == 0

    def test_brief_depth(self, detector):
        profile = detector.estimate(session_with("Give me a quick, brief answer"))

        assert profile.preferences.preferred_depth == "brief"
        assert "Keep responses concise with key takeaways" in detector.get_recommendations(profile)

    def test_detailed_depth(self, detector):
        profile = detector.estimate(session_with("I want a detailed, step-by-step walkthrough"))

        assert profile.preferences.preferred_depth == "detailed"
        assert "Include step-by-step breakdowns" in detector.get_recommendations(profile)

    def test_balanced_depth_is_medium(self, detector):
        profile = detector.estimate(session_with("A quick but detailed answer"))
        assert profile.preferences.preferred_depth == "medium"

    def test_tied_styles_both_recommended(self, detector):
        """Test that every top-scoring style gets recommendations."""
        profile = detector.estimate(session_with("A diagram and some notes"))
        recommendations = detector.get_recommendations(profile)

        assert any(rec.startswith("Visual") for rec in recommendations)
        assert any(rec.startswith("Reading") for rec in recommendations)

    def test_confidence_grows_with_data(self, detector):
        short = detector.estimate(session_with("diagram"))
        long_text = " ".join(["word"] * 30)
        longer = detector.estimate(session_with(*[long_text] * 5))

        assert 0 < short.confidence < longer.confidence
        assert longer.confidence == 1.0

    def test_evidence_and_summary(self, detector):
        profile = detector.estimate(session_with("Please show me a diagram. Thanks!"))

        assert profile.evidence["visual"] == ["Please show me a diagram"]
        assert profile.evidence["reading"] == []
        assert profile.summary().startswith("Dominant: visual (medium detail)")

    def test_custom_keyword_table(self):
        """Test that the keyword catalogue can be replaced."""
        detector = LearningStyleDetector(keywords=(StyleKeyword(r"\bflowchart\b", "visual", 2.5),))

        assert detector.estimate(session_with("a flowchart please")).visual == 2.5
        assert detector.estimate(session_with("a diagram please")).visual == 0
