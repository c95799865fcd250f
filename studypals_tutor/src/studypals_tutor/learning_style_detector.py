"""
Learning Style Detector

Scores the user's own words against four learning-style dimensions
(visual, auditory, kinesthetic, reading) plus a brief/detailed depth signal.
Scores are raw weighted keyword counts: only their relative size matters.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from studypals_tutor.models import MessageRole
from studypals_tutor.session_context import SessionContext
from studypals_tutor.user_profile_store import STYLE_DIMENSIONS, LearningStylePreferences

logger = logging.getLogger(__name__)

DEPTH_DIMENSIONS = ("brief", "detailed")
DEPTH_RATIO = 1.5
MAX_EVIDENCE_PER_DIMENSION = 3
EVIDENCE_PREVIEW_CHARS = 80


@dataclass(frozen=True)
class StyleKeyword:
    """One keyword/phrase of the style catalogue and the dimension it votes for."""
    pattern: str
    dimension: str
    weight: float = 1.0

    def compile(self) -> "re.Pattern[str]":
        return re.compile(self.pattern, re.IGNORECASE)


STYLE_KEYWORDS: Tuple[StyleKeyword, ...] = (
    # Visual
    StyleKeyword(r"\bdiagrams?\b", "visual"),
    StyleKeyword(r"\bpictures?\b", "visual"),
    StyleKeyword(r"\bshow me\b", "visual"),
    StyleKeyword(r"\bvisual(?:ly|ize|ise)?\b", "visual"),
    StyleKeyword(r"\bcharts?\b", "visual"),
    StyleKeyword(r"\bgraphs?\b", "visual"),
    StyleKeyword(r"\bimages?\b", "visual"),
    StyleKeyword(r"\bdraw(?:ing)?\b", "visual"),
    StyleKeyword(r"\bsketch\b", "visual"),
    StyleKeyword(r"\bvideos?\b", "visual"),
    StyleKeyword(r"\billustrat(?:e|ion|ions)\b", "visual"),
    # Auditory
    StyleKeyword(r"\blisten(?:ing)?\b", "auditory"),
    StyleKeyword(r"\bhear\b", "auditory"),
    StyleKeyword(r"\bverbal(?:ly)?\b", "auditory"),
    StyleKeyword(r"\bexplain (?:it )?out loud\b", "auditory", 1.5),
    StyleKeyword(r"\baudio\b", "auditory"),
    StyleKeyword(r"\btalk (?:me )?through\b", "auditory"),
    StyleKeyword(r"\bread aloud\b", "auditory"),
    StyleKeyword(r"\blectures?\b", "auditory"),
    StyleKeyword(r"\bpodcasts?\b", "auditory"),
    # Kinesthetic
    StyleKeyword(r"\bhands[- ]on\b", "kinesthetic", 1.5),
    StyleKeyword(r"\bpractice\b", "kinesthetic"),
    StyleKeyword(r"\bexercises?\b", "kinesthetic"),
    StyleKeyword(r"\bdo it\b", "kinesthetic"),
    StyleKeyword(r"\btry it\b", "kinesthetic"),
    StyleKeyword(r"\bexperiments?\b", "kinesthetic"),
    StyleKeyword(r"\bwork through\b", "kinesthetic"),
    StyleKeyword(r"\binteractive\b", "kinesthetic"),
    StyleKeyword(r"\bbuild (?:it|something)\b", "kinesthetic"),
    # Reading / writing
    StyleKeyword(r"\bwrit(?:e|ing)\b", "reading"),
    StyleKeyword(r"\bwritten\b", "reading"),
    StyleKeyword(r"\bnotes?\b", "reading"),
    StyleKeyword(r"\bread(?:ing)?\b", "reading"),
    StyleKeyword(r"\bdocumentation\b", "reading"),
    StyleKeyword(r"\bsummary\b", "reading"),
    StyleKeyword(r"\barticles?\b", "reading"),
    StyleKeyword(r"\bbooks?\b", "reading"),
    StyleKeyword(r"\bbullet points?\b", "reading"),
    StyleKeyword(r"\bdefinitions?\b", "reading"),
    # Depth
    StyleKeyword(r"\bquick(?:ly)?\b", "brief"),
    StyleKeyword(r"\bbrief(?:ly)?\b", "brief"),
    StyleKeyword(r"\bshort\b", "brief"),
    StyleKeyword(r"\bconcise\b", "brief"),
    StyleKeyword(r"\btl;?dr\b", "brief"),
    StyleKeyword(r"\bkey points\b", "brief"),
    StyleKeyword(r"\bin a nutshell\b", "brief"),
    StyleKeyword(r"\bjust tell me\b", "brief"),
    StyleKeyword(r"\bdetailed\b", "detailed"),
    StyleKeyword(r"\bin[- ]depth\b", "detailed"),
    StyleKeyword(r"\bthorough(?:ly)?\b", "detailed"),
    StyleKeyword(r"\bcomprehensive\b", "detailed"),
    StyleKeyword(r"\bstep[- ]by[- ]step\b", "detailed"),
    StyleKeyword(r"\belaborate\b", "detailed"),
    StyleKeyword(r"\bdeep dive\b", "detailed"),
    StyleKeyword(r"\ball the details\b", "detailed"),
)

STYLE_RECOMMENDATIONS: Dict[str, Tuple[str, ...]] = {
    "visual": (
        "Visual learner: include diagrams, charts, or visual examples",
        "Visual learner: use formatting and layout to make structure visible",
    ),
    "auditory": (
        "Auditory learner: give verbal explanations and analogies",
        "Auditory learner: use conversational, descriptive language",
    ),
    "kinesthetic": (
        "Kinesthetic learner: offer hands-on exercises and practice problems",
        "Kinesthetic learner: include interactive examples to work through",
    ),
    "reading": (
        "Reading/writing learner: provide written summaries and bullet points",
        "Reading/writing learner: point to further reading material",
    ),
}

DEPTH_RECOMMENDATIONS: Dict[str, Tuple[str, ...]] = {
    "brief": (
        "Keep responses concise with key takeaways",
        "Offer to expand on any part in more detail",
    ),
    "detailed": (
        "Provide comprehensive explanations",
        "Include step-by-step breakdowns",
    ),
}

GENERAL_RECOMMENDATION = "Offer multiple formats (text, visual descriptions, examples)"

_SENTENCE_SPLIT_RE = re.compile(r"[.!?\n]+")


@dataclass
class LearningStyleProfile:
    """Learning-style estimate for the current session."""
    preferences: LearningStylePreferences = field(default_factory=LearningStylePreferences)
    confidence: float = 0.0
    evidence: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def visual(self) -> float:
        return self.preferences.visual

    @property
    def auditory(self) -> float:
        return self.preferences.auditory

    @property
    def kinesthetic(self) -> float:
        return self.preferences.kinesthetic

    @property
    def reading(self) -> float:
        return self.preferences.reading

    def dominant_style(self) -> Optional[str]:
        return self.preferences.dominant_style()

    def summary(self) -> str:
        dominant = self.dominant_style() or "none"
        return (
            f"Dominant: {dominant} ({self.preferences.preferred_depth} detail) - "
            f"Confidence: {self.confidence * 100:.0f}%"
        )


class LearningStyleDetector:
    """Detects learning-style signals from the user's messages."""

    def __init__(self, keywords: Tuple[StyleKeyword, ...] = STYLE_KEYWORDS):
        self.keywords = tuple(keywords)
        self._compiled = [(k, k.compile()) for k in self.keywords]

    def score_text(self, text: str) -> Dict[str, float]:
        """Weighted keyword counts per dimension. Repeated keywords count every time."""
        scores = {dimension: 0.0 for dimension in STYLE_DIMENSIONS + DEPTH_DIMENSIONS}
        if not text:
            return scores
        for keyword, compiled in self._compiled:
            hits = len(compiled.findall(text))
            if hits:
                scores[keyword.dimension] = scores.get(keyword.dimension, 0.0) + hits * keyword.weight
        return scores

    def estimate(
        self,
        session: SessionContext,
        current_message: Optional[str] = None,
        recent_limit: int = 20,
    ) -> LearningStyleProfile:
        """
        Estimate the user's learning style from recent session messages.

        Only user-authored messages are scanned; the tutor's own wording
        says nothing about how the user likes to learn.

        Args:
            session: The user's session
            current_message: Message not yet added to the session (optional)
            recent_limit: How many of the latest messages to look at

        Returns:
            LearningStyleProfile with raw, unnormalized scores
        """
        texts = [
            m.content for m in session.get_recent_messages(limit=recent_limit)
            if m.role == MessageRole.USER and m.content
        ]
        if current_message:
            texts.append(current_message)

        scores = {dimension: 0.0 for dimension in STYLE_DIMENSIONS + DEPTH_DIMENSIONS}
        for text in texts:
            for dimension, value in self.score_text(text).items():
                scores[dimension] += value

        preferences = LearningStylePreferences(
            visual=scores["visual"],
            auditory=scores["auditory"],
            kinesthetic=scores["kinesthetic"],
            reading=scores["reading"],
            preferred_depth=self._preferred_depth(scores["brief"], scores["detailed"]),
        )
        word_count = sum(len(text.split()) for text in texts)
        profile = LearningStyleProfile(
            preferences=preferences,
            confidence=self._confidence(len(texts), word_count),
            evidence=self._collect_evidence(texts),
        )

        logger.debug(
            f"🎨 [LearningStyleDetector] V:{preferences.visual:.1f} A:{preferences.auditory:.1f} "
            f"K:{preferences.kinesthetic:.1f} R:{preferences.reading:.1f} "
            f"depth={preferences.preferred_depth}"
        )
        return profile

    def get_recommendations(self, profile: LearningStyleProfile) -> List[str]:
        """Canned study-method suggestions for the highest-scoring style(s)."""
        scores = profile.preferences.as_dict()
        top = max(scores.values())

        recommendations: List[str] = []
        if top <= 0:
            recommendations.append(GENERAL_RECOMMENDATION)
        else:
            for dimension in STYLE_DIMENSIONS:
                if scores[dimension] == top:
                    recommendations.extend(STYLE_RECOMMENDATIONS[dimension])

        recommendations.extend(DEPTH_RECOMMENDATIONS.get(profile.preferences.preferred_depth, ()))
        return recommendations

    @staticmethod
    def _preferred_depth(brief: float, detailed: float) -> str:
        if brief > detailed * DEPTH_RATIO:
            return "brief"
        if detailed > brief * DEPTH_RATIO:
            return "detailed"
        return "medium"

    @staticmethod
    def _confidence(message_count: int, word_count: int) -> float:
        # Full confidence needs 5 messages and 100 words
        message_confidence = min(message_count / 5.0, 1.0)
        word_confidence = min(word_count / 100.0, 1.0)
        return (message_confidence + word_confidence) / 2.0

    def _collect_evidence(self, texts: List[str]) -> Dict[str, List[str]]:
        evidence: Dict[str, List[str]] = {dimension: [] for dimension in STYLE_DIMENSIONS}
        for text in texts:
            for sentence in _SENTENCE_SPLIT_RE.split(text):
                cleaned = sentence.strip()
                if not cleaned:
                    continue
                for keyword, compiled in self._compiled:
                    samples = evidence.get(keyword.dimension)
                    if samples is None or len(samples) >= MAX_EVIDENCE_PER_DIMENSION:
                        continue
                    if compiled.search(cleaned):
                        preview = cleaned if len(cleaned) <= EVIDENCE_PREVIEW_CHARS \
                            else f"{cleaned[:EVIDENCE_PREVIEW_CHARS]}..."
                        if preview not in samples:
                            samples.append(preview)
        return evidence
