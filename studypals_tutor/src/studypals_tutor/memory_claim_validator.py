"""
Memory Claim Validator

Detects claims of prior discussion in a tutor response ("we discussed X",
"last time", "you mentioned X") and checks each one against the session's
topic index and the user's long-term profile. Unsupported claims are replaced
with an honest offer to cover the topic now.

An empty session can never back up a memory claim.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from studypals_tutor.session_context import (
    STOP_WORDS,
    SessionContext,
    extract_keywords,
    normalize_topic,
    terms_match,
)
from studypals_tutor.user_profile_store import UserProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimPattern:
    """One entry of the memory-claim catalogue."""
    name: str
    claim_class: str
    regex: str

    def compile(self) -> "re.Pattern[str]":
        return re.compile(self.regex, re.IGNORECASE)


MEMORY_CLAIM_PATTERNS: Tuple[ClaimPattern, ...] = (
    ClaimPattern(
        "as_we_discussed", "prior_discussion",
        r"\bas (?:we|i)(?:'ve| have)? (?:already |previously )?"
        r"(?:discussed|mentioned|said|explained|noted|covered|talked about|went over|saw)"
        r"(?: (?:before|earlier|previously|last time))?\b",
    ),
    ClaimPattern(
        "we_discussed", "prior_discussion",
        r"\bwe(?:'ve| have)? (?:already |previously |just )?"
        r"(?:discussed|talked about|covered|explored|went over|gone over|looked at|"
        r"reviewed|examined|worked through|went through|gone through)\b",
    ),
    ClaimPattern(
        "you_mentioned", "user_statement",
        r"\byou (?:mentioned|told me|said|asked about|asked me about|brought up|"
        r"were interested in|wanted to (?:learn|know) about)\b",
    ),
    ClaimPattern("last_time", "temporal_reference", r"\blast time\b"),
    ClaimPattern(
        "previous_session", "temporal_reference",
        r"\b(?:in|during|from|based on) our (?:last|previous|earlier) "
        r"(?:session|conversation|discussion|chat|lesson)\b",
    ),
    ClaimPattern(
        "i_showed_you", "prior_explanation",
        r"\b(?:when )?i (?:already )?(?:told you|showed you|taught you|explained to you|demonstrated)\b",
    ),
    ClaimPattern("remember_when", "recall", r"\b(?:remember|recall) (?:when|how|that time|our)\b"),
    ClaimPattern(
        "where_we_left_off", "continuation",
        r"\b(?:continuing|picking up|building on) (?:from )?"
        r"(?:where we left off|our (?:last|previous|earlier) (?:discussion|session|conversation))\b",
    ),
    ClaimPattern(
        "earlier_we", "temporal_reference",
        r"\b(?:(?:earlier|previously)(?: today| this week)?,?|before,) (?:we|you|i)"
        r"(?:'ve| have| had)? (?:already )?(?!need\b)(?:\w+ed|went|saw|said|told|taught|did|made|wrote|learnt)\b",
    ),
    ClaimPattern(
        "you_studied", "prior_learning",
        r"(?<!have )(?<!once )(?<!when )(?<!after )(?<!if )"
        r"\byou(?:'ve| have)? (?:already |just )?(?:learned|learnt|studied|practiced|practised|worked on)\b",
    ),
    ClaimPattern("i_remember", "recall", r"\b(?:i|we) (?:still |clearly )?remember\b"),
    ClaimPattern(
        "you_are_working_on", "user_statement",
        r"(?<!if )\byou(?:'re| are) (?:currently |still )?(?:working on|interested in|focusing on)\b",
    ),
    ClaimPattern(
        "our_named_lesson", "temporal_reference",
        r"\b(?:in|from|during) our (?P<topic>[a-z]+(?: [a-z]+)?) (?:lesson|session|class|discussion)\b",
    ),
    ClaimPattern(
        "your_learning_style", "user_preference",
        r"\byour (?:learning style|preferred (?:learning )?style|preference) (?:is|was)\b"
        r"|(?<!if )(?<!unless )\byou (?:usually |generally )?(?:prefer|learn best)(?! to\b)\b",
    ),
)

# User statements can be backed by the user's own message in the current turn
CURRENT_TURN_CLAIM_CLASSES = frozenset({"user_statement"})

# Topic words that stand for a learning-style dimension
STYLE_TOPIC_WORDS = {
    "visual": "visual", "visually": "visual", "diagrams": "visual", "pictures": "visual",
    "charts": "visual", "images": "visual", "auditory": "auditory", "listening": "auditory",
    "audio": "auditory", "verbal": "auditory", "kinesthetic": "kinesthetic",
    "hands-on": "kinesthetic", "practice": "kinesthetic", "reading": "reading",
    "writing": "reading", "notes": "reading",
}

# Words that carry no topic even though they sit next to a claim
FILLER_WORDS = {
    "yesterday", "today", "earlier", "before", "previously", "last", "time",
    "ago", "session", "conversation", "discussion", "chat", "lesson", "week",
    "already", "recently", "remember", "recall", "yes", "right", "again",
    "topic", "topics", "little", "briefly", "together", "once", "first",
    "discussed", "talked", "covered", "explored", "reviewed", "examined",
    "mentioned", "said", "explained", "noted", "told", "asked", "looked",
    "went", "gone", "worked", "through", "over", "interested", "wanted",
    "learn", "brought", "showed", "taught", "demonstrated", "continuing",
    "picking", "building", "left", "off", "saw", "our", "me", "us",
    "liked", "enjoyed", "loved", "struggled", "studied", "learned", "learnt",
    "practiced", "practised", "prefer", "usually", "generally", "clearly", "still",
}

MAX_TOPIC_SPAN_WORDS = 4
MAX_TOPIC_WORDS = 3

_CLAUSE_BOUNDARY_RE = re.compile(r"[.!?;:,\n]")
_SENTENCE_RE = re.compile(r"(?:[^.!?\n]|\.(?=\d))+[.!?]*")
_WORD_RE = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")


@dataclass
class MemoryClaim:
    """A memory claim found in a response, with its resolved referent."""
    claim_text: str
    claim_class: str
    pattern_name: str
    start: int
    end: int
    topic: Optional[str] = None
    is_valid: bool = False
    evidence: Optional[str] = None


@dataclass
class MemoryValidationResult:
    """Outcome of checking every memory claim in one response."""
    valid: bool
    claims: List[MemoryClaim] = field(default_factory=list)
    corrections: List[str] = field(default_factory=list)
    corrected_response: Optional[str] = None

    @property
    def invalid_claims(self) -> List[MemoryClaim]:
        return [c for c in self.claims if not c.is_valid]


class MemoryClaimValidator:
    """Validates memory claims in AI responses."""

    def __init__(self, patterns: Sequence[ClaimPattern] = MEMORY_CLAIM_PATTERNS):
        self.patterns = tuple(patterns)
        self._compiled = [(p, p.compile()) for p in self.patterns]

    def find_claims(self, response: str) -> List[MemoryClaim]:
        """Scan ``response`` for claim patterns and resolve each claim's topic."""
        if not response:
            return []

        matches = []
        for pattern, compiled in self._compiled:
            for match in compiled.finditer(response):
                matches.append((match.start(), match.end(), pattern, match))

        # Overlapping matches ("as we discussed" / "we discussed") keep the earliest, longest one
        matches.sort(key=lambda m: (m[0], -(m[1] - m[0])))
        claims: List[MemoryClaim] = []
        last_end = -1
        for start, end, pattern, match in matches:
            if start < last_end:
                continue
            claims.append(MemoryClaim(
                claim_text=response[start:end],
                claim_class=pattern.claim_class,
                pattern_name=pattern.name,
                start=start,
                end=end,
                topic=self._named_topic(match) or self._resolve_topic(response, start, end),
            ))
            last_end = end
        return claims

    def validate(
        self,
        response: str,
        session_context: SessionContext,
        profile: Optional[UserProfile] = None,
        before_sequence: Optional[int] = None,
    ) -> MemoryValidationResult:
        """
        Validate memory claims in a response.

        Args:
            response: Candidate LLM response
            session_context: The user's current session
            profile: Long-term profile, if the user opted in
            before_sequence: Ignore topics first seen at or after this message
                sequence (the current turn's own user message)

        Returns:
            MemoryValidationResult; ``valid`` is False if any claim is unsupported
        """
        claims = [
            self._verify(claim, session_context, profile, before_sequence)
            for claim in self.find_claims(response)
        ]
        invalid = [c for c in claims if not c.is_valid]

        for claim in invalid:
            logger.info(
                f"🧠 [MemoryClaimValidator] Unsupported memory claim: '{claim.claim_text}' "
                f"(topic: {claim.topic or 'unknown'})"
            )

        if not invalid:
            return MemoryValidationResult(valid=True, claims=claims)

        corrections: List[str] = []
        for claim in invalid:
            alternative = self.generate_honest_alternative(claim.topic)
            if alternative not in corrections:
                corrections.append(alternative)

        return MemoryValidationResult(
            valid=False,
            claims=claims,
            corrections=corrections,
            corrected_response=self._correct_response(response, invalid),
        )

    @staticmethod
    def generate_honest_alternative(topic: Optional[str]) -> str:
        """Honest phrasing that offers to cover a topic instead of claiming it was covered."""
        if topic:
            return f"I don't have a record of us discussing {topic} before. Would you like to go over it now?"
        return "I don't have a record of us covering this before. Would you like to go over it now?"

    def _verify(
        self,
        claim: MemoryClaim,
        session_context: SessionContext,
        profile: Optional[UserProfile],
        before_sequence: Optional[int] = None,
    ) -> MemoryClaim:
        if claim.topic:
            cutoff = None if claim.claim_class in CURRENT_TURN_CLAIM_CLASSES else before_sequence
            record = session_context.find_topic(claim.topic, cutoff)
            if record is not None:
                return replace(claim, is_valid=True, evidence=record.context)
            if profile is not None and self._profile_supports(claim.topic, profile):
                return replace(claim, is_valid=True, evidence="User profile data")
            return replace(claim, is_valid=False)

        # Vague back-references need at least one earlier tutor turn
        if session_context.has_assistant_turn():
            return replace(claim, is_valid=True, evidence="Earlier assistant turn")
        return replace(claim, is_valid=False)

    @staticmethod
    def _profile_supports(topic: str, profile: UserProfile) -> bool:
        normalized = normalize_topic(topic)
        candidates = [normalized] + extract_keywords(normalized)

        logged = [normalize_topic(t) for t in profile.discussed_topics] + \
            [normalize_topic(s) for s in profile.subject_mastery]
        for entry in logged:
            if entry and any(terms_match(candidate, entry) for candidate in candidates):
                return True

        dominant = profile.learning_preferences.dominant_style()
        styles = {STYLE_TOPIC_WORDS.get(word) for word in normalized.split()}
        return dominant is not None and dominant in styles

    def _named_topic(self, match: "re.Match[str]") -> Optional[str]:
        """Topic captured inside the claim itself ("in our algebra lesson")."""
        if "topic" not in match.re.groupindex or not match.group("topic"):
            return None
        words = self._topic_words(_WORD_RE.findall(match.group("topic").lower()))
        return " ".join(words) or None

    def _resolve_topic(self, text: str, start: int, end: int) -> Optional[str]:
        trailing = text[end:].lstrip(" \t,:;-")
        boundary = _CLAUSE_BOUNDARY_RE.search(trailing)
        if boundary:
            trailing = trailing[:boundary.start()]
        words = self._topic_words(_WORD_RE.findall(trailing.lower())[:MAX_TOPIC_SPAN_WORDS])

        if not words:
            sentence_start = max(text.rfind(ch, 0, start) for ch in ".!?\n") + 1
            leading = _WORD_RE.findall(text[sentence_start:start].lower())
            words = self._topic_words(leading[-MAX_TOPIC_SPAN_WORDS:])

        return " ".join(words[:MAX_TOPIC_WORDS]) or None

    @staticmethod
    def _topic_words(words: List[str]) -> List[str]:
        return [
            w for w in words
            if len(w) >= 3 and not w.isdigit() and w not in STOP_WORDS and w not in FILLER_WORDS
        ]

    def _correct_response(self, response: str, invalid: List[MemoryClaim]) -> str:
        """Replace each sentence that carries an unsupported claim with an honest alternative."""
        pieces: List[str] = []
        cursor = 0
        for sentence in _SENTENCE_RE.finditer(response):
            pieces.append(response[cursor:sentence.start()])
            cursor = sentence.end()
            chunk = sentence.group(0)

            hits = [c for c in invalid if sentence.start() <= c.start < sentence.end()]
            if not hits:
                pieces.append(chunk)
                continue

            alternatives: List[str] = []
            for claim in hits:
                alternative = self.generate_honest_alternative(claim.topic)
                if alternative not in alternatives:
                    alternatives.append(alternative)
            leading_ws = chunk[:len(chunk) - len(chunk.lstrip())]
            trailing_ws = chunk[len(chunk.rstrip()):]
            pieces.append(leading_ws + " ".join(alternatives) + trailing_ws)

        pieces.append(response[cursor:])
        return "".join(pieces)
