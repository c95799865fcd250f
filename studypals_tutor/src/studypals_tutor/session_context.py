"""
Session Context

Bounded, per-user conversation history with a derived topic index.
The topic index is what memory-claim validation checks against, so it only
ever reflects text that actually passed through this session.
"""

import logging
import re
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional

from studypals_tutor.models import ChatMessage, MessageRole

logger = logging.getLogger(__name__)


STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "as", "is", "was", "are", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will", "would",
    "should", "could", "may", "might", "must", "can", "i", "you", "he", "she",
    "it", "we", "they", "what", "which", "who", "when", "where", "why", "how",
    "this", "that", "these", "those", "about", "also", "just", "like", "some",
    "more", "most", "very", "here", "there", "their", "them", "then", "than",
    "into", "your", "yours", "ours", "only", "over", "such", "each", "other",
    "really", "please", "thanks", "thank", "okay", "sure", "well", "much",
    "many", "because", "while", "again", "always", "never", "still", "even",
    "want", "need", "help", "know", "let's", "lets", "it's", "that's",
    "don't", "didn't", "i'm", "you're", "we're", "explain",
}

MIN_KEYWORD_LENGTH = 4
CONTEXT_SAMPLE_CHARS = 100

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")


def normalize_topic(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    return " ".join(_TOKEN_RE.findall((text or "").lower()))


def stem(word: str) -> str:
    """Very small suffix stripper, enough to line up plural/verb forms."""
    if len(word) > 4 and word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("es") and len(word) > 5 and word[:-2].endswith(("s", "x", "z", "ch", "sh")):
        return word[:-2]
    for suffix in ("ing", "ed", "s"):
        if word.endswith(suffix) and len(word) - len(suffix) >= 4:
            if suffix == "s" and word.endswith("ss"):
                continue
            return word[:-len(suffix)]
    return word


def stem_phrase(phrase: str) -> str:
    return " ".join(stem(word) for word in phrase.split())


def extract_keywords(text: str) -> List[str]:
    """
    Extract topic keywords from free text.

    Keeps tokens longer than three characters that are not stop-words, plus
    bigrams of adjacent surviving tokens. Order of first appearance is kept
    and duplicates are dropped.
    """
    tokens = _TOKEN_RE.findall((text or "").lower())
    keywords: List[str] = []
    seen = set()
    previous: Optional[str] = None

    for token in tokens:
        if token.endswith("'s"):
            token = token[:-2]
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS or token.isdigit():
            previous = None
            continue
        if token not in seen:
            seen.add(token)
            keywords.append(token)
        if previous is not None:
            bigram = f"{previous} {token}"
            if bigram not in seen:
                seen.add(bigram)
                keywords.append(bigram)
        previous = token

    return keywords


def terms_match(candidate: str, key: str) -> bool:
    """Case-normalized exact, stem, or substring match between two terms."""
    if candidate == key:
        return True
    if stem_phrase(candidate) == stem_phrase(key):
        return True
    if min(len(candidate), len(key)) >= 5 and (candidate in key or key in candidate):
        return True
    return False


@dataclass(frozen=True)
class TopicRecord:
    """Read-only view of one entry in the topic index."""
    topic: str
    last_seen: datetime
    count: int
    first_seen: datetime
    context: str = ""
    first_sequence: int = 0
    last_sequence: int = 0


class SessionContext:
    """
    Ephemeral conversation context for one user.

    Messages live in a FIFO buffer of at most ``max_messages`` entries; the
    topic index keeps recency and frequency for every keyword that passed
    through the session, even after its message was evicted.
    """

    def __init__(self, user_id: str, max_messages: int = 50):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.user_id = user_id
        self.max_messages = max_messages
        self._messages: Deque[ChatMessage] = deque(maxlen=max_messages)
        self._topics: Dict[str, TopicRecord] = {}
        self._sequence = 0
        self._session_start = datetime.now()

    @property
    def sequence(self) -> int:
        """Number of messages ever added, including evicted ones."""
        return self._sequence

    def add_message(self, message: ChatMessage) -> None:
        """Append a message, evicting the oldest if full, then index its topics."""
        self._messages.append(message)
        self._sequence += 1
        try:
            self._extract_topics(message, self._sequence)
        except Exception as e:
            logger.warning(f"⚠️ [SessionContext] Topic extraction failed for {message.id}: {e}")

        logger.debug(
            f"💾 [SessionContext] Message added for {self.user_id} "
            f"(messages: {len(self._messages)}, topics: {len(self._topics)})"
        )

    def get_all_messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def get_recent_messages(self, limit: int = 10) -> List[ChatMessage]:
        """Last ``limit`` messages, most recent last."""
        if limit <= 0:
            return []
        messages = list(self._messages)
        return messages[-limit:]

    def get_recent_topics(self, top_k: int = 10, window: Optional[timedelta] = None) -> List[TopicRecord]:
        """
        Top topics ordered by recency, then by frequency.

        Args:
            top_k: Maximum number of topics to return
            window: Only keep topics seen within this period (optional)
        """
        records = list(self._topics.values())
        if window is not None:
            cutoff = datetime.now() - window
            records = [r for r in records if r.last_seen >= cutoff]

        records.sort(key=lambda r: (r.last_sequence, r.count), reverse=True)
        return records[:max(top_k, 0)]

    def has_discussed_topic(self, topic: str) -> bool:
        """Check whether ``topic`` (or one of its keywords) is in the topic index."""
        normalized = normalize_topic(topic)
        if not normalized:
            return False
        if normalized in self._topics:
            return True

        candidates = [normalized] + [k for k in extract_keywords(normalized) if k != normalized]
        for candidate in candidates:
            for key in self._topics:
                if terms_match(candidate, key):
                    return True
        return self._find_short_term(normalized) is not None

    def find_topic(self, topic: str, before_sequence: Optional[int] = None) -> Optional[TopicRecord]:
        """
        Return the first index record matching ``topic``, if any.

        With ``before_sequence``, only topics first seen in an earlier message count.
        """
        normalized = normalize_topic(topic)
        if not normalized:
            return None

        records = self._topics
        if before_sequence is not None:
            records = {k: r for k, r in records.items() if r.first_sequence < before_sequence}

        if normalized in records:
            return records[normalized]
        candidates = [normalized] + extract_keywords(normalized)
        for candidate in candidates:
            for key, record in records.items():
                if terms_match(candidate, key):
                    return record
        return self._find_short_term(normalized, before_sequence)

    def has_assistant_turn(self) -> bool:
        return any(m.role == MessageRole.ASSISTANT for m in self._messages)

    def get_context_summary(self, message_limit: int = 10) -> str:
        """Plain-text summary of the session for prompt construction."""
        recent_messages = self.get_recent_messages(limit=message_limit)
        recent_topics = self.get_recent_topics(top_k=5)
        duration = int((datetime.now() - self._session_start).total_seconds() // 60)

        lines = [
            "Session Context:",
            f"Duration: {duration} minutes",
            f"Messages: {len(self._messages)}",
        ]

        if recent_topics:
            lines.append("")
            lines.append("Recent Topics:")
            for record in recent_topics:
                lines.append(f"- {record.topic} (mentions: {record.count})")

        if recent_messages:
            lines.append("")
            lines.append("Recent Messages:")
            for msg in recent_messages:
                role = "User" if msg.role == MessageRole.USER else "AI"
                preview = msg.content if len(msg.content) <= 100 else f"{msg.content[:100]}..."
                lines.append(f"[{role}]: {preview}")

        return "\n".join(lines)

    def clear(self) -> None:
        self._messages.clear()
        self._topics.clear()
        logger.info(f"🧹 [SessionContext] Cleared session for user {self.user_id}")

    def get_statistics(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "message_count": len(self._messages),
            "topic_count": len(self._topics),
            "max_messages": self.max_messages,
            "session_duration_minutes": int((datetime.now() - self._session_start).total_seconds() // 60),
            "session_start": self._session_start.isoformat(),
        }

    def _find_short_term(self, phrase: str, before_sequence: Optional[int] = None) -> Optional[TopicRecord]:
        """
        Look up words too short for the topic index ("dna", "sum") in the
        retained messages. Evicted messages are not searched.
        """
        words = {
            w for w in phrase.split()
            if len(w) < MIN_KEYWORD_LENGTH and w not in STOP_WORDS and not w.isdigit()
        }
        if not words:
            return None

        first_retained = self._sequence - len(self._messages) + 1
        hits = []
        for offset, message in enumerate(self._messages):
            sequence = first_retained + offset
            if before_sequence is not None and sequence >= before_sequence:
                break
            if words & set(_TOKEN_RE.findall((message.content or "").lower())):
                hits.append((sequence, message))
        if not hits:
            return None

        first_sequence, first = hits[0]
        last_sequence, last = hits[-1]
        return TopicRecord(
            topic=" ".join(sorted(words)),
            last_seen=last.timestamp,
            count=len(hits),
            first_seen=first.timestamp,
            context=first.content[:CONTEXT_SAMPLE_CHARS],
            first_sequence=first_sequence,
            last_sequence=last_sequence,
        )

    def _extract_topics(self, message: ChatMessage, sequence: int) -> None:
        if not message.content or not message.content.strip():
            return

        for keyword in extract_keywords(message.content):
            existing = self._topics.get(keyword)
            if existing is None:
                self._topics[keyword] = TopicRecord(
                    topic=keyword,
                    last_seen=message.timestamp,
                    count=1,
                    first_seen=message.timestamp,
                    context=message.content[:CONTEXT_SAMPLE_CHARS],
                    first_sequence=sequence,
                    last_sequence=sequence,
                )
            else:
                self._topics[keyword] = replace(
                    existing,
                    last_seen=message.timestamp,
                    count=existing.count + 1,
                    last_sequence=sequence,
                )
