"""
AI Tutor Middleware

Pre- and post-processing hooks around an external LLM tutoring call.

pre_process_message records the user's turn and prepares prompt context.
post_process_response checks the LLM answer for false memory claims and
wrong arithmetic, rewrites what it can, and records the corrected turn.

Nothing raised inside a validator ever reaches the caller: an unexpected
error makes that check inconclusive (treated as valid) and is recorded in
telemetry.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from studypals_tutor.config import FeatureFlags, TutorSettings
from studypals_tutor.learning_style_detector import LearningStyleDetector, LearningStyleProfile
from studypals_tutor.math_engine import MathEngine, MathValidationResult
from studypals_tutor.memory_claim_validator import MemoryClaimValidator, MemoryValidationResult
from studypals_tutor.models import ChatMessage, MessageRole
from studypals_tutor.session_context import SessionContext
from studypals_tutor.session_registry import SessionRegistry
from studypals_tutor.user_profile_store import (
    STYLE_DIMENSIONS,
    UserProfile,
    UserProfileStore,
    create_profile_store,
)

logger = logging.getLogger(__name__)

CHECK_STATUSES = ("pass", "fail", "error", "skipped")

FALLBACK_RESPONSE = (
    "I want to make sure I give you the most accurate help possible.\n\n"
    "To help you best, I can:\n"
    "1. **Quick Summary**: Give you a brief overview of the topic\n"
    "2. **Step-by-Step Solution**: Walk through the problem methodically\n"
    "3. **Extended Explanation**: Provide comprehensive coverage with examples\n\n"
    "Which approach would be most helpful for you right now?"
)


@dataclass
class PreProcessedContext:
    """Context prepared for the LLM call."""
    session_context: SessionContext
    profile: Optional[UserProfile] = None
    detected_style: Optional[LearningStyleProfile] = None
    system_prompt: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PostProcessedResponse:
    """Final response text plus validation outcome."""
    response: str
    memory_valid: bool = True
    math_valid: bool = True
    corrections: List[str] = field(default_factory=list)
    telemetry: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_issues(self) -> bool:
        return not self.memory_valid or not self.math_valid

    @property
    def issue_count(self) -> int:
        return (0 if self.memory_valid else 1) + (0 if self.math_valid else 1)


class AITutorMiddleware:
    """
    Request/response middleware for the AI tutor.

    Owns a SessionRegistry; every pre/post call for a user runs under that
    user's lock so turns never interleave.
    """

    def __init__(
        self,
        profile_store: Optional[UserProfileStore] = None,
        settings: Optional[TutorSettings] = None,
        registry: Optional[SessionRegistry] = None,
        feature_flags: Optional[FeatureFlags] = None,
        memory_validator: Optional[MemoryClaimValidator] = None,
        math_engine: Optional[MathEngine] = None,
        style_detector: Optional[LearningStyleDetector] = None,
    ):
        self.settings = settings or TutorSettings()
        self.profile_store = profile_store or UserProfileStore()
        self.registry = registry or SessionRegistry(max_messages=self.settings.max_session_messages)
        self.feature_flags = feature_flags or FeatureFlags(self.settings)
        self.memory_validator = memory_validator or MemoryClaimValidator()
        self.math_engine = math_engine or MathEngine()
        self.style_detector = style_detector or LearningStyleDetector()

        self._telemetry_totals: Dict[str, Any] = {
            "responses_processed": 0,
            "memory_checks": {status: 0 for status in CHECK_STATUSES},
            "math_checks": {status: 0 for status in CHECK_STATUSES},
            "memory_claims_detected": 0,
            "invalid_memory_claims": 0,
            "math_statements_checked": 0,
            "math_issues": 0,
            "fallbacks_used": 0,
        }

    @classmethod
    def from_env(cls) -> "AITutorMiddleware":
        """Middleware configured from TUTOR_* and SUPABASE_* environment variables."""
        return cls(profile_store=create_profile_store(), settings=TutorSettings.from_env())

    async def pre_process_message(self, user_id: str, message: str) -> PreProcessedContext:
        """
        Pre-process a user message before it is sent to the LLM.

        Records the message in the user's session, loads the opt-in profile
        and estimates the learning style, then builds the system prompt.

        Args:
            user_id: User identifier
            message: The user's message

        Returns:
            PreProcessedContext for prompt construction
        """
        logger.info(f"📥 [AITutorMiddleware] Pre-processing message for user {user_id[:20]}")

        async with self.registry.lock(user_id):
            session = self.registry.get_or_create(user_id)
            session.add_message(ChatMessage.create(message, MessageRole.USER, user_id=user_id))
            turn_sequence = session.sequence

            profile = None
            if self.feature_flags.is_enabled("profile_storage", user_id):
                profile = await self._load_profile(user_id)

            detected_style = None
            if self.feature_flags.is_enabled("style_adaptation", user_id):
                try:
                    detected_style = self.style_detector.estimate(session)
                    logger.debug(f"🎨 [AITutorMiddleware] Learning style: {detected_style.summary()}")
                except Exception as e:
                    logger.error(f"❌ [AITutorMiddleware] Learning style detection failed: {e}", exc_info=True)

            system_prompt = self._build_system_prompt(session, profile, detected_style)

            return PreProcessedContext(
                session_context=session,
                profile=profile,
                detected_style=detected_style,
                system_prompt=system_prompt,
                metadata={
                    "message_length": len(message or ""),
                    "session_message_count": len(session.get_all_messages()),
                    "has_profile": profile is not None,
                    "style_confidence": detected_style.confidence if detected_style else 0.0,
                    "turn_sequence": turn_sequence,
                },
            )

    async def post_process_response(
        self,
        user_id: str,
        message: str,
        llm_response: str,
        context: Optional[PreProcessedContext] = None,
    ) -> PostProcessedResponse:
        """
        Post-process an LLM response before it is returned to the user.

        Memory claims are checked first, then arithmetic. Both checks look at
        ``llm_response``; corrections are applied to one working copy in the
        same order. The corrected text is recorded as the assistant turn.

        Args:
            user_id: User identifier
            message: The user message this response answers
            llm_response: Raw LLM output
            context: Result of pre_process_message for this turn (optional)

        Returns:
            PostProcessedResponse with the final text, validity flags,
            corrections and telemetry
        """
        logger.info(f"📤 [AITutorMiddleware] Post-processing response for user {user_id[:20]}")
        llm_response = llm_response or ""
        started = time.perf_counter()

        async with self.registry.lock(user_id):
            session = self.registry.get_or_create(user_id)
            turn_sequence = self._resolve_turn(session, user_id, message, context)
            profile = context.profile if context is not None else None

            corrections: List[str] = []
            telemetry: Dict[str, Any] = {"errors": {}}
            final_response = llm_response

            # Step 1: memory claims
            memory_valid = True
            memory_result: Optional[MemoryValidationResult] = None
            memory_started = time.perf_counter()
            if not self.feature_flags.is_enabled("memory_validation", user_id):
                telemetry["memory_check"] = "skipped"
            else:
                try:
                    memory_result = self.memory_validator.validate(
                        llm_response, session, profile, before_sequence=turn_sequence
                    )
                    memory_valid = memory_result.valid
                    telemetry["memory_check"] = "pass" if memory_valid else "fail"
                except Exception as e:
                    logger.error(f"❌ [AITutorMiddleware] Memory validation failed: {e}", exc_info=True)
                    telemetry["memory_check"] = "error"
                    telemetry["errors"]["memory"] = f"{type(e).__name__}: {e}"
            telemetry["memory_check_ms"] = _elapsed_ms(memory_started)
            telemetry["memory_claims_detected"] = len(memory_result.claims) if memory_result else 0
            telemetry["invalid_memory_claims"] = len(memory_result.invalid_claims) if memory_result else 0

            if memory_result is not None and not memory_result.valid and memory_result.corrected_response:
                final_response = memory_result.corrected_response
                corrections.extend(memory_result.corrections)
                logger.info(f"🧠 [AITutorMiddleware] Corrected {telemetry['invalid_memory_claims']} memory claims")

            # Step 2: arithmetic
            math_valid = True
            math_result: Optional[MathValidationResult] = None
            math_started = time.perf_counter()
            if not self.feature_flags.is_enabled("math_validation", user_id):
                telemetry["math_check"] = "skipped"
            else:
                try:
                    math_result = self.math_engine.validate_and_annotate(llm_response)
                    math_valid = math_result.valid
                    telemetry["math_check"] = "pass" if math_valid else "fail"
                except Exception as e:
                    logger.error(f"❌ [AITutorMiddleware] Math validation failed: {e}", exc_info=True)
                    telemetry["math_check"] = "error"
                    telemetry["errors"]["math"] = f"{type(e).__name__}: {e}"
            telemetry["math_check_ms"] = _elapsed_ms(math_started)
            telemetry["math_statements_checked"] = len(math_result.statements) if math_result else 0
            telemetry["math_issues"] = len(math_result.issues) if math_result else 0

            if math_result is not None and math_result.has_issues:
                final_response = self.math_engine.apply_corrections(final_response, math_result)
                corrections.extend(math_result.issues)
                logger.info(f"🔢 [AITutorMiddleware] Corrected {len(math_result.issues)} math statements")

            # Step 3: optional safety fallback when both checks failed
            telemetry["used_fallback"] = False
            if self.settings.safety_fallback and not memory_valid and not math_valid:
                logger.warning("⚠️ [AITutorMiddleware] Memory and math validation both failed, using fallback")
                final_response = FALLBACK_RESPONSE
                corrections.append("Used safety fallback")
                telemetry["used_fallback"] = True

            session.add_message(ChatMessage.create(final_response, MessageRole.ASSISTANT, user_id=user_id))

            telemetry["total_ms"] = _elapsed_ms(started)
            self._record_telemetry(telemetry)

            return PostProcessedResponse(
                response=final_response,
                memory_valid=memory_valid,
                math_valid=math_valid,
                corrections=corrections,
                telemetry=telemetry,
            )

    def clear_session(self, user_id: str) -> bool:
        """Drop a user's session."""
        removed = self.registry.remove(user_id)
        if removed:
            logger.info(f"🧹 [AITutorMiddleware] Session cleared for user {user_id[:20]}")
        return removed

    def get_session_stats(self, user_id: str) -> Dict[str, Any]:
        session = self.registry.get(user_id)
        if session is None:
            return {"exists": False}
        return {"exists": True, **session.get_statistics()}

    def get_telemetry_summary(self) -> Dict[str, Any]:
        """Cumulative counters across every processed response."""
        return {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in self._telemetry_totals.items()
        }

    async def _load_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            return await self.profile_store.get_profile(user_id)
        except Exception as e:
            logger.error(f"❌ [AITutorMiddleware] Error loading profile: {e}", exc_info=True)
            return None

    @staticmethod
    def _resolve_turn(
        session: SessionContext,
        user_id: str,
        message: str,
        context: Optional[PreProcessedContext],
    ) -> int:
        """Sequence number of this turn's user message, recording it if pre-processing was skipped."""
        if context is not None and "turn_sequence" in context.metadata:
            return context.metadata["turn_sequence"]

        recent = session.get_recent_messages(limit=1)
        if recent and recent[0].role == MessageRole.USER and recent[0].content == (message or ""):
            return session.sequence

        session.add_message(ChatMessage.create(message, MessageRole.USER, user_id=user_id))
        return session.sequence

    def _record_telemetry(self, telemetry: Dict[str, Any]) -> None:
        totals = self._telemetry_totals
        totals["responses_processed"] += 1
        totals["memory_checks"][telemetry["memory_check"]] += 1
        totals["math_checks"][telemetry["math_check"]] += 1
        totals["memory_claims_detected"] += telemetry["memory_claims_detected"]
        totals["invalid_memory_claims"] += telemetry["invalid_memory_claims"]
        totals["math_statements_checked"] += telemetry["math_statements_checked"]
        totals["math_issues"] += telemetry["math_issues"]
        if telemetry["used_fallback"]:
            totals["fallbacks_used"] += 1

    def _build_system_prompt(
        self,
        session: SessionContext,
        profile: Optional[UserProfile],
        detected_style: Optional[LearningStyleProfile],
    ) -> str:
        lines = [
            "System: You are StudyPals Tutor, an expert educational AI assistant.",
            "",
            "CONTEXT PROVIDED:",
        ]

        if profile is not None:
            preferences = profile.learning_preferences
            lines.append("- User Profile: Available (opted in)")
            lines.append(f"  - Dominant Learning Style: {preferences.dominant_style() or 'not yet known'}")
            lines.append(f"  - Preferred Detail Level: {preferences.preferred_depth}")
            if profile.subject_mastery:
                lines.append(f"  - Subject Mastery: {', '.join(profile.subject_mastery)}")
        else:
            lines.append("- User Profile: Not available (user has not opted in)")

        lines.append(f"- Session Context: {len(session.get_all_messages())} messages")
        recent_topics = session.get_recent_topics(top_k=5)
        if recent_topics:
            lines.append(f"  - Recent Topics: {', '.join(t.topic for t in recent_topics)}")

        if detected_style is not None:
            scores = detected_style.preferences.as_dict()
            total = sum(scores.values())
            lines.append("- Detected Learning Style (current session):")
            for dimension in STYLE_DIMENSIONS:
                share = scores[dimension] / total * 100 if total else 0.0
                lines.append(f"  - {dimension.capitalize()}: {share:.0f}%")
            lines.append(f"  - Preferred Depth: {detected_style.preferences.preferred_depth}")

        lines.extend([
            "",
            "CRITICAL RULES:",
            "1. NEVER assert prior conversations or stored facts unless the session context or user profile "
            "contains supporting evidence.",
            '   - If uncertain, ask "Would you like me to explain X?" instead of "We discussed X".',
            "",
            "2. ALWAYS structure responses in this format:",
            "   - Start with a 1-2 sentence SHORT ANSWER",
            '   - Follow with an "Expand" section with examples and details',
            '   - End with "Next Actions" (2-3 suggestions)',
            "",
            "3. For mathematical calculations:",
            "   - Show step-by-step derivation",
            "   - Double-check arithmetic",
            "   - Verify final answer",
            "",
            "4. Emotional awareness:",
            "   - Acknowledge user emotions (frustration, excitement, confusion)",
            "   - Offer calming, supportive scaffolding questions",
            "",
            "5. Learning style adaptation:",
        ])

        if detected_style is not None:
            for recommendation in self.style_detector.get_recommendations(detected_style):
                lines.append(f"   - {recommendation}")
        else:
            lines.append("   - Offer multiple formats (text, visual descriptions, examples)")

        return "\n".join(lines) + "\n"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
