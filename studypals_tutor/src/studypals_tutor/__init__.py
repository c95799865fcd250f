"""
StudyPals Tutor - response-integrity middleware for an LLM tutor.
"""

from studypals_tutor.config import FeatureFlags, TutorSettings
from studypals_tutor.learning_style_detector import (
    STYLE_KEYWORDS,
    LearningStyleDetector,
    LearningStyleProfile,
    StyleKeyword,
)
from studypals_tutor.math_engine import (
    MathEngine,
    MathParseError,
    MathStatement,
    MathValidationResult,
    SolutionStep,
)
from studypals_tutor.memory_claim_validator import (
    MEMORY_CLAIM_PATTERNS,
    ClaimPattern,
    MemoryClaim,
    MemoryClaimValidator,
    MemoryValidationResult,
)
from studypals_tutor.middleware import AITutorMiddleware, PostProcessedResponse, PreProcessedContext
from studypals_tutor.models import ChatMessage, MessageFormat, MessageRole
from studypals_tutor.session_context import SessionContext, TopicRecord
from studypals_tutor.session_registry import SessionRegistry
from studypals_tutor.user_profile_store import (
    LearningStylePreferences,
    OptInFlags,
    UserProfile,
    UserProfileStore,
    create_profile_store,
)

__version__ = "0.1.0"

__all__ = [
    "AITutorMiddleware",
    "ChatMessage",
    "ClaimPattern",
    "FeatureFlags",
    "LearningStyleDetector",
    "LearningStylePreferences",
    "LearningStyleProfile",
    "MEMORY_CLAIM_PATTERNS",
    "MathEngine",
    "MathParseError",
    "MathStatement",
    "MathValidationResult",
    "MemoryClaim",
    "MemoryClaimValidator",
    "MemoryValidationResult",
    "MessageFormat",
    "MessageRole",
    "OptInFlags",
    "PostProcessedResponse",
    "PreProcessedContext",
    "STYLE_KEYWORDS",
    "SessionContext",
    "SessionRegistry",
    "SolutionStep",
    "StyleKeyword",
    "TopicRecord",
    "TutorSettings",
    "UserProfile",
    "UserProfileStore",
    "create_profile_store",
]
