"""
Tutor middleware configuration.

Settings come from the environment (a local .env file is loaded first).
FeatureFlags gates each validation per user for gradual rollout.
"""

import hashlib
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"⚠️ [Config] Invalid integer for {name}: {value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"⚠️ [Config] Invalid number for {name}: {value!r}, using {default}")
        return default


def _env_set(name: str) -> FrozenSet[str]:
    return frozenset(item.strip() for item in os.getenv(name, "").split(",") if item.strip())


@dataclass(frozen=True)
class TutorSettings:
    """Runtime settings for AITutorMiddleware."""
    max_session_messages: int = 50
    memory_validation: bool = True
    math_validation: bool = True
    style_adaptation: bool = True
    profile_storage: bool = True
    safety_fallback: bool = False
    rollout_percentage: float = 1.0
    beta_users: FrozenSet[str] = field(default_factory=frozenset)
    internal_users: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_env(cls) -> "TutorSettings":
        """Build settings from TUTOR_* environment variables."""
        return cls(
            max_session_messages=max(_env_int("TUTOR_MAX_SESSION_MESSAGES", 50), 1),
            memory_validation=_env_bool("TUTOR_MEMORY_VALIDATION", True),
            math_validation=_env_bool("TUTOR_MATH_VALIDATION", True),
            style_adaptation=_env_bool("TUTOR_STYLE_ADAPTATION", True),
            profile_storage=_env_bool("TUTOR_PROFILE_STORAGE", True),
            safety_fallback=_env_bool("TUTOR_SAFETY_FALLBACK", False),
            rollout_percentage=min(max(_env_float("TUTOR_ROLLOUT_PERCENTAGE", 1.0), 0.0), 1.0),
            beta_users=_env_set("TUTOR_BETA_USERS"),
            internal_users=_env_set("TUTOR_INTERNAL_USERS"),
        )


class FeatureFlags:
    """
    Per-user feature gating.

    - Internal users get every feature
    - Beta users get every globally enabled feature
    - Everyone else gets globally enabled features only inside the rollout
      percentage (stable md5 bucket per user id)
    """

    def __init__(self, settings: Optional[TutorSettings] = None):
        settings = settings or TutorSettings()
        self._global: Dict[str, bool] = {
            "memory_validation": settings.memory_validation,
            "math_validation": settings.math_validation,
            "style_adaptation": settings.style_adaptation,
            "profile_storage": settings.profile_storage,
        }
        self.rollout_percentage = settings.rollout_percentage
        self.beta_users = set(settings.beta_users)
        self.internal_users = set(settings.internal_users)

    def is_enabled(self, feature: str, user_id: str) -> bool:
        if feature not in self._global:
            return False
        if user_id in self.internal_users:
            return True
        if not self._global[feature]:
            return False
        if user_id in self.beta_users:
            return True
        return self.rollout_bucket(user_id) < self.rollout_percentage

    def enable_global(self, feature: str) -> None:
        self._set_global(feature, True)

    def disable_global(self, feature: str) -> None:
        self._set_global(feature, False)

    def set_rollout_percentage(self, percentage: float) -> None:
        self.rollout_percentage = min(max(percentage, 0.0), 1.0)

    @staticmethod
    def rollout_bucket(user_id: str) -> float:
        """Stable position of a user in [0, 1) for percentage rollouts."""
        digest = hashlib.md5(user_id.encode("utf-8")).hexdigest()
        return (int(digest, 16) % 100) / 100.0

    def get_configuration(self) -> Dict[str, object]:
        return {
            **self._global,
            "rollout_percentage": self.rollout_percentage,
            "beta_user_count": len(self.beta_users),
            "internal_user_count": len(self.internal_users),
        }

    def _set_global(self, feature: str, enabled: bool) -> None:
        if feature not in self._global:
            raise ValueError(f"Unknown feature: {feature}")
        self._global[feature] = enabled
        logger.info(f"🚩 [FeatureFlags] {feature} {'enabled' if enabled else 'disabled'} globally")
