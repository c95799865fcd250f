"""
User Profile Store

Long-term, opt-in user preferences keyed by user id.
The middleware only ever reads from this store; writes are for the host app.
Profiles are only returned for users who opted in to profile storage.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from supabase import create_client

logger = logging.getLogger(__name__)

STYLE_DIMENSIONS = ("visual", "auditory", "kinesthetic", "reading")


@dataclass
class LearningStylePreferences:
    """Relative learning-style scores. Magnitudes are only meaningful relative to each other."""
    visual: float = 0.0
    auditory: float = 0.0
    kinesthetic: float = 0.0
    reading: float = 0.0
    preferred_depth: str = "medium"  # "brief", "medium", "detailed"

    def as_dict(self) -> Dict[str, float]:
        return {dimension: getattr(self, dimension) for dimension in STYLE_DIMENSIONS}

    def dominant_style(self) -> Optional[str]:
        """Highest scoring dimension, or None when every score is zero."""
        scores = self.as_dict()
        best = max(scores, key=scores.get)
        return best if scores[best] > 0 else None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = self.as_dict()
        data["preferred_depth"] = self.preferred_depth
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LearningStylePreferences":
        data = data or {}
        return cls(
            visual=float(data.get("visual", 0.0) or 0.0),
            auditory=float(data.get("auditory", 0.0) or 0.0),
            kinesthetic=float(data.get("kinesthetic", 0.0) or 0.0),
            reading=float(data.get("reading", 0.0) or 0.0),
            preferred_depth=data.get("preferred_depth") or "medium",
        )


@dataclass
class OptInFlags:
    """Privacy opt-ins. Everything is off until the user turns it on."""
    profile_storage: bool = False
    learning_analytics: bool = False
    personalization: bool = False

    @property
    def any_enabled(self) -> bool:
        return self.profile_storage or self.learning_analytics or self.personalization


@dataclass
class UserProfile:
    """Long-term profile for AI tutor personalization."""
    user_id: str
    display_name: Optional[str] = None
    learning_preferences: LearningStylePreferences = field(default_factory=LearningStylePreferences)
    subject_mastery: Dict[str, float] = field(default_factory=dict)
    discussed_topics: List[str] = field(default_factory=list)
    opt_in: OptInFlags = field(default_factory=OptInFlags)
    last_seen: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "learning_preferences": self.learning_preferences.to_dict(),
            "subject_mastery": dict(self.subject_mastery),
            "discussed_topics": list(self.discussed_topics),
            "opt_in_profile_storage": self.opt_in.profile_storage,
            "opt_in_learning_analytics": self.opt_in.learning_analytics,
            "opt_in_personalization": self.opt_in.personalization,
            "last_seen": self.last_seen.isoformat(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        last_seen = datetime.now()
        if data.get("last_seen"):
            try:
                last_seen = datetime.fromisoformat(str(data["last_seen"]).replace("Z", "+00:00"))
            except ValueError:
                logger.debug(f"[UserProfileStore] Unparseable last_seen: {data['last_seen']}")

        return cls(
            user_id=data["user_id"],
            display_name=data.get("display_name"),
            learning_preferences=LearningStylePreferences.from_dict(data.get("learning_preferences")),
            subject_mastery={k: float(v) for k, v in (data.get("subject_mastery") or {}).items()},
            discussed_topics=list(data.get("discussed_topics") or []),
            opt_in=OptInFlags(
                profile_storage=bool(data.get("opt_in_profile_storage", False)),
                learning_analytics=bool(data.get("opt_in_learning_analytics", False)),
                personalization=bool(data.get("opt_in_personalization", False)),
            ),
            last_seen=last_seen,
            metadata=data.get("metadata") or {},
        )


class UserProfileStore:
    """
    Reads and writes opt-in user profiles.

    Uses the Supabase ``user_profiles`` table when a client is supplied and a
    plain in-memory dict otherwise.
    """

    TABLE_NAME = "user_profiles"

    def __init__(self, supabase_client=None):
        """
        Initialize UserProfileStore.

        Args:
            supabase_client: Supabase client instance (optional)
        """
        self.supabase = supabase_client
        self.use_supabase = supabase_client is not None
        self._in_memory_profiles: Dict[str, UserProfile] = {}

        if not self.use_supabase:
            logger.info("ℹ️ [UserProfileStore] Supabase not configured, using in-memory profiles")

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Get a user's profile.

        Args:
            user_id: User identifier

        Returns:
            UserProfile, or None if missing or the user has not opted in
        """
        profile = await self._load(user_id)
        if profile is None:
            logger.debug(f"[UserProfileStore] No profile for user {user_id[:20]}")
            return None

        if not profile.opt_in.profile_storage:
            logger.debug(f"[UserProfileStore] User {user_id[:20]} has not opted in to profile storage")
            return None

        return profile

    async def set_profile(self, profile: UserProfile) -> bool:
        """Store a full profile. Refused unless the user opted in."""
        if not profile.opt_in.profile_storage:
            logger.warning(f"⚠️ [UserProfileStore] Refusing to store profile without opt-in for {profile.user_id[:20]}")
            return False

        if not self.use_supabase:
            self._in_memory_profiles[profile.user_id] = profile
            return True

        try:
            self.supabase.table(self.TABLE_NAME).upsert(profile.to_dict()).execute()
            logger.info(f"✅ [UserProfileStore] Stored profile for user {profile.user_id[:20]}")
            return True
        except Exception as e:
            logger.error(f"❌ [UserProfileStore] Error storing profile: {e}", exc_info=True)
            return False

    async def delete_profile(self, user_id: str) -> bool:
        """Delete a profile (privacy opt-out)."""
        if not self.use_supabase:
            return self._in_memory_profiles.pop(user_id, None) is not None

        try:
            self.supabase.table(self.TABLE_NAME).delete().eq("user_id", user_id).execute()
            logger.info(f"✅ [UserProfileStore] Deleted profile for user {user_id[:20]}")
            return True
        except Exception as e:
            logger.error(f"❌ [UserProfileStore] Error deleting profile: {e}")
            return False

    async def has_opted_in(self, user_id: str) -> bool:
        return await self.get_profile(user_id) is not None

    async def _load(self, user_id: str) -> Optional[UserProfile]:
        if not self.use_supabase:
            return self._in_memory_profiles.get(user_id)

        try:
            result = self.supabase.table(self.TABLE_NAME) \
                .select("*") \
                .eq("user_id", user_id) \
                .execute()

            if result.data:
                return UserProfile.from_dict(result.data[0])
            return None
        except Exception as e:
            logger.error(f"❌ [UserProfileStore] Error loading profile: {e}")
            return None


def create_profile_store(supabase_url: Optional[str] = None, supabase_key: Optional[str] = None) -> UserProfileStore:
    """
    Supabase-backed store when credentials are available, in-memory otherwise.

    Credentials default to SUPABASE_URL / SUPABASE_SERVICE_KEY (a local .env is honoured).
    """
    load_dotenv()
    url = supabase_url or os.getenv("SUPABASE_URL")
    key = supabase_key or os.getenv("SUPABASE_SERVICE_KEY")

    if not url or not key:
        return UserProfileStore()

    try:
        client = create_client(url, key)
    except Exception as e:
        logger.warning(f"⚠️ [UserProfileStore] Supabase unavailable ({e}), using in-memory profiles")
        return UserProfileStore()

    logger.info("✅ [UserProfileStore] Using Supabase profile storage")
    return UserProfileStore(supabase_client=client)
