"""
Session Registry

Owns the user_id -> SessionContext mapping for one middleware instance and
hands out a per-user asyncio lock so two turns for the same user never
interleave.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from studypals_tutor.session_context import SessionContext

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory registry of active tutoring sessions."""

    def __init__(self, max_messages: int = 50):
        self.max_messages = max_messages
        self._sessions: Dict[str, SessionContext] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, user_id: str) -> Optional[SessionContext]:
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: str) -> SessionContext:
        """Return the user's session, creating it on first use."""
        session = self._sessions.get(user_id)
        if session is None:
            session = SessionContext(user_id=user_id, max_messages=self.max_messages)
            self._sessions[user_id] = session
            logger.info(f"💾 [SessionRegistry] Created session for user {user_id[:20]}")
        return session

    def lock(self, user_id: str) -> asyncio.Lock:
        """Per-user lock serializing pre/post-processing for that user."""
        user_lock = self._locks.get(user_id)
        if user_lock is None:
            user_lock = asyncio.Lock()
            self._locks[user_id] = user_lock
        return user_lock

    def remove(self, user_id: str) -> bool:
        """Drop the user's session. The lock stays so queued turns keep serializing on it."""
        return self._sessions.pop(user_id, None) is not None

    def user_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
