"""
Unit Tests for User Profile Store

Tests opt-in enforcement, the in-memory fallback and the Supabase path.
"""

import pytest
import sys
import os
from unittest.mock import MagicMock

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "studypals_tutor", "src"))

from studypals_tutor.user_profile_store import (
    LearningStylePreferences,
    OptInFlags,
    UserProfile,
    UserProfileStore,
    create_profile_store,
)


def opted_in_profile(user_id="user_1"):
    return UserProfile(
        user_id=user_id,
        display_name="Sam",
        learning_preferences=LearningStylePreferences(visual=0.8, reading=0.3, preferred_depth="brief"),
        subject_mastery={"algebra": 0.6},
        discussed_topics=["fractions"],
        opt_in=OptInFlags(profile_storage=True),
    )


def mock_supabase(rows=None, error=None):
    """Supabase client whose select chain returns ``rows``."""
    client = MagicMock()
    execute = client.table.return_value.select.return_value.eq.return_value.execute
    if error is not None:
        execute.side_effect = error
    else:
        execute.return_value = MagicMock(data=rows or [])
    return client


class TestInMemoryStore:
    """Test suite for the in-memory store."""

    @pytest.fixture
    def store(self):
        return UserProfileStore()

    @pytest.mark.asyncio
    async def test_missing_profile(self, store):
        assert await store.get_profile("nobody") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        """Test storing and loading an opted-in profile."""
        profile = opted_in_profile()

        assert await store.set_profile(profile) is True
        loaded = await store.get_profile("user_1")
        assert loaded is profile
        assert await store.has_opted_in("user_1") is True

    @pytest.mark.asyncio
    async def test_refuses_without_opt_in(self, store):
        """Test that a profile without opt-in is never stored."""
        profile = UserProfile(user_id="user_2")

        assert await store.set_profile(profile) is False
        assert await store.get_profile("user_2") is None

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set_profile(opted_in_profile())

        assert await store.delete_profile("user_1") is True
        assert await store.get_profile("user_1") is None
        assert await store.delete_profile("user_1") is False


class TestSupabaseStore:
    """Test suite for the Supabase-backed path."""

    @pytest.mark.asyncio
    async def test_loads_profile_row(self):
        client = mock_supabase(rows=[opted_in_profile().to_dict()])
        store = UserProfileStore(supabase_client=client)

        profile = await store.get_profile("user_1")

        assert profile is not None
        assert profile.discussed_topics == ["fractions"]
        assert profile.learning_preferences.preferred_depth == "brief"
        client.table.assert_called_with("user_profiles")
        client.table.return_value.select.return_value.eq.assert_called_with("user_id", "user_1")

    @pytest.mark.asyncio
    async def test_row_without_opt_in_is_hidden(self):
        row = UserProfile(user_id="user_1", discussed_topics=["fractions"]).to_dict()
        store = UserProfileStore(supabase_client=mock_supabase(rows=[row]))

        assert await store.get_profile("user_1") is None

    @pytest.mark.asyncio
    async def test_storage_error_returns_none(self):
        """Test that a storage failure surfaces as a missing profile."""
        store = UserProfileStore(supabase_client=mock_supabase(error=RuntimeError("connection reset")))
        assert await store.get_profile("user_1") is None

    @pytest.mark.asyncio
    async def test_upsert(self):
        client = MagicMock()
        store = UserProfileStore(supabase_client=client)

        assert await store.set_profile(opted_in_profile()) is True
        client.table.return_value.upsert.assert_called_once()


class TestProfileModel:
    """Test suite for profile serialization helpers."""

    def test_dict_round_trip(self):
        profile = opted_in_profile()
        restored = UserProfile.from_dict(profile.to_dict())

        assert restored.user_id == profile.user_id
        assert restored.subject_mastery == {"algebra": 0.6}
        assert restored.opt_in.profile_storage is True
        assert restored.learning_preferences.visual == 0.8

    def test_dominant_style(self):
        assert LearningStylePreferences().dominant_style() is None
        assert LearningStylePreferences(auditory=0.4, kinesthetic=0.9).dominant_style() == "kinesthetic"

    def test_opt_in_flags(self):
        assert OptInFlags().any_enabled is False
        assert OptInFlags(learning_analytics=True).any_enabled is True

    def test_create_store_without_env(self, monkeypatch):
        """Test that the factory falls back to memory when Supabase is not configured."""
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)

        store = create_profile_store()
        assert store.use_supabase is False

    def test_create_store_with_credentials(self, monkeypatch):
        """Test that explicit credentials produce a Supabase-backed store."""
        client = MagicMock()
        monkeypatch.setattr("studypals_tutor.user_profile_store.create_client", lambda url, key: client)

        store = create_profile_store("https://example.supabase.co", "service-key")
        assert store.use_supabase is True
        assert store.supabase is client

    def test_create_store_client_error_falls_back(self, monkeypatch):
        def failing_client(url, key):
            raise RuntimeError("invalid url")

        monkeypatch.setattr("studypals_tutor.user_profile_store.create_client", failing_client)

        store = create_profile_store("not-a-url", "service-key")
        assert store.use_supabase is False
