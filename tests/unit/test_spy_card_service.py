# tests/unit/test_spy_card_service.py
"""
Unit tests for the spy_card_service module.

Tests the delta propagation into a Spy Card, the rank recomputation and the
optimistic-concurrency retry of the versioned write.
"""

import pytest
from unittest.mock import patch

from app_types import AbilityCategory, MissionPlayerRecord, MissionState, SkillRank
from constants import PROFILE_WRITE_ATTEMPTS
from database import SpyCardDB
from exceptions import DatabaseError, NotFoundError
import spy_card_service

AIM = AbilityCategory.AIM_MECHANICAL_SKILL
STRATEGY = AbilityCategory.STRATEGY


class TestComputeProfileUpdate:
    """Tests for compute_profile_update (pure)."""

    def test_uses_stored_rank_modifier(self, store):
        profile = store.add_spy_card("bob", overall_total=0, overall_rank=SkillRank.B)

        updated, overall_delta, ability_deltas = spy_card_service.compute_profile_update(
            profile, None, 40, {}, {}
        )

        assert overall_delta == 56
        assert updated.overall_total == 56
        assert updated.overall_rank == SkillRank.B
        assert ability_deltas == {}

    def test_absent_abilities_untouched(self, store):
        profile = store.add_spy_card("bob", aimMechanicalSkill=10, strategy=20)

        updated, _, ability_deltas = spy_card_service.compute_profile_update(
            profile, None, None, {AIM: 5, STRATEGY: 5}, {AIM: 15}
        )

        assert ability_deltas == {AIM: 18}  # (15 - 5) * 1.8
        assert updated.ability_totals[AIM] == 28
        assert updated.ability_totals[STRATEGY] == 20

    def test_rank_follows_overall_total_only(self, store):
        profile = store.add_spy_card("bob", overall_total=70, overall_rank=SkillRank.A)

        updated, _, _ = spy_card_service.compute_profile_update(
            profile, 20, 10, {}, {AIM: 100}
        )

        assert updated.overall_total == 58  # 70 + (-10 * 1.2)
        assert updated.overall_rank == SkillRank.B
        assert updated.ability_totals[AIM] == 120


class TestApplyScoreChange:
    """Tests for apply_score_change."""

    def test_rank_b_profile_completes_with_40(self, store):
        """Stored rank B, total 0, record score None -> 40 gives total 56, rank B."""
        store.add_spy_card("bob", overall_total=0, overall_rank=SkillRank.B)

        result = spy_card_service.apply_score_change("bob", None, 40, {}, {})

        assert result.overall_total == 56
        assert result.overall_rank == SkillRank.B
        assert store.spy_cards["bob"].overall_total == 56
        assert store.spy_cards["bob"].version == 1

    def test_zero_delta_skips_write(self, store):
        store.add_spy_card("bob", overall_total=30, overall_rank=SkillRank.C)

        result = spy_card_service.apply_score_change("bob", 25, 25, {AIM: 3}, {AIM: 3})

        assert result.overall_total == 30
        assert store.spy_card_writes == 0

    def test_creates_missing_card(self, store):
        result = spy_card_service.apply_score_change("newbie", None, 10, {}, {})

        assert result.overall_total == 18  # 10 * 1.8 (rank D)
        assert result.overall_rank == SkillRank.D
        assert "newbie" in store.spy_cards

    def test_retries_after_version_conflict(self, store):
        """A lost version race re-reads the card and applies the delta once."""
        store.add_spy_card("bob", overall_total=0, overall_rank=SkillRank.D)
        real_write = store.write_spy_card
        calls = []

        def racing_write(profile, expected_version):
            calls.append(expected_version)
            if len(calls) == 1:
                # Another writer lands first
                concurrent = store.spy_cards["bob"]
                concurrent.overall_total = 20
                concurrent.version += 1
            return real_write(profile, expected_version)

        with patch.object(SpyCardDB, "write_spy_card", side_effect=racing_write):
            result = spy_card_service.apply_score_change("bob", None, 10, {}, {})

        assert calls == [0, 1]
        assert result.overall_total == 38  # 20 + 10 * 1.8
        assert store.spy_cards["bob"].overall_total == 38
        assert store.spy_cards["bob"].version == 2

    def test_gives_up_after_max_attempts(self, store):
        store.add_spy_card("bob")

        with patch.object(SpyCardDB, "write_spy_card", return_value=False) as write:
            with pytest.raises(DatabaseError):
                spy_card_service.apply_score_change("bob", None, 10, {}, {})

        assert write.call_count == PROFILE_WRITE_ATTEMPTS


class TestRebuild:
    """Tests for rebuild_totals and rebuild_spy_card."""

    def test_rebuild_totals(self):
        records = [
            MissionPlayerRecord("m1", "p1", {AIM: 10}, score=20, state=MissionState.COMPLETED),
            MissionPlayerRecord("m2", "p1", {AIM: -5}, score=None, state=MissionState.COMPLETED),
        ]

        overall, abilities = spy_card_service.rebuild_totals(records, SkillRank.C)

        assert overall == 32  # 20 * 1.6
        assert abilities[AIM] == 8  # 16 + (-8)
        assert abilities[STRATEGY] == 0

    def test_rebuild_overwrites_totals(self, store):
        store.add_spy_card("bob", overall_total=999, overall_rank=SkillRank.S, strategy=500)
        records = [
            MissionPlayerRecord("m1", "p1", {STRATEGY: 30}, score=50, state=MissionState.COMPLETED)
        ]

        result = spy_card_service.rebuild_spy_card("bob", records)

        # History sum 50 is rank B, whatever rank the card held
        assert result.overall_total == 70  # 50 * 1.4
        assert result.ability_totals[STRATEGY] == 42  # 30 * 1.4
        assert result.overall_rank == SkillRank.A
        assert store.spy_cards["bob"].overall_total == 70

    def test_history_rank_ignores_unset_scores(self):
        records = [
            MissionPlayerRecord("m1", "p1", {}, score=30, state=MissionState.COMPLETED),
            MissionPlayerRecord("m2", "p1", {}, score=None, state=MissionState.COMPLETED),
            MissionPlayerRecord("m3", "p1", {}, score=35, state=MissionState.COMPLETED),
        ]

        assert spy_card_service.history_rank(records) == SkillRank.A
        assert spy_card_service.history_rank([]) == SkillRank.D

    def test_rebuild_is_idempotent_across_a_rank_change(self, store):
        store.add_spy_card("bob", overall_total=0, overall_rank=SkillRank.D)
        records = [
            MissionPlayerRecord("m1", "p1", {AIM: 40}, score=40, state=MissionState.COMPLETED)
        ]

        first = spy_card_service.rebuild_spy_card("bob", records)
        second = spy_card_service.rebuild_spy_card("bob", records)

        assert (first.overall_total, first.overall_rank) == (56, SkillRank.B)
        assert (second.overall_total, second.overall_rank) == (56, SkillRank.B)
        assert second.ability_totals == first.ability_totals


class TestProfileLock:
    """Tests for the per-username lock registry."""

    def test_same_user_shares_lock(self):
        lock = spy_card_service.profile_lock("bob")

        assert spy_card_service.profile_lock("bob") is lock
        assert spy_card_service.profile_lock("carol") is not lock

    def test_released_locks_are_dropped(self):
        spy_card_service.profile_lock("dave")

        assert "dave" not in spy_card_service._profile_locks


class TestGetSpyCard:
    """Tests for get_spy_card."""

    def test_missing_card_raises(self, store):
        with pytest.raises(NotFoundError):
            spy_card_service.get_spy_card("nobody")
