"""
Unit tests for trending score computation.

Tests cover:
- Recency weight decay and clamping
- Content item and template weight vectors and thresholds
- ORM listeners recomputing the score on insert/update
"""

import pytest
from datetime import datetime, timezone, timedelta

from src.services.trending_scorer import (
    recency_weight,
    age_in_days,
    score_content_item,
    score_template,
    apply_trending,
    TEMPLATE_WEIGHTS,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestRecencyWeight:

    def test_new_entity_has_full_weight(self):
        assert recency_weight(0) == 1.0

    def test_weight_decays_linearly(self):
        assert recency_weight(15) == pytest.approx(0.5)

    def test_weight_is_zero_after_thirty_days(self):
        assert recency_weight(30) == 0.0
        assert recency_weight(45) == 0.0

    def test_weight_is_non_increasing_and_bounded(self):
        weights = [recency_weight(age) for age in range(-5, 40)]

        assert all(0.0 <= w <= 1.0 for w in weights)
        assert all(a >= b for a, b in zip(weights, weights[1:]))

    def test_future_created_at_clamps_to_one(self):
        assert recency_weight(-3) == 1.0

    def test_age_of_unsaved_entity_is_zero(self):
        assert age_in_days(None, NOW) == 0.0

    def test_naive_created_at_treated_as_utc(self):
        created = datetime(2024, 6, 14, 12, 0)
        assert age_in_days(created, NOW) == pytest.approx(1.0)


class TestContentItemScore:

    def test_weighted_sum_for_new_item(self):
        result = score_content_item(10, 10, 10, NOW, NOW)

        assert result.score == pytest.approx(10.0)
        # Threshold is strictly greater than 10
        assert result.is_trending is False

    def test_trending_above_threshold(self):
        result = score_content_item(20, 10, 5, NOW, NOW)

        assert result.score == pytest.approx(13.0)
        assert result.is_trending is True

    def test_old_item_scores_zero(self):
        result = score_content_item(100, 100, 100, NOW - timedelta(days=31), NOW)

        assert result.score == 0.0
        assert result.is_trending is False

    def test_missing_counters_count_as_zero(self):
        result = score_content_item(None, None, 50, NOW, NOW)

        assert result.score == pytest.approx(10.0)


class TestTemplateScore:

    def test_weighted_sum_for_new_template(self):
        result = score_template(20, 10, 10, NOW, NOW)

        assert result.score == pytest.approx(15.0)
        assert result.is_trending is False

    def test_half_decayed_template(self):
        result = score_template(40, 20, 20, NOW - timedelta(days=15), NOW)

        assert result.score == pytest.approx(15.0)
        assert result.is_trending is False

    def test_trending_template(self):
        result = score_template(30, 10, 10, NOW - timedelta(days=1), NOW)

        assert result.score == pytest.approx(20.0 * 29 / 30)
        assert result.is_trending is True


class TestApplyTrending:

    def test_rescoring_unchanged_counters_is_stable(self):
        first = score_template(12, 7, 30, NOW - timedelta(days=4), NOW)
        second = score_template(12, 7, 30, NOW - timedelta(days=4), NOW)

        assert first == second

    def test_apply_sets_fields_in_place(self):
        class Entity:
            created_at = NOW
            edit_count = 40
            bookmark_count = 0
            view_count = 0
            trending_score = 0.0
            is_trending = False

        entity = Entity()
        result = apply_trending(entity, TEMPLATE_WEIGHTS, now=NOW)

        assert entity.trending_score == pytest.approx(20.0)
        assert entity.is_trending is True
        assert result.score == entity.trending_score

    def test_listener_scores_template_on_insert(self, make_template):
        template = make_template(edit_count=40)

        assert template.trending_score == pytest.approx(20.0, rel=1e-3)
        assert template.is_trending is True

    def test_listener_rescores_on_update(self, db_session, make_template):
        template = make_template(view_count=1)
        assert template.is_trending is False

        template.edit_count = 50
        db_session.flush()

        assert template.is_trending is True

    def test_listener_scores_content_item(self, make_content_item):
        item = make_content_item(usage_count=20, download_count=10, view_count=5)

        assert item.trending_score == pytest.approx(13.0, rel=1e-3)
        assert item.is_trending is True
