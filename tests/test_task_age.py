from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pair_todo.domain.tasks.age import task_age

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


def test_never_activated_is_fresh():
    age = task_age(None, NOW)
    assert age.category == "fresh"
    assert age.days_old == 0


def test_boundaries():
    assert task_age(NOW - timedelta(days=7), NOW).category == "fresh"
    assert task_age(NOW - timedelta(days=8), NOW).category == "aging"
    assert task_age(NOW - timedelta(days=15), NOW).category == "aging"
    assert task_age(NOW - timedelta(days=16), NOW).category == "stale"


def test_partial_days_round_down():
    age = task_age(NOW - timedelta(days=7, hours=23), NOW)
    assert age.days_old == 7
    assert age.category == "fresh"


def test_future_activation_clamps_to_zero():
    assert task_age(NOW + timedelta(hours=3), NOW).days_old == 0


def test_icons():
    assert task_age(None, NOW).icon == "🔥"
    assert task_age(NOW - timedelta(days=10), NOW).icon == "⏳"
    assert task_age(NOW - timedelta(days=30), NOW).icon == "💀"
