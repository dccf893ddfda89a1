"""
Pure sort-key placement: no DB.
"""
from __future__ import annotations

from datetime import datetime, timezone

from pair_todo.domain.tasks.capacity import CapacityGuard
from pair_todo.domain.tasks.models import Task
from pair_todo.domain.tasks.ordering import OrderingEngine, key_for_index, renumbered_keys

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _task(task_id: str, key: float) -> Task:
    return Task(
        id=task_id,
        owner_id="u1",
        title=task_id,
        completed=False,
        active=False,
        sort_key=key,
        created_at=T0,
        completed_at=None,
        activated_at=None,
    )


def test_key_for_empty_partition_is_zero():
    assert key_for_index([], 0) == 0.0
    assert key_for_index([], 5) == 0.0


def test_key_at_front_is_below_first():
    assert key_for_index([2.0, 5.0], 0) == 1.0


def test_key_at_or_past_end_is_above_last():
    assert key_for_index([2.0, 5.0], 2) == 6.0
    assert key_for_index([2.0, 5.0], 99) == 6.0


def test_key_in_middle_is_mean_of_neighbours():
    assert key_for_index([2.0, 5.0, 9.0], 1) == 3.5
    assert key_for_index([2.0, 5.0, 9.0], 2) == 7.0


def test_renumbered_keys_are_evenly_spaced():
    assert renumbered_keys(["a", "b", "c"], step=10) == {"a": 10, "b": 20, "c": 30}


def test_place_without_renumber():
    engine = OrderingEngine(CapacityGuard())
    placement = engine.place([_task("a", 0.0), _task("b", 1.0)], 1, "x")
    assert placement.sort_key == 0.5
    assert not placement.was_renumbered


def test_place_renumbers_when_gap_too_small():
    engine = OrderingEngine(CapacityGuard(), step=1000.0, min_gap=1e-6)
    siblings = [_task("a", 1.0), _task("b", 1.0 + 1e-7), _task("c", 2.0)]
    placement = engine.place(siblings, 1, "x")
    assert placement.was_renumbered
    # a, x, b, c
    assert placement.sort_key == 2000.0
    assert placement.renumbered == {"a": 1000.0, "b": 3000.0, "c": 4000.0}


def test_place_renumber_skips_unchanged_keys():
    engine = OrderingEngine(CapacityGuard(), step=1.0, min_gap=0.75)
    siblings = [_task("a", 1.0), _task("b", 2.0)]
    placement = engine.place(siblings, 1, "x")
    # mean 1.5 is too close; a keeps 1.0, x gets 2.0, b moves to 3.0
    assert placement.sort_key == 2.0
    assert placement.renumbered == {"b": 3.0}


def test_tail_appends():
    engine = OrderingEngine(CapacityGuard())
    assert engine.tail([_task("a", 4.0)], "x").sort_key == 5.0
    assert engine.tail([], "x").sort_key == 0.0


def test_repeated_front_insertion_stays_strictly_increasing():
    engine = OrderingEngine(CapacityGuard())
    tasks: list[Task] = []
    for i in range(50):
        placement = engine.place(tasks, 0, f"t{i}")
        if placement.was_renumbered:
            tasks = [_task(t.id, placement.renumbered.get(t.id, t.sort_key)) for t in tasks]
        tasks.insert(0, _task(f"t{i}", placement.sort_key))
    keys = [t.sort_key for t in tasks]
    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)
    assert [t.id for t in tasks] == [f"t{i}" for i in reversed(range(50))]


def test_repeated_midpoint_insertion_triggers_renumber():
    engine = OrderingEngine(CapacityGuard())
    tasks = [_task("lo", 0.0), _task("hi", 1.0)]
    renumbers = 0
    for i in range(80):
        placement = engine.place(tasks, 1, f"m{i}")
        if placement.was_renumbered:
            renumbers += 1
            tasks = [_task(t.id, placement.renumbered.get(t.id, t.sort_key)) for t in tasks]
        tasks.insert(1, _task(f"m{i}", placement.sort_key))
        keys = [t.sort_key for t in tasks]
        assert all(b > a for a, b in zip(keys, keys[1:]))
    assert renumbers >= 1
