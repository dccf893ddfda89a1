"""
Telegram text rendering and handler helpers (pure, no bot).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pair_todo.domain.common.errors import CapacityExceededError, NotFoundError
from pair_todo.domain.tasks.models import Comment, PartnerBoard, Task, TaskBoard
from pair_todo.ui.telegram.handlers._common import error_text, owner_id_of, resolve_partner_ref, resolve_ref
from pair_todo.ui.telegram.keyboards.comments import inbox_kb
from pair_todo.ui.telegram.keyboards.tasks import board_kb
from pair_todo.ui.telegram.texts.tasks import (
    CAPACITY_HINT,
    GENERIC_FAILURE,
    render_board,
    render_comment_inbox,
    render_completed,
    render_partner_board,
)

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _task(task_id, title, active=False, completed=False, key=0.0, activated_days_ago=0) -> Task:
    return Task(
        id=task_id,
        owner_id="1",
        title=title,
        completed=completed,
        active=active,
        sort_key=key,
        created_at=NOW - timedelta(days=30),
        completed_at=NOW if completed else None,
        activated_at=NOW - timedelta(days=activated_days_ago) if active else None,
    )


def _board(active, master, completed_this_week=0, unread=None) -> TaskBoard:
    active_open = [t for t in active if not t.completed]
    return TaskBoard(
        active=active,
        active_open=active_open,
        master=master,
        completed_this_week=completed_this_week,
        needs_top_off=len(active_open) < 3,
        unread_comments=unread or {},
    )


def test_render_board_lists_refs_and_counts():
    board = _board(
        [_task("a", "Focus <one>", active=True, activated_days_ago=20), _task("b", "Done", active=True, completed=True)],
        [_task("m", "Later")],
        completed_this_week=2,
    )
    text = render_board(board, NOW)
    assert "Active tasks (1/3)" in text
    assert "<b>a1</b> Focus &lt;one&gt;" in text
    assert "💀20d" in text
    assert "<b>a2</b> Done" in text
    assert "<b>m1</b> Later" in text
    assert "Room for more" in text
    assert "Completed this week: <b>2</b>" in text


def test_render_board_full_active_has_no_top_off_hint():
    board = _board([_task(str(i), f"t{i}", active=True) for i in range(3)], [])
    text = render_board(board, NOW)
    assert "Room for more" not in text
    assert "Master list (0 tasks)" in text


def test_render_partner_board():
    assert "No partner linked" in render_partner_board(PartnerBoard(partner_id=None), NOW)
    text = render_partner_board(
        PartnerBoard(partner_id="42", active_tasks=[_task("x", "Theirs", active=True)], completed_this_week=3),
        NOW,
    )
    assert "Partner 42" in text
    assert "Theirs" in text
    assert "<b>3</b>" in text


def test_render_completed_uses_local_time():
    assert render_completed([], "America/New_York") == "Nothing completed yet."
    text = render_completed([_task("x", "Shipped", completed=True)], "America/New_York")
    # 12:00 UTC is 07:00 EST
    assert "2024-01-10 07:00" in text


def test_resolve_ref():
    board = _board([_task("a", "A", active=True)], [_task("m1", "M1"), _task("m2", "M2")])
    assert resolve_ref(board, "a1").id == "a"
    assert resolve_ref(board, "M2").id == "m2"
    assert resolve_ref(board, "a2") is None
    assert resolve_ref(board, "m0") is None
    assert resolve_ref(board, "x1") is None
    assert resolve_ref(board, "") is None


def test_error_text():
    assert CAPACITY_HINT in error_text(CapacityExceededError())
    assert error_text(NotFoundError("Task not found.")) == "Task not found."
    assert error_text(RuntimeError("boom")) == GENERIC_FAILURE


def test_owner_id_is_telegram_id_string():
    assert owner_id_of(12345) == "12345"


def test_board_keyboard_callbacks():
    board = _board(
        [_task("a", "A", active=True), _task("b", "B", active=True, completed=True)],
        [_task("m", "M")],
    )
    kb = board_kb(board)
    data = [btn.callback_data for row in kb.inline_keyboard for btn in row]
    assert data == ["tk:done:a", "tk:deact:a", "tk:undo:b", "tk:deact:b", "tk:act:m", "tk:del:m"]


def _comment(comment_id, task_id, content) -> Comment:
    return Comment(
        id=comment_id,
        task_id=task_id,
        task_owner_id="1",
        author_id="2",
        content=content,
        created_at=NOW,
        updated_at=NOW,
    )


def test_render_board_shows_unread_badge():
    board = _board([_task("a", "A", active=True)], [_task("m", "M")], unread={"m": 2})
    text = render_board(board, NOW)
    assert "<b>m1</b> M 💬2" in text
    assert "💬" not in text.split("\n")[1]


def test_partner_board_uses_p_refs():
    board = PartnerBoard(
        partner_id="42",
        active_tasks=[_task("x", "First", active=True), _task("y", "Second", active=True)],
    )
    text = render_partner_board(board, NOW)
    assert "<b>p1</b> First" in text
    assert "<b>p2</b> Second" in text
    assert resolve_partner_ref(board, "p2").id == "y"
    assert resolve_partner_ref(board, "P1").id == "x"
    assert resolve_partner_ref(board, "p3") is None
    assert resolve_partner_ref(board, "a1") is None


def test_render_completed_with_weekly_counts():
    text = render_completed([_task("x", "Shipped", completed=True)], "America/New_York", 2, 5)
    assert "This week: <b>2</b>, last week: <b>5</b>" in text
    # no counts, no line
    assert "last week" not in render_completed([_task("x", "Shipped", completed=True)], "America/New_York")


def test_render_comment_inbox():
    assert render_comment_inbox([], {}, "America/New_York") == "No unread comments."
    comments = [_comment("c9", "t1", "Looks <good>"), _comment("c8", "gone", "?")]
    text = render_comment_inbox(comments, {"t1": "Report"}, "America/New_York")
    assert "Unread comments (2)" in text
    assert "<b>c1</b> on <i>Report</i> (2024-01-10 07:00)" in text
    assert "💬 Looks &lt;good&gt;" in text
    assert "<b>c2</b> on <i>?</i>" in text


def test_inbox_keyboard_callbacks():
    kb = inbox_kb([_comment("c9", "t1", "a"), _comment("c8", "t1", "b")])
    buttons = [btn for row in kb.inline_keyboard for btn in row]
    assert [b.callback_data for b in buttons] == ["cm:read:c9", "cm:read:c8"]
    assert [b.text for b in buttons] == ["👁 c1", "👁 c2"]
