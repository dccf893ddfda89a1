from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from pair_todo.constants import ACTIVE_TASK_LIMIT
from pair_todo.domain.tasks.age import task_age
from pair_todo.domain.tasks.models import Comment, PartnerBoard, Task, TaskBoard

HELP = (
    "Commands:\n"
    "/list - your active tasks and master list\n"
    "/add &lt;title&gt; - add to the master list\n"
    "/addactive &lt;title&gt; - add straight to active\n"
    "/done &lt;ref&gt;, /undo &lt;ref&gt; - complete / reopen\n"
    "/rename &lt;ref&gt; &lt;title&gt;\n"
    "/activate &lt;ref&gt;, /deactivate &lt;ref&gt;\n"
    "/move &lt;ref&gt; &lt;active|master&gt; &lt;position&gt;\n"
    "/delete &lt;ref&gt;\n"
    "/completed - everything you have finished\n"
    "/partner - your partner's active tasks\n"
    "/link &lt;telegram id&gt;, /unlink\n"
    "/rebalance - tidy up list ordering\n"
    "/toggle &lt;ref&gt; - flip done / not done\n"
    "/comment p&lt;N&gt; &lt;text&gt;, /uncomment p&lt;N&gt; - note on your partner's task\n"
    "/comments - unread notes on your tasks\n\n"
    "A ref is a1, a2, ... for active tasks or m1, m2, ... for the master list; "
    "p1, p2, ... are your partner's active tasks as shown by /partner."
)

CAPACITY_HINT = "Complete or remove an active task first."
NOT_FOUND = "No such task. Use /list to see the refs."
GENERIC_FAILURE = "Something went wrong. Please try again."


def _task_line(ref: str, task: Task, now: datetime, show_age: bool, unread: int = 0) -> str:
    mark = "✅" if task.completed else "▫️"
    line = f"{mark} <b>{ref}</b> {escape(task.title)}"
    if show_age and not task.completed:
        age = task_age(task.activated_at, now)
        line += f" {age.icon}{age.days_old}d"
    if unread:
        line += f" 💬{unread}"
    return line


def render_board(board: TaskBoard, now: datetime) -> str:
    lines = [f"<b>Active tasks ({len(board.active_open)}/{ACTIVE_TASK_LIMIT})</b>"]
    if board.active:
        for i, task in enumerate(board.active, start=1):
            lines.append(_task_line(f"a{i}", task, now, show_age=True, unread=board.unread_comments.get(task.id, 0)))
    else:
        lines.append("- none")

    if board.needs_top_off:
        lines.append("<i>Room for more: pull something up from the master list.</i>")

    lines.append("")
    lines.append(f"<b>Master list ({len(board.master)} tasks)</b>")
    if board.master:
        for i, task in enumerate(board.master, start=1):
            lines.append(_task_line(f"m{i}", task, now, show_age=False, unread=board.unread_comments.get(task.id, 0)))
    else:
        lines.append("- empty")

    lines.append("")
    lines.append(f"Completed this week: <b>{board.completed_this_week}</b>")
    return "\n".join(lines)


def render_partner_board(board: PartnerBoard, now: datetime) -> str:
    if board.partner_id is None:
        return "No partner linked yet. Use /link &lt;telegram id&gt;."
    lines = [f"<b>Partner {escape(board.partner_id)}: active tasks</b>"]
    if board.active_tasks:
        for i, task in enumerate(board.active_tasks, start=1):
            lines.append(_task_line(f"p{i}", task, now, show_age=True))
    else:
        lines.append("- none")
    lines.append("")
    lines.append(f"Completed this week: <b>{board.completed_this_week}</b>")
    return "\n".join(lines)


def _local(dt: datetime, tz: ZoneInfo) -> str:
    return dt.astimezone(tz).strftime("%Y-%m-%d %H:%M")


def render_completed(
    tasks: Sequence[Task],
    tz_name: str,
    this_week: Optional[int] = None,
    last_week: Optional[int] = None,
) -> str:
    if not tasks:
        return "Nothing completed yet."
    tz = ZoneInfo(tz_name)
    lines = [f"<b>Completed ({len(tasks)})</b>"]
    if this_week is not None and last_week is not None:
        lines.append(f"This week: <b>{this_week}</b>, last week: <b>{last_week}</b>")
    for task in tasks:
        when = _local(task.completed_at, tz) if task.completed_at else "?"
        lines.append(f"✅ {escape(task.title)} <i>{when}</i>")
    return "\n".join(lines)


def render_comment_inbox(comments: Sequence[Comment], titles: Mapping[str, str], tz_name: str) -> str:
    if not comments:
        return "No unread comments."
    tz = ZoneInfo(tz_name)
    lines = [f"<b>Unread comments ({len(comments)})</b>"]
    for i, comment in enumerate(comments, start=1):
        title = titles.get(comment.task_id, "?")
        lines.append(
            f"<b>c{i}</b> on <i>{escape(title)}</i> ({_local(comment.updated_at, tz)}):\n"
            f"💬 {escape(comment.content)}"
        )
    return "\n".join(lines)
