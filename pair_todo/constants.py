"""
Constants for task partitions, capacity and ordering.
"""
from __future__ import annotations

# Capacity ceiling: open (incomplete) tasks in the active partition per owner
ACTIVE_TASK_LIMIT = 3

# Title validation
TITLE_MAX_LENGTH = 200

# Week boundary: Wednesday 18:00 civil time in WEEK_TIMEZONE
WEEK_TIMEZONE = "America/New_York"
WEEK_START_WEEKDAY = 2  # Monday=0
WEEK_START_HOUR = 18

# Sort keys
SORT_KEY_STEP = 1000.0
SORT_KEY_MIN_GAP = 1e-6

# Task age thresholds (days since activation)
TASK_AGE_FRESH_DAYS = 7
TASK_AGE_AGING_DAYS = 15

CAPACITY_EXCEEDED_MESSAGE = (
    f"Active task limit reached: you can only have {ACTIVE_TASK_LIMIT} active tasks at a time"
)

# Partner comments
COMMENT_MAX_LENGTH = 500
