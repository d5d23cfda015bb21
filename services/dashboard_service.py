"""Home page summary: open work, today's schedule and inbox backlog."""

from datetime import datetime

import pytz

UPCOMING_LIMIT = 5


def _zone(time_zone):
    try:
        return pytz.timezone(time_zone or 'UTC')
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def local_today(time_zone='UTC', now=None):
    """Current calendar date in the user's stored time zone."""
    now = now or datetime.now(pytz.UTC)
    return now.astimezone(_zone(time_zone)).date()


def local_date(value, time_zone='UTC'):
    """Calendar date of a stored (naive UTC) timestamp in the user's time zone."""
    return pytz.UTC.localize(value).astimezone(_zone(time_zone)).date()


def completion_rate(tasks):
    if not tasks:
        return 0
    done = sum(1 for t in tasks if t.status == 'completed')
    return int(round(done * 100.0 / len(tasks)))


def summarize(tasks, blocks, inbox_items, today, time_zone='UTC'):
    """
    Counts and short lists for the home page.

    tasks are expected newest first (store order); blocks in any order.
    `today` and the block dates are both taken in `time_zone`.
    """
    open_tasks = [t for t in tasks if t.status != 'completed']
    today_blocks = sorted(
        (b for b in blocks if local_date(b.start_time, time_zone) == today),
        key=lambda b: b.start_time,
    )
    return {
        'date': today.isoformat(),
        'openTasks': len(open_tasks),
        'blocksToday': len(today_blocks),
        'inboxUnprocessed': sum(1 for i in inbox_items if not i.is_processed),
        'completionRate': completion_rate(tasks),
        'upcomingTasks': [t.to_dict() for t in open_tasks[:UPCOMING_LIMIT]],
        'todayBlocks': [b.to_dict() for b in today_blocks],
    }
