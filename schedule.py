from datetime import date, datetime, timedelta
from typing import Iterable, List, NamedTuple

MINUTES_PER_HOUR = 60
DAYS_PER_WEEK = 7


class BlockPlacement(NamedTuple):
    block: object
    hour_row: int
    top_offset: float
    height_fraction: float

    def to_dict(self):
        block = self.block.to_dict() if hasattr(self.block, "to_dict") else self.block
        return {
            "block": block,
            "hourRow": self.hour_row,
            "topOffset": self.top_offset,
            "heightFraction": self.height_fraction,
        }


class DayColumn(NamedTuple):
    day: date
    day_start: datetime
    day_end: datetime
    placements: List[BlockPlacement]

    def to_dict(self):
        return {
            "date": self.day.isoformat(),
            "dayStart": self.day_start.isoformat() + "Z",
            "dayEnd": self.day_end.isoformat() + "Z",
            "placements": [p.to_dict() for p in self.placements],
        }


def _js_weekday(day: date) -> int:
    """Weekday numbered 0 = Sunday .. 6 = Saturday."""
    return day.isoweekday() % 7


def week_start(reference_date: date, week_start_day: int) -> date:
    """First day of the week containing reference_date (0 = Sunday, 1 = Monday)."""
    if week_start_day not in (0, 1):
        raise ValueError(f"week_start_day must be 0 or 1, got {week_start_day!r}")
    if isinstance(reference_date, datetime):
        reference_date = reference_date.date()
    offset = (_js_weekday(reference_date) - week_start_day) % DAYS_PER_WEEK
    return reference_date - timedelta(days=offset)


def week_days(reference_date: date, week_start_day: int) -> List[date]:
    first = week_start(reference_date, week_start_day)
    return [first + timedelta(days=i) for i in range(DAYS_PER_WEEK)]


def place_block(block) -> BlockPlacement:
    """Grid coordinates of a block relative to the hour row containing its start."""
    start, end = block.start_time, block.end_time
    duration_minutes = (end - start).total_seconds() / 60.0
    return BlockPlacement(
        block=block,
        hour_row=start.hour,
        top_offset=start.minute / MINUTES_PER_HOUR,
        # Longer than an hour overflows into the following rows; never split.
        height_fraction=duration_minutes / MINUTES_PER_HOUR,
    )


def project_week(blocks: Iterable, reference_date: date, week_start_day: int) -> List[DayColumn]:
    """
    Map time blocks onto a 7 day x 24 hour grid for the week containing
    reference_date.

    A block belongs to the day containing its start instant, even when it runs
    past midnight. Blocks starting outside the week are left out, as are blocks
    whose end is not after their start (nothing to render). Overlapping blocks
    are not reflowed. Each column is ordered by start time.
    """
    days = week_days(reference_date, week_start_day)
    columns = {
        day: DayColumn(day, datetime.combine(day, datetime.min.time()),
                       datetime.combine(day + timedelta(days=1), datetime.min.time()), [])
        for day in days
    }

    for block in sorted(blocks, key=lambda b: b.start_time):
        column = columns.get(block.start_time.date())
        if column is None:
            continue
        placement = place_block(block)
        if placement.height_fraction <= 0:
            continue
        column.placements.append(placement)

    return [columns[day] for day in days]
