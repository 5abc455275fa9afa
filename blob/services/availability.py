"""Work-window arithmetic shared by task generation and scheduling."""
from __future__ import annotations

from datetime import time
from typing import Optional, Tuple

MIN_AVAILABLE_HOURS = 1.0

# (start, end) in minutes after midnight.
ENERGY_PEAKS = {
    "morning": (9 * 60, 11 * 60),
    "afternoon": (13 * 60, 15 * 60),
    "evening": (16 * 60, 18 * 60),
}


def time_to_minutes(value: time | str) -> int:
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = [int(part) for part in str(value).split(":")[:2]]
    return (hours * 60) + minutes


def minutes_to_time(total_minutes: int) -> str:
    total_minutes %= 24 * 60
    hours = total_minutes // 60
    minutes = total_minutes % 60
    return f"{hours:02d}:{minutes:02d}"


def available_hours(work_start: time | str, work_end: time | str, break_minutes: int) -> float:
    """Hours left in the work window after breaks, never less than one."""
    window = time_to_minutes(work_end) - time_to_minutes(work_start)
    hours = (window - max(break_minutes, 0)) / 60
    return round(max(MIN_AVAILABLE_HOURS, hours), 2)


def energy_peak_window(
    energy_pattern: Optional[str],
    work_start: time | str,
    work_end: time | str,
) -> Tuple[int, int]:
    """Peak-energy window clipped to the work window.

    Unknown patterns use the morning window. If the clipped window is empty the
    first two hours of the work window are used.
    """
    start = time_to_minutes(work_start)
    end = time_to_minutes(work_end)
    peak_start, peak_end = ENERGY_PEAKS.get(energy_pattern or "", ENERGY_PEAKS["morning"])
    clipped = (max(peak_start, start), min(peak_end, end))
    if clipped[0] >= clipped[1]:
        return start, min(start + 120, end)
    return clipped
