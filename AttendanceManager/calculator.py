"""
Attendance statistics and calendar markings.

Everything here is a pure function of its arguments: callers load the
attendance log and settings and pass them in on every call.
"""
import math
from fractions import Fraction
from typing import Dict, Iterable, Optional, Tuple

from entities import (
    AttendanceRecord,
    AttendanceStatus,
    Holiday,
    OverallStats,
    SubjectStats,
)

# Reported when no finite number of classes satisfies the target
UNBOUNDED = 9999

LIGHT_COLORS = {
    'primary': '#2563EB',
    'secondary': '#38BDF8',
    'accent': '#10B981',
    'background': '#F9FAFB',
    'surface': '#FFFFFF',
    'text': '#111827',
    'textSecondary': '#6B7280',
    'border': '#E5E7EB',
    'error': '#EF4444',
    'success': '#10B981',
    'warning': '#F59E0B',
    'info': '#3B82F6',
}

DARK_COLORS = {
    **LIGHT_COLORS,
    'primary': '#3B82F6',
    'background': '#111827',
    'surface': '#1F2937',
    'text': '#F9FAFB',
    'textSecondary': '#9CA3AF',
    'border': '#374151',
}

THEMES = {'light': LIGHT_COLORS, 'dark': DARK_COLORS}

STATUS_COLOR_KEYS = {
    AttendanceStatus.PRESENT: 'success',
    AttendanceStatus.ABSENT: 'error',
    AttendanceStatus.HALF: 'warning',
    AttendanceStatus.HOLIDAY: 'textSecondary',
    AttendanceStatus.CANCELLED: 'textSecondary',
}
HOLIDAY_COLOR_KEY = 'textSecondary'

# Same-day records from different subjects: the highest rank is shown
STATUS_SEVERITY = {
    AttendanceStatus.ABSENT: 4,
    AttendanceStatus.HALF: 3,
    AttendanceStatus.PRESENT: 2,
    AttendanceStatus.HOLIDAY: 1,
    AttendanceStatus.CANCELLED: 0,
}


def count_statuses(records: Iterable[AttendanceRecord],
                   subject_id: Optional[str] = None) -> Tuple[int, int, int]:
    """Return (present, absent, half) counts, optionally for one subject."""
    present = absent = half = 0
    for record in records:
        if subject_id is not None and record.subject_id != subject_id:
            continue
        status = record.status
        if status is AttendanceStatus.PRESENT:
            present += 1
        elif status is AttendanceStatus.ABSENT:
            absent += 1
        elif status is AttendanceStatus.HALF:
            half += 1
        # holiday and cancelled are not classes held
    return present, absent, half


def calculate_bunkable(attended: Fraction, total: int, target) -> int:
    """
    Largest number of further absences that keeps attendance at or above target.

    Formula: b = floor(attended * 100 / target - total), never negative.
    A target of 0 can never be missed, so the answer is UNBOUNDED.
    """
    target = Fraction(target)
    if target <= 0:
        return UNBOUNDED
    return max(0, math.floor(attended * 100 / target - total))


def calculate_required(attended: Fraction, total: int, target) -> int:
    """
    Smallest number of consecutive presents needed to reach target.

    Formula: r = ceil((target * total - 100 * attended) / (100 - target)),
    never negative. Targets of 100 or more are unreachable once a class
    has been missed, which reports UNBOUNDED.
    """
    target = Fraction(target)
    deficit = target * total - 100 * attended
    if deficit <= 0:
        return 0
    if target >= 100:
        return UNBOUNDED
    return max(0, math.ceil(deficit / (100 - target)))


def _summarise(present: int, absent: int, half: int, target):
    total = present + absent + half
    attended = present + Fraction(half, 2)
    attended_equivalent = present + half * 0.5
    percentage = 0.0 if total == 0 else (attended_equivalent / total) * 100

    bunkable = calculate_bunkable(attended, total, target)
    required = calculate_required(attended, total, target)
    if total == 0:
        bunkable = required = 0
    elif percentage >= target:
        required = 0
    else:
        # float percentage may sit just under a target the exact fraction meets
        bunkable = 0
        required = max(required, 1)
    return total, attended_equivalent, percentage, bunkable, required


def calculate_subject_stats(subject_id: str, subject_name: str,
                            all_attendance: Iterable[AttendanceRecord],
                            target_percentage) -> SubjectStats:
    """
    Compute attendance statistics for one subject.

    Args:
        subject_id: Subject whose records are counted
        subject_name: Display name copied into the result
        all_attendance: Full attendance log, any subject
        target_percentage: Target attendance (0-100)

    Returns:
        SubjectStats; records marked holiday or cancelled are ignored
    """
    present, absent, half = count_statuses(all_attendance, subject_id)
    total, attended_equivalent, percentage, bunkable, required = _summarise(
        present, absent, half, target_percentage)
    return SubjectStats(
        subject_id=subject_id,
        subject_name=subject_name,
        present=present,
        absent=absent,
        half=half,
        total=total,
        attended_equivalent=attended_equivalent,
        percentage=percentage,
        bunkable=bunkable,
        required=required,
    )


def calculate_overall_stats(all_attendance: Iterable[AttendanceRecord],
                            target_percentage) -> OverallStats:
    """Compute attendance statistics across every subject combined."""
    present, absent, half = count_statuses(all_attendance)
    total, attended_equivalent, percentage, bunkable, required = _summarise(
        present, absent, half, target_percentage)
    return OverallStats(
        present=present,
        absent=absent,
        half=half,
        total=total,
        attended_equivalent=attended_equivalent,
        percentage=percentage,
        bunkable=bunkable,
        required=required,
    )


def is_on_track(stats, target_percentage) -> bool:
    return stats.percentage >= target_percentage


def get_status_color(status: AttendanceStatus, colors: Dict[str, str] = LIGHT_COLORS) -> str:
    return colors[STATUS_COLOR_KEYS[status]]


def get_calendar_marked_dates(attendance: Iterable[AttendanceRecord],
                              holidays: Iterable[Holiday],
                              colors: Dict[str, str] = LIGHT_COLORS) -> Dict[str, dict]:
    """
    Build per-date calendar markings.

    Attendance records win over holiday ranges on the same date. When
    several records share a date the most severe status is shown
    (absent > half > present > holiday > cancelled).
    """
    by_date: Dict[str, AttendanceStatus] = {}
    for record in attendance:
        day = record.date.isoformat()
        current = by_date.get(day)
        if current is None or STATUS_SEVERITY[record.status] > STATUS_SEVERITY[current]:
            by_date[day] = record.status

    marked: Dict[str, dict] = {}
    for day, status in by_date.items():
        marked[day] = {
            'marked': True,
            'dotColor': get_status_color(status, colors),
            'status': status.value,
        }

    for holiday in holidays:
        for day in (d.isoformat() for d in holiday.days()):
            if day in marked:
                continue
            marked[day] = {
                'marked': True,
                'dotColor': colors[HOLIDAY_COLOR_KEY],
                'status': AttendanceStatus.HOLIDAY.value,
                'note': holiday.note,
            }
    return marked
