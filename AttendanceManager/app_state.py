"""
Application state: the whole data set plus the operations that change it.

Every mutation is written to storage first and only then applied to the
in-memory copy, so a failed save leaves the state untouched. Mutations that
touch several collections write them in a single transaction.
"""
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

import storage
from entities import (
    AttendanceRecord,
    AttendanceStatus,
    ClassSchedule,
    Holiday,
    RescheduledClass,
    Settings,
    Subject,
)

log = logging.getLogger(__name__)

DEFAULT_TARGET_PERCENTAGE = 75
DEFAULT_TERM_DAYS = 90


def weekday_of(day: date) -> int:
    """Weekday index with 0 = Sunday, matching ClassSchedule.weekday."""
    return (day.weekday() + 1) % 7


class NotFoundError(LookupError):
    pass


def _find(items, item_id, kind):
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    raise NotFoundError(f"{kind} not found: {item_id}")


def _upsert(attendance, record):
    """Copy of ``attendance`` with ``record`` replacing any entry for the same class and date."""
    updated = list(attendance)
    for index, existing in enumerate(updated):
        if existing.class_id == record.class_id and existing.date == record.date:
            updated[index] = record
            break
    else:
        updated.append(record)
    return updated


class AppState:
    def __init__(self, settings: Optional[Settings] = None, subjects=None, classes=None,
                 attendance=None, holidays=None, rescheduled=None,
                 default_target: int = DEFAULT_TARGET_PERCENTAGE):
        self.settings = settings
        self.subjects: List[Subject] = list(subjects or [])
        self.classes: List[ClassSchedule] = list(classes or [])
        self.attendance: List[AttendanceRecord] = list(attendance or [])
        self.holidays: List[Holiday] = list(holidays or [])
        self.rescheduled: List[RescheduledClass] = list(rescheduled or [])
        self.default_target = default_target

    @classmethod
    def load(cls, default_target: int = DEFAULT_TARGET_PERCENTAGE) -> "AppState":
        return cls(
            settings=storage.get_settings(),
            subjects=storage.get_subjects(),
            classes=storage.get_classes(),
            attendance=storage.get_attendance(),
            holidays=storage.get_holidays(),
            rescheduled=storage.get_rescheduled_classes(),
            default_target=default_target,
        )

    # --- Targets ---

    @property
    def target_percentage(self) -> int:
        if self.settings is None:
            return self.default_target
        return self.settings.target_percentage

    def target_for(self, subject: Subject) -> int:
        """Per-subject override, falling back to the global target."""
        if subject.target_percentage is not None:
            return subject.target_percentage
        return self.target_percentage

    # --- Settings ---

    def update_settings(self, settings: Settings):
        storage.save_settings(settings)
        self.settings = settings

    def complete_onboarding(self, term_start: Optional[date] = None, term_end: Optional[date] = None,
                            target_percentage: Optional[int] = None, week_start: int = 1) -> Settings:
        start = term_start or date.today()
        end = term_end or start + timedelta(days=DEFAULT_TERM_DAYS)
        settings = Settings(
            target_percentage=self.default_target if target_percentage is None else target_percentage,
            term_start=start,
            term_end=end,
            week_start=week_start,
            is_onboarded=True,
            notifications_enabled=True,
            reminder_minutes_before=10,
        )
        self.update_settings(settings)
        log.info("Onboarding complete, term %s..%s", start, end)
        return settings

    # --- Subjects ---

    def get_subject(self, subject_id: str) -> Subject:
        return self.subjects[_find(self.subjects, subject_id, 'Subject')]

    def add_subject(self, subject: Subject):
        if any(s.id == subject.id for s in self.subjects):
            raise ValueError(f"Subject already exists: {subject.id}")
        updated = self.subjects + [subject]
        storage.save_subjects(updated)
        self.subjects = updated

    def update_subject(self, subject_id: str, updates: dict) -> Subject:
        """Apply a partial update given in stored (camelCase) form."""
        index = _find(self.subjects, subject_id, 'Subject')
        updated = list(self.subjects)
        updated[index] = Subject.model_validate({**updated[index].to_dict(), **updates, 'id': subject_id})
        storage.save_subjects(updated)
        self.subjects = updated
        return updated[index]

    def delete_subject(self, subject_id: str):
        """Delete a subject together with its classes and attendance."""
        _find(self.subjects, subject_id, 'Subject')
        subjects = [s for s in self.subjects if s.id != subject_id]
        classes = [c for c in self.classes if c.subject_id != subject_id]
        attendance = [a for a in self.attendance if a.subject_id != subject_id]
        storage.save_collections({
            storage.KEYS['SUBJECTS']: subjects,
            storage.KEYS['CLASSES']: classes,
            storage.KEYS['ATTENDANCE']: attendance,
        })
        log.debug("Deleted subject %s (%d classes, %d records)", subject_id,
                  len(self.classes) - len(classes), len(self.attendance) - len(attendance))
        self.subjects, self.classes, self.attendance = subjects, classes, attendance

    # --- Classes ---

    def get_class(self, class_id: str) -> ClassSchedule:
        return self.classes[_find(self.classes, class_id, 'Class')]

    def add_class(self, class_schedule: ClassSchedule):
        self.get_subject(class_schedule.subject_id)
        if any(c.id == class_schedule.id for c in self.classes):
            raise ValueError(f"Class already exists: {class_schedule.id}")
        updated = self.classes + [class_schedule]
        storage.save_classes(updated)
        self.classes = updated

    def update_class(self, class_id: str, updates: dict) -> ClassSchedule:
        index = _find(self.classes, class_id, 'Class')
        updated = list(self.classes)
        updated[index] = ClassSchedule.model_validate({**updated[index].to_dict(), **updates, 'id': class_id})
        self.get_subject(updated[index].subject_id)
        storage.save_classes(updated)
        self.classes = updated
        return updated[index]

    def delete_class(self, class_id: str):
        """Delete a class together with its attendance."""
        _find(self.classes, class_id, 'Class')
        classes = [c for c in self.classes if c.id != class_id]
        attendance = [a for a in self.attendance if a.class_id != class_id]
        storage.save_collections({
            storage.KEYS['CLASSES']: classes,
            storage.KEYS['ATTENDANCE']: attendance,
        })
        self.classes, self.attendance = classes, attendance

    def todays_classes(self, day: Optional[date] = None) -> List[dict]:
        """Classes scheduled on the given date with their subject and record."""
        day = day or date.today()
        weekday = weekday_of(day)
        subjects = {s.id: s for s in self.subjects}
        records = {(a.class_id, a.date): a for a in self.attendance}
        todays = sorted((c for c in self.classes if c.weekday == weekday),
                        key=lambda c: c.start_time)
        return [
            {
                'class': c,
                'subject': subjects.get(c.subject_id),
                'attendance': records.get((c.id, day)),
            }
            for c in todays
        ]

    def timetable(self) -> Dict[int, List[ClassSchedule]]:
        """Classes grouped by weekday, each day sorted by start time."""
        grouped: Dict[int, List[ClassSchedule]] = {}
        for c in self.classes:
            grouped.setdefault(c.weekday, []).append(c)
        for day in grouped:
            grouped[day].sort(key=lambda c: c.start_time)
        return grouped

    # --- Attendance ---

    def mark_attendance(self, record: AttendanceRecord) -> AttendanceRecord:
        """Insert a record, replacing any existing one for the same class and date."""
        updated = _upsert(self.attendance, record)
        storage.save_attendance(updated)
        self.attendance = updated
        return record

    def update_attendance(self, record_id: str, status: AttendanceStatus) -> AttendanceRecord:
        index = _find(self.attendance, record_id, 'Attendance record')
        updated = list(self.attendance)
        updated[index] = updated[index].model_copy(update={'status': AttendanceStatus(status)})
        storage.save_attendance(updated)
        self.attendance = updated
        return updated[index]

    # --- Holidays ---

    def add_holiday(self, holiday: Holiday):
        if any(h.id == holiday.id for h in self.holidays):
            raise ValueError(f"Holiday already exists: {holiday.id}")
        updated = self.holidays + [holiday]
        storage.save_holidays(updated)
        self.holidays = updated

    def delete_holiday(self, holiday_id: str):
        _find(self.holidays, holiday_id, 'Holiday')
        updated = [h for h in self.holidays if h.id != holiday_id]
        storage.save_holidays(updated)
        self.holidays = updated

    def mark_day_as_holiday(self, day: date, note: str = 'Holiday') -> Holiday:
        """Record a one-day holiday and mark every class held that weekday as holiday."""
        holiday = Holiday(id=f"holiday_{day}", start_date=day, end_date=day, note=note)
        holidays = list(self.holidays)
        if not any(h.id == holiday.id for h in holidays):
            holidays.append(holiday)

        weekday = weekday_of(day)
        attendance = self.attendance
        for c in self.classes:
            if c.weekday == weekday:
                attendance = _upsert(attendance, AttendanceRecord(
                    id=AttendanceRecord.make_id(c.id, day),
                    class_id=c.id,
                    subject_id=c.subject_id,
                    date=day,
                    status=AttendanceStatus.HOLIDAY,
                ))

        storage.save_collections({
            storage.KEYS['HOLIDAYS']: holidays,
            storage.KEYS['ATTENDANCE']: attendance,
        })
        self.holidays, self.attendance = holidays, attendance
        return holiday

    # --- Rescheduled classes ---

    def add_rescheduled_class(self, rescheduled: RescheduledClass):
        self.get_class(rescheduled.original_class_id)
        if any(r.id == rescheduled.id for r in self.rescheduled):
            raise ValueError(f"Rescheduled class already exists: {rescheduled.id}")
        updated = self.rescheduled + [rescheduled]
        storage.save_rescheduled_classes(updated)
        self.rescheduled = updated

    def delete_rescheduled_class(self, rescheduled_id: str):
        _find(self.rescheduled, rescheduled_id, 'Rescheduled class')
        updated = [r for r in self.rescheduled if r.id != rescheduled_id]
        storage.save_rescheduled_classes(updated)
        self.rescheduled = updated
