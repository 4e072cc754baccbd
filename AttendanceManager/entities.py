"""Entities of the attendance data set, stored and served as camelCase JSON."""
from datetime import date as date_type, timedelta
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Longest holiday range accepted, in days
MAX_HOLIDAY_DAYS = 366

Target = Annotated[int, Field(ge=0, le=100, strict=True)]
WeekStart = Annotated[int, Field(ge=0, le=1, strict=True)]   # 0 = Sunday, 1 = Monday

_date_adapter = TypeAdapter(date_type)


def parse_date(value) -> date_type:
    """Parse an ISO date (or pass a date through); raises ValidationError."""
    return _date_adapter.validate_python(value)


def _hh_mm(value) -> str:
    try:
        hours, minutes = (int(part) for part in str(value).split(':'))
    except ValueError:
        raise ValueError('time must be HH:mm')
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError('time must be HH:mm')
    return f"{hours:02d}:{minutes:02d}"


class AttendanceStatus(str, Enum):
    PRESENT = 'present'
    ABSENT = 'absent'
    HALF = 'half'
    HOLIDAY = 'holiday'
    CANCELLED = 'cancelled'


class Entity(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class Subject(Entity):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    color: str = '#2563EB'
    code: Optional[str] = None
    target_percentage: Optional[Target] = None


class ClassSchedule(Entity):
    id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    weekday: int = Field(ge=0, le=6)      # 0 = Sunday .. 6 = Saturday
    start_time: str
    duration_minutes: int = Field(60, gt=0)

    @field_validator('start_time', mode='before')
    @classmethod
    def check_start_time(cls, value):
        return _hh_mm(value)


class AttendanceRecord(Entity):
    id: str = ''
    class_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    date: date_type
    status: AttendanceStatus
    is_rescheduled: Optional[bool] = None

    @staticmethod
    def make_id(class_id: str, day) -> str:
        return f"{class_id}_{day}"

    @model_validator(mode='after')
    def default_id(self):
        if not self.id:
            self.id = self.make_id(self.class_id, self.date)
        return self


class Holiday(Entity):
    id: str = Field(min_length=1)
    start_date: date_type
    end_date: Optional[date_type] = None
    note: str = ''

    @model_validator(mode='after')
    def check_range(self):
        if self.end_date is None:
            self.end_date = self.start_date
        if (self.end_date - self.start_date).days >= MAX_HOLIDAY_DAYS:
            raise ValueError(f"holiday cannot span more than {MAX_HOLIDAY_DAYS} days")
        return self

    def days(self) -> List[date_type]:
        """Every date in the inclusive range; empty when the range is inverted."""
        span = (self.end_date - self.start_date).days
        return [self.start_date + timedelta(days=i) for i in range(span + 1)]


class RescheduledClass(Entity):
    id: str = Field(min_length=1)
    original_class_id: str = Field(min_length=1)
    original_date: date_type
    subject_id: str = Field(min_length=1)
    new_date: date_type
    new_time: str
    duration_minutes: int = Field(60, gt=0)
    reason: Optional[str] = None

    @field_validator('new_time', mode='before')
    @classmethod
    def check_new_time(cls, value):
        return _hh_mm(value)


class Settings(Entity):
    target_percentage: Target = 75
    term_start: Optional[date_type] = None
    term_end: Optional[date_type] = None
    week_start: WeekStart = 1
    is_onboarded: bool = False
    notifications_enabled: bool = True
    reminder_minutes_before: int = Field(10, ge=0)

    def to_dict(self) -> dict:
        # unset term dates are kept as explicit nulls
        return self.model_dump(mode='json', by_alias=True)


class Onboarding(Entity):
    """Body of the onboarding request; every field is optional."""
    term_start: Optional[date_type] = None
    term_end: Optional[date_type] = None
    target_percentage: Optional[Target] = None
    week_start: WeekStart = 1


class SubjectStats(Entity):
    """Attendance statistics for a single subject."""
    subject_id: str
    subject_name: str
    present: int
    absent: int
    half: int
    total: int
    attended_equivalent: float   # present + 0.5 * half, basis for the math
    percentage: float
    bunkable: int
    required: int


class OverallStats(Entity):
    """Attendance statistics across every subject."""
    present: int
    absent: int
    half: int
    total: int
    attended_equivalent: float
    percentage: float
    bunkable: int
    required: int

    @property
    def total_classes(self) -> int:
        return self.total

    @property
    def attended(self) -> int:
        """Whole-number count of classes attended at least partially."""
        return self.present + self.half

    def to_dict(self) -> dict:
        out = super().to_dict()
        out['totalClasses'] = self.total_classes
        out['attended'] = self.attended
        return out
