from datetime import date, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

import storage
from app_state import AppState, NotFoundError, weekday_of
from entities import (
    AttendanceRecord,
    AttendanceStatus,
    ClassSchedule,
    Holiday,
    RescheduledClass,
    Settings,
    Subject,
)


pytestmark = pytest.mark.usefixtures('ctx')


@pytest.fixture
def state():
    state = AppState.load()
    state.add_subject(Subject(id='math', name='Maths'))
    state.add_subject(Subject(id='phy', name='Physics', target_percentage=0))
    # 2024-01-01 is a Monday
    state.add_class(ClassSchedule(id='math_mon', subject_id='math', weekday=1, start_time='11:00'))
    state.add_class(ClassSchedule(id='phy_mon', subject_id='phy', weekday=1, start_time='09:00'))
    state.add_class(ClassSchedule(id='phy_tue', subject_id='phy', weekday=2, start_time='10:00'))
    return state


def mark(state, class_id, day, status):
    c = state.get_class(class_id)
    return state.mark_attendance(AttendanceRecord(
        id=AttendanceRecord.make_id(class_id, day),
        class_id=class_id,
        subject_id=c.subject_id,
        date=day,
        status=AttendanceStatus(status),
    ))


def test_weekday_of_uses_sunday_as_zero():
    assert weekday_of(date(2024, 1, 7)) == 0
    assert weekday_of(date(2024, 1, 1)) == 1
    assert weekday_of(date(2024, 1, 6)) == 6


def test_targets_fall_back_to_settings_then_default(state):
    assert state.target_percentage == 75
    assert state.target_for(state.get_subject('math')) == 75
    assert state.target_for(state.get_subject('phy')) == 0

    state.update_settings(Settings(target_percentage=85))
    assert state.target_for(state.get_subject('math')) == 85
    assert AppState.load().settings.target_percentage == 85


def test_mark_attendance_replaces_same_class_and_date(state):
    mark(state, 'math_mon', '2024-01-01', 'absent')
    mark(state, 'math_mon', '2024-01-01', 'present')
    mark(state, 'math_mon', '2024-01-08', 'half')

    reloaded = AppState.load()
    assert [(r.date, r.status.value) for r in reloaded.attendance] == [
        (date(2024, 1, 1), 'present'),
        (date(2024, 1, 8), 'half'),
    ]


def test_update_attendance_status(state):
    mark(state, 'math_mon', '2024-01-01', 'absent')
    record = state.update_attendance('math_mon_2024-01-01', 'cancelled')
    assert record.status is AttendanceStatus.CANCELLED
    assert storage.get_attendance()[0].status is AttendanceStatus.CANCELLED

    with pytest.raises(NotFoundError):
        state.update_attendance('missing', 'present')
    with pytest.raises(ValueError):
        state.update_attendance('math_mon_2024-01-01', 'late')


def test_delete_subject_cascades(state):
    mark(state, 'phy_mon', '2024-01-01', 'present')
    mark(state, 'math_mon', '2024-01-01', 'present')
    state.delete_subject('phy')

    reloaded = AppState.load()
    assert [s.id for s in reloaded.subjects] == ['math']
    assert [c.id for c in reloaded.classes] == ['math_mon']
    assert [r.subject_id for r in reloaded.attendance] == ['math']


def test_delete_class_cascades(state):
    mark(state, 'phy_mon', '2024-01-01', 'present')
    mark(state, 'phy_tue', '2024-01-02', 'absent')
    state.delete_class('phy_mon')

    reloaded = AppState.load()
    assert [c.id for c in reloaded.classes] == ['math_mon', 'phy_tue']
    assert [r.class_id for r in reloaded.attendance] == ['phy_tue']


def test_unknown_ids(state):
    with pytest.raises(NotFoundError):
        state.delete_subject('nope')
    with pytest.raises(NotFoundError):
        state.delete_class('nope')
    with pytest.raises(NotFoundError):
        state.add_class(ClassSchedule(id='x', subject_id='nope', weekday=1, start_time='09:00'))
    with pytest.raises(ValueError):
        state.add_subject(Subject(id='math', name='Again'))


def test_update_subject_and_class(state):
    subject = state.update_subject('math', {'name': 'Mathematics', 'targetPercentage': 90})
    assert subject.name == 'Mathematics'
    assert state.target_for(subject) == 90

    schedule = state.update_class('math_mon', {'startTime': '08:30', 'weekday': 3})
    assert (schedule.weekday, schedule.start_time) == (3, '08:30')
    assert AppState.load().get_class('math_mon').start_time == '08:30'


def test_todays_classes_sorted_with_records(state):
    mark(state, 'math_mon', '2024-01-01', 'present')
    todays = state.todays_classes(date(2024, 1, 1))

    assert [item['class'].id for item in todays] == ['phy_mon', 'math_mon']
    assert todays[0]['subject'].name == 'Physics'
    assert todays[0]['attendance'] is None
    assert todays[1]['attendance'].status is AttendanceStatus.PRESENT
    assert state.todays_classes(date(2024, 1, 7)) == []


def test_timetable_groups_by_weekday(state):
    grouped = state.timetable()
    assert [c.id for c in grouped[1]] == ['phy_mon', 'math_mon']
    assert [c.id for c in grouped[2]] == ['phy_tue']
    assert 0 not in grouped


def test_mark_day_as_holiday(state):
    mark(state, 'math_mon', '2024-01-01', 'absent')
    holiday = state.mark_day_as_holiday(date(2024, 1, 1), 'New Year')

    assert holiday == Holiday(id='holiday_2024-01-01', start_date='2024-01-01',
                              end_date='2024-01-01', note='New Year')
    reloaded = AppState.load()
    assert reloaded.holidays == [holiday]
    assert sorted((r.class_id, r.status.value) for r in reloaded.attendance) == [
        ('math_mon', 'holiday'),
        ('phy_mon', 'holiday'),
    ]

    # marking the same day again does not duplicate the holiday
    state.mark_day_as_holiday(date(2024, 1, 1))
    assert len(AppState.load().holidays) == 1


def test_holidays_and_rescheduled(state):
    state.add_holiday(Holiday(id='h1', start_date='2024-03-01', end_date='2024-03-05'))
    with pytest.raises(ValueError):
        state.add_holiday(Holiday(id='h1', start_date='2024-03-01', end_date='2024-03-05'))
    state.delete_holiday('h1')
    assert storage.get_holidays() == []

    moved = RescheduledClass(id='r1', original_class_id='math_mon', original_date='2024-01-01',
                             subject_id='math', new_date='2024-01-03', new_time='15:00')
    state.add_rescheduled_class(moved)
    assert storage.get_rescheduled_classes() == [moved]
    state.delete_rescheduled_class('r1')
    assert storage.get_rescheduled_classes() == []


def test_complete_onboarding_defaults():
    state = AppState.load(default_target=70)
    settings = state.complete_onboarding(term_start=date(2024, 7, 1))

    assert settings.is_onboarded
    assert settings.target_percentage == 70
    assert settings.term_end == date(2024, 7, 1) + timedelta(days=90)
    assert storage.get_settings() == settings


def fail_on_key(monkeypatch, failing_key):
    """Make writes to one storage key raise, as a database error would."""
    set_item = storage._set_item

    def flaky_set_item(key, payload):
        if key == failing_key:
            raise SQLAlchemyError(f"cannot write {key}")
        set_item(key, payload)

    monkeypatch.setattr(storage, '_set_item', flaky_set_item)


def test_failed_cascade_writes_nothing(state, monkeypatch):
    mark(state, 'phy_mon', '2024-01-01', 'present')
    fail_on_key(monkeypatch, storage.KEYS['CLASSES'])

    with pytest.raises(SQLAlchemyError):
        state.delete_subject('phy')
    monkeypatch.undo()

    assert [s.id for s in state.subjects] == ['math', 'phy']
    reloaded = AppState.load()
    assert [s.id for s in reloaded.subjects] == ['math', 'phy']
    assert [c.id for c in reloaded.classes] == ['math_mon', 'phy_mon', 'phy_tue']
    assert [r.class_id for r in reloaded.attendance] == ['phy_mon']


def test_failed_mark_day_writes_nothing(state, monkeypatch):
    fail_on_key(monkeypatch, storage.KEYS['ATTENDANCE'])

    with pytest.raises(SQLAlchemyError):
        state.mark_day_as_holiday(date(2024, 1, 1))
    monkeypatch.undo()

    assert state.holidays == []
    reloaded = AppState.load()
    assert reloaded.holidays == []
    assert reloaded.attendance == []


def test_duplicate_rescheduled_class_rejected(state):
    moved = RescheduledClass(id='r1', original_class_id='math_mon', original_date='2024-01-01',
                             subject_id='math', new_date='2024-01-03', new_time='15:00')
    state.add_rescheduled_class(moved)
    with pytest.raises(ValueError):
        state.add_rescheduled_class(moved)
    assert len(storage.get_rescheduled_classes()) == 1
