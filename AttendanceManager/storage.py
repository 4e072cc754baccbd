"""
Key-value persistence for the attendance data set.

Each collection is stored as a JSON document under its own key. Reads fail
closed: a missing or unreadable document yields ``None`` (settings) or an
empty list, and the error is logged rather than raised.
"""
import json
import logging
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from entities import (
    AttendanceRecord,
    ClassSchedule,
    Holiday,
    RescheduledClass,
    Settings,
    Subject,
)
from models import db, StoredValue

log = logging.getLogger(__name__)

KEYS = {
    'SETTINGS': 'attendance_settings',
    'SUBJECTS': 'attendance_subjects',
    'CLASSES': 'attendance_classes',
    'ATTENDANCE': 'attendance_records',
    'HOLIDAYS': 'attendance_holidays',
    'RESCHEDULED': 'attendance_rescheduled',
}

# Export/import field -> (storage key, entity type, is a list)
COLLECTIONS = {
    'settings': (KEYS['SETTINGS'], Settings, False),
    'subjects': (KEYS['SUBJECTS'], Subject, True),
    'classes': (KEYS['CLASSES'], ClassSchedule, True),
    'attendance': (KEYS['ATTENDANCE'], AttendanceRecord, True),
    'holidays': (KEYS['HOLIDAYS'], Holiday, True),
    'rescheduled': (KEYS['RESCHEDULED'], RescheduledClass, True),
}


def _get_item(key):
    row = StoredValue.query.filter_by(key=key).first()
    return json.loads(row.value) if row else None


def _set_item(key, payload):
    row = StoredValue.query.filter_by(key=key).first()
    text = json.dumps(payload)
    if row:
        row.value = text
    else:
        db.session.add(StoredValue(key=key, value=text))


def _load_list(key, entity):
    try:
        data = _get_item(key)
        if data is None:
            return []
        if not isinstance(data, list):
            raise ValueError(f"expected a list, got {type(data).__name__}")
        return [entity.model_validate(item) for item in data]
    except (SQLAlchemyError, ValidationError, ValueError) as e:
        log.error("Error getting %s: %s", key, e)
        return []


def _save_list(key, items):
    try:
        _set_item(key, [item.to_dict() for item in items])
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("Error saving %s", key)
        raise


def save_collections(collections):
    """
    Write several collections in one transaction.

    ``collections`` maps storage keys to entity lists. Either every key is
    written or, on a database error, none is.
    """
    try:
        for key, items in collections.items():
            _set_item(key, [item.to_dict() for item in items])
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("Error saving %s", ", ".join(collections))
        raise


# Settings
def get_settings():
    try:
        data = _get_item(KEYS['SETTINGS'])
        return Settings.model_validate(data) if data else None
    except (SQLAlchemyError, ValidationError, ValueError) as e:
        log.error("Error getting settings: %s", e)
        return None


def save_settings(settings):
    try:
        _set_item(KEYS['SETTINGS'], settings.to_dict())
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("Error saving settings")
        raise


# Subjects
def get_subjects():
    return _load_list(KEYS['SUBJECTS'], Subject)


def save_subjects(subjects):
    _save_list(KEYS['SUBJECTS'], subjects)


# Classes
def get_classes():
    return _load_list(KEYS['CLASSES'], ClassSchedule)


def save_classes(classes):
    _save_list(KEYS['CLASSES'], classes)


# Attendance
def get_attendance():
    return _load_list(KEYS['ATTENDANCE'], AttendanceRecord)


def save_attendance(attendance):
    _save_list(KEYS['ATTENDANCE'], attendance)


# Holidays
def get_holidays():
    return _load_list(KEYS['HOLIDAYS'], Holiday)


def save_holidays(holidays):
    _save_list(KEYS['HOLIDAYS'], holidays)


# Rescheduled classes
def get_rescheduled_classes():
    return _load_list(KEYS['RESCHEDULED'], RescheduledClass)


def save_rescheduled_classes(rescheduled):
    _save_list(KEYS['RESCHEDULED'], rescheduled)


# Backup & restore
def export_data():
    """Serialize every collection into one JSON document."""
    settings = get_settings()
    return json.dumps({
        'settings': settings.to_dict() if settings else None,
        'subjects': [s.to_dict() for s in get_subjects()],
        'classes': [c.to_dict() for c in get_classes()],
        'attendance': [a.to_dict() for a in get_attendance()],
        'holidays': [h.to_dict() for h in get_holidays()],
        'rescheduled': [r.to_dict() for r in get_rescheduled_classes()],
        'exportDate': datetime.utcnow().isoformat() + 'Z',
    }, indent=2)


def import_data(json_data):
    """
    Restore collections from an exported document.

    A category that is absent or null keeps its current data. The payload is
    validated in full before anything is written; returns False on any error.
    """
    try:
        data = json.loads(json_data)
        if not isinstance(data, dict):
            raise ValueError("backup must be a JSON object")

        parsed = {}
        for field, (key, entity, is_list) in COLLECTIONS.items():
            value = data.get(field)
            if value is None:
                continue
            if is_list:
                if not isinstance(value, list):
                    raise ValueError(f"{field} must be a list")
                parsed[key] = [entity.model_validate(item).to_dict() for item in value]
            else:
                parsed[key] = entity.model_validate(value).to_dict()

        for key, payload in parsed.items():
            _set_item(key, payload)
        db.session.commit()
        log.info("Imported %s", ', '.join(sorted(parsed)) or 'nothing')
        return True
    except (ValidationError, ValueError, TypeError, SQLAlchemyError) as e:
        db.session.rollback()
        log.error("Error importing data: %s", e)
        return False


def clear_all_data():
    """Remove every stored collection."""
    try:
        StoredValue.query.filter(StoredValue.key.in_(list(KEYS.values()))).delete(
            synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("Error clearing data")
        raise
