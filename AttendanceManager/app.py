import logging
import os
from datetime import date
from flask import Flask, request, jsonify
from pydantic import ValidationError
from models import db
from app_state import AppState, NotFoundError, weekday_of
from calculator import (
    THEMES,
    calculate_overall_stats,
    calculate_subject_stats,
    get_calendar_marked_dates,
    is_on_track,
)
from entities import (
    AttendanceRecord,
    AttendanceStatus,
    ClassSchedule,
    Holiday,
    Onboarding,
    RescheduledClass,
    Settings,
    Subject,
    parse_date,
)
import storage

log = logging.getLogger(__name__)

app = Flask(__name__)

# Configuration
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///attendance.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-key-123')
app.config['DEFAULT_TARGET_PERCENTAGE'] = int(os.environ.get('DEFAULT_TARGET_PERCENTAGE', 75))

db.init_app(app)


def load_state():
    return AppState.load(default_target=app.config['DEFAULT_TARGET_PERCENTAGE'])


def error_response(message, status_code):
    return jsonify({'success': False, 'error': message}), status_code


@app.errorhandler(ValueError)
def handle_bad_request(e):
    return error_response(str(e), 400)


@app.errorhandler(ValidationError)
def handle_invalid_payload(e):
    messages = []
    for error in e.errors():
        field = '.'.join(str(part) for part in error['loc'])
        messages.append(f"{field}: {error['msg']}" if field else error['msg'])
    return error_response('; '.join(messages), 400)


@app.errorhandler(NotFoundError)
def handle_not_found(e):
    return error_response(str(e), 404)


@app.errorhandler(404)
def handle_missing_route(e):
    return error_response('Not found', 404)


def get_payload(allow_empty=False):
    if allow_empty and not request.get_data():
        return {}
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError('Request body must be a JSON object')
    return data


def subject_stats_for(state):
    return [
        calculate_subject_stats(s.id, s.name, state.attendance, state.target_for(s))
        for s in state.subjects
    ]


@app.route('/')
def dashboard():
    """Main dashboard: overall stats, bunk summary and today's classes."""
    state = load_state()
    today = parse_date(request.args.get('date') or date.today())
    target = state.target_percentage
    stats = calculate_overall_stats(state.attendance, target)

    return jsonify({
        'today': today.isoformat(),
        'onboarded': bool(state.settings and state.settings.is_onboarded),
        'targetPercentage': target,
        'overall': stats.to_dict(),
        'onTrack': is_on_track(stats, target),
        'todayClasses': [serialize_scheduled(item) for item in state.todays_classes(today)],
    })


def serialize_scheduled(item):
    subject = item['subject']
    record = item['attendance']
    return {
        **item['class'].to_dict(),
        'subject': subject.to_dict() if subject else None,
        'attendanceRecord': record.to_dict() if record else None,
    }


# --- Settings ---

@app.route('/api/settings', methods=['GET', 'PUT'])
def settings_page():
    state = load_state()
    if request.method == 'PUT':
        data = get_payload()
        current = state.settings.to_dict() if state.settings else Settings(
            target_percentage=state.target_percentage).to_dict()
        state.update_settings(Settings.model_validate({**current, **data}))

    settings = state.settings or Settings(target_percentage=state.target_percentage)
    return jsonify(settings.to_dict())


@app.route('/api/onboarding', methods=['POST'])
def onboarding():
    """Finish onboarding with the chosen term, target and week start."""
    form = Onboarding.model_validate(get_payload(allow_empty=True))
    state = load_state()
    settings = state.complete_onboarding(
        term_start=form.term_start,
        term_end=form.term_end,
        target_percentage=form.target_percentage,
        week_start=form.week_start,
    )
    return jsonify({'success': True, 'settings': settings.to_dict()})


# --- Subjects ---

@app.route('/api/subjects', methods=['GET', 'POST'])
def subjects_page():
    state = load_state()
    if request.method == 'POST':
        subject = Subject.model_validate(get_payload())
        state.add_subject(subject)
        return jsonify({'success': True, 'subject': subject.to_dict()}), 201

    return jsonify([s.to_dict() for s in state.subjects])


@app.route('/api/subjects/<subject_id>', methods=['PATCH', 'DELETE'])
def subject_detail(subject_id):
    state = load_state()
    if request.method == 'DELETE':
        # Classes and attendance of the subject go with it
        state.delete_subject(subject_id)
        return jsonify({'success': True})

    subject = state.update_subject(subject_id, get_payload())
    return jsonify({'success': True, 'subject': subject.to_dict()})


# --- Classes ---

@app.route('/api/classes', methods=['GET', 'POST'])
def classes_page():
    state = load_state()
    if request.method == 'POST':
        class_schedule = ClassSchedule.model_validate(get_payload())
        state.add_class(class_schedule)
        return jsonify({'success': True, 'class': class_schedule.to_dict()}), 201

    return jsonify([c.to_dict() for c in state.classes])


@app.route('/api/classes/<class_id>', methods=['PATCH', 'DELETE'])
def class_detail(class_id):
    state = load_state()
    if request.method == 'DELETE':
        state.delete_class(class_id)
        return jsonify({'success': True})

    class_schedule = state.update_class(class_id, get_payload())
    return jsonify({'success': True, 'class': class_schedule.to_dict()})


@app.route('/timetable')
def timetable():
    """Weekly timetable grouped by weekday (0 = Sunday)."""
    state = load_state()
    grouped = state.timetable()
    return jsonify({
        str(day): [c.to_dict() for c in grouped.get(day, [])]
        for day in range(7)
    })


@app.route('/api/classes/today', methods=['GET'])
def todays_classes():
    state = load_state()
    day = parse_date(request.args.get('date') or date.today())
    return jsonify({
        'date': day.isoformat(),
        'weekday': weekday_of(day),
        'classes': [serialize_scheduled(item) for item in state.todays_classes(day)],
    })


# --- Attendance ---

@app.route('/mark-attendance', methods=['POST'])
def mark_attendance():
    """Mark attendance for a scheduled class on a date (defaults to today)."""
    data = get_payload()
    state = load_state()

    if not data.get('classId'):
        raise ValueError('Missing field: classId')
    class_schedule = state.get_class(str(data['classId']))
    attendance_date = parse_date(data.get('date') or date.today())

    record = AttendanceRecord.model_validate({
        'id': AttendanceRecord.make_id(class_schedule.id, attendance_date),
        'classId': class_schedule.id,
        'subjectId': class_schedule.subject_id,
        'date': attendance_date,
        'status': data.get('status'),
        'isRescheduled': data.get('isRescheduled'),
    })
    state.mark_attendance(record)

    return jsonify({'success': True, 'record': record.to_dict()})


@app.route('/api/attendance', methods=['GET'])
def attendance_list():
    state = load_state()
    records = state.attendance
    subject_id = request.args.get('subjectId')
    if subject_id:
        records = [r for r in records if r.subject_id == subject_id]
    return jsonify([r.to_dict() for r in records])


@app.route('/api/attendance/<record_id>', methods=['PATCH'])
def update_attendance(record_id):
    data = get_payload()
    try:
        status = AttendanceStatus(data.get('status'))
    except ValueError:
        raise ValueError(f"Invalid status: {data.get('status')!r}")
    record = load_state().update_attendance(record_id, status)
    return jsonify({'success': True, 'record': record.to_dict()})


# --- Holidays ---

@app.route('/api/holidays', methods=['GET', 'POST'])
def holidays_page():
    state = load_state()
    if request.method == 'POST':
        holiday = Holiday.model_validate(get_payload())
        state.add_holiday(holiday)
        return jsonify({'success': True, 'holiday': holiday.to_dict()}), 201

    return jsonify([h.to_dict() for h in state.holidays])


@app.route('/api/holidays/<holiday_id>', methods=['DELETE'])
def delete_holiday(holiday_id):
    load_state().delete_holiday(holiday_id)
    return jsonify({'success': True})


@app.route('/api/holidays/mark-day', methods=['POST'])
def mark_day_as_holiday():
    """Turn a whole day into a holiday, including its scheduled classes."""
    data = get_payload()
    holiday = load_state().mark_day_as_holiday(parse_date(data.get('date')), data.get('note') or 'Holiday')
    return jsonify({'success': True, 'holiday': holiday.to_dict()})


# --- Rescheduled classes ---

@app.route('/api/rescheduled', methods=['GET', 'POST'])
def rescheduled_page():
    state = load_state()
    if request.method == 'POST':
        rescheduled = RescheduledClass.model_validate(get_payload())
        state.add_rescheduled_class(rescheduled)
        return jsonify({'success': True, 'rescheduled': rescheduled.to_dict()}), 201

    return jsonify([r.to_dict() for r in state.rescheduled])


@app.route('/api/rescheduled/<rescheduled_id>', methods=['DELETE'])
def delete_rescheduled(rescheduled_id):
    load_state().delete_rescheduled_class(rescheduled_id)
    return jsonify({'success': True})


# --- Analytics ---

@app.route('/api/attendance-stats', methods=['GET'])
def get_attendance_stats():
    """Get attendance statistics for analytics."""
    state = load_state()
    target = state.target_percentage
    overall = calculate_overall_stats(state.attendance, target)

    by_subject = []
    for subject, stats in zip(state.subjects, subject_stats_for(state)):
        subject_target = state.target_for(subject)
        by_subject.append({
            **stats.to_dict(),
            'color': subject.color,
            'targetPercentage': subject_target,
            'onTrack': is_on_track(stats, subject_target),
        })

    return jsonify({
        'overall': {
            **overall.to_dict(),
            'targetPercentage': target,
            'onTrack': is_on_track(overall, target),
        },
        'bySubject': by_subject,
    })


@app.route('/api/subject_stats/<subject_id>', methods=['GET'])
def get_subject_stats(subject_id):
    """Get all-time attendance stats for a specific subject."""
    state = load_state()
    subject = state.get_subject(subject_id)
    target = state.target_for(subject)
    stats = calculate_subject_stats(subject.id, subject.name, state.attendance, target)

    return jsonify({
        **stats.to_dict(),
        'targetPercentage': target,
        'onTrack': is_on_track(stats, target),
    })


@app.route('/api/calendar', methods=['GET'])
def get_calendar():
    """Per-date calendar markings for attendance and holidays."""
    theme = request.args.get('theme', 'light')
    if theme not in THEMES:
        raise ValueError(f"Unknown theme: {theme}")
    state = load_state()
    return jsonify(get_calendar_marked_dates(state.attendance, state.holidays, THEMES[theme]))


# --- Backup & restore ---

@app.route('/api/export', methods=['GET'])
def export_backup():
    return app.response_class(storage.export_data(), mimetype='application/json')


@app.route('/api/import', methods=['POST'])
def import_backup():
    if not storage.import_data(request.get_data(as_text=True)):
        return error_response('Failed to import data. Invalid format.', 400)
    return jsonify({'success': True})


@app.route('/api/clear', methods=['POST'])
def clear_data():
    storage.clear_all_data()
    log.info("All data cleared")
    return jsonify({'success': True})


# Initialize DB
with app.app_context():
    db.create_all()

if __name__ == '__main__':
    app.run(debug=True)
