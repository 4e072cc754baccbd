#!/usr/bin/env python
"""
Seed script to populate the store with a demo timetable.
Run this script to add the initial subjects and weekly classes.
"""
import logging

from app import app, load_state
from entities import ClassSchedule, Subject

log = logging.getLogger(__name__)

# (id, name, code, color)
DEMO_SUBJECTS = [
    ('m2', 'M-II', 'MA102', '#2563EB'),
    ('dspd1', 'DSPD-I', 'CS101', '#10B981'),
    ('dcmp', 'DCMP', 'EC103', '#F59E0B'),
    ('bee', 'BEE', 'EE101', '#EF4444'),
    ('bee_lab', 'BEE (LAB)', 'EE151', '#8B5CF6'),
]

# (subject id, weekday with 0 = Sunday, start time, duration in minutes)
DEMO_CLASSES = [
    ('m2', 1, '09:00', 60),
    ('dspd1', 1, '10:00', 60),
    ('dcmp', 2, '09:00', 60),
    ('bee', 3, '11:00', 60),
    ('bee_lab', 4, '14:00', 120),
    ('m2', 5, '09:00', 60),
]


def seed_subjects():
    """Seed the store with the demo subjects and their weekly classes."""
    with app.app_context():
        state = load_state()
        if state.settings is None or not state.settings.is_onboarded:
            state.complete_onboarding()
            log.info("Onboarded with default settings.")

        added_count = 0
        existing_ids = {s.id for s in state.subjects}
        for subject_id, name, code, color in DEMO_SUBJECTS:
            if subject_id in existing_ids:
                log.info("Subject already exists: %s", name)
                continue
            state.add_subject(Subject(id=subject_id, name=name, code=code, color=color))
            added_count += 1
            log.info("Added subject: %s", name)

        class_ids = {c.id for c in state.classes}
        for subject_id, weekday, start_time, duration in DEMO_CLASSES:
            class_id = f"{subject_id}_{weekday}_{start_time.replace(':', '')}"
            if class_id in class_ids:
                continue
            state.add_class(ClassSchedule(
                id=class_id,
                subject_id=subject_id,
                weekday=weekday,
                start_time=start_time,
                duration_minutes=duration,
            ))

        log.info("Seeding complete! Added %d new subjects.", added_count)
        log.info("Total subjects in store: %d", len(state.subjects))
        return added_count


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(message)s')
    seed_subjects()
