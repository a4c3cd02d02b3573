from datetime import datetime
from flask import Blueprint, jsonify, g
from models import (Attendance, Classroom, ClassroomTest, Submission, TestSubmission, User,
                    classroom_staff, classroom_student, db)
from utils import add_log, auth_required, error
import recorder

student_bp = Blueprint('student', __name__)


def _my_classroom_ids():
    rows = db.session.execute(classroom_student.select().where(classroom_student.c.student_id == g.user_id))
    return [row.classroom_id for row in rows]


def _my_schedules():
    ids = _my_classroom_ids()
    if not ids:
        return []
    return (ClassroomTest.query.filter(ClassroomTest.classroom_id.in_(ids))
            .order_by(ClassroomTest.scheduled_at.asc()).all())


def test_status(ct, now, attendance, submitted):
    if ct.scheduled_at > now:
        return 'Upcoming'
    if now <= ct.ends_at and not submitted:
        return 'Ongoing'
    if submitted or (attendance and attendance.is_present):
        return 'Attempted'
    return 'Absent'


def _schedule_row(ct):
    return {
        'class_name': ct.classroom.name,
        'test_title': ct.test.title,
        'test_id': ct.test_id,
        'classroom_test_id': ct.id,
        'scheduled_at': ct.scheduled_at.isoformat(),
        'duration_in_minutes': ct.test.duration_in_minutes,
    }


@student_bp.route('/classrooms', methods=['GET'])
@auth_required('student')
def my_classrooms():
    ids = _my_classroom_ids()
    classrooms = Classroom.query.filter(Classroom.id.in_(ids)).order_by(Classroom.id.asc()).all() if ids else []
    out = [{'classroom_id': c.id, 'name': c.name, 'description': c.description} for c in classrooms]
    return jsonify({'classrooms': out})


@student_bp.route('/classroomTitle/<int:classroom_id>', methods=['GET'])
@auth_required('student')
def classroom_title(classroom_id):
    classroom = db.session.get(Classroom, classroom_id)
    if not classroom:
        return error('Classroom not found', 404)
    return jsonify({'classroom': {'name': classroom.name}})


@student_bp.route('/staffDetails/<int:classroom_id>', methods=['GET'])
@auth_required('student')
def staff_details(classroom_id):
    staff = (User.query
             .join(classroom_staff, classroom_staff.c.staff_id == User.id)
             .filter(classroom_staff.c.classroom_id == classroom_id)
             .order_by(User.id.asc())
             .all())
    return jsonify({'staff': [{'user_name': u.user_name, 'email': u.email} for u in staff]})


@student_bp.route('/classroomTests/<int:classroom_id>', methods=['GET'])
@auth_required('student')
def classroom_tests(classroom_id):
    if classroom_id not in _my_classroom_ids():
        return error('Not enrolled in this classroom', 403)
    now = datetime.utcnow()
    rows = (ClassroomTest.query.filter_by(classroom_id=classroom_id)
            .order_by(ClassroomTest.scheduled_at.asc()).all())
    out = []
    for ct in rows:
        attendance = Attendance.query.filter_by(student_id=g.user_id, classroom_test_id=ct.id).first()
        submitted = recorder.is_test_submitted(g.user_id, ct.id)
        creator = ct.test.creator
        out.append({
            'test_id': ct.test_id,
            'classroom_test_id': ct.id,
            'title': ct.test.title,
            'description': ct.test.description,
            'created_by': creator.user_name if creator else None,
            'scheduled_at': ct.scheduled_at.isoformat(),
            'status': test_status(ct, now, attendance, submitted),
        })
    return jsonify({'tests': out})


@student_bp.route('/ongoingTest', methods=['GET'])
@auth_required('student')
def ongoing_tests():
    now = datetime.utcnow()
    out = [_schedule_row(ct) for ct in _my_schedules()
           if ct.scheduled_at <= now <= ct.ends_at and not recorder.is_test_submitted(g.user_id, ct.id)]
    return jsonify({'tests': out})


@student_bp.route('/upcomingTest', methods=['GET'])
@auth_required('student')
def upcoming_tests():
    now = datetime.utcnow()
    out = [_schedule_row(ct) for ct in _my_schedules() if ct.scheduled_at > now]
    return jsonify({'tests': out})


@student_bp.route('/tab-switch/<int:classroom_test_id>', methods=['POST'])
@auth_required('student')
def tab_switch(classroom_test_id):
    """Count a tab switch reported by the test page."""
    ct = db.session.get(ClassroomTest, classroom_test_id)
    if not ct:
        return error('Scheduled test not found', 404)
    if ct.classroom_id not in _my_classroom_ids():
        return error('Not enrolled in this classroom', 403)

    row = Attendance.query.filter_by(student_id=g.user_id, classroom_test_id=ct.id).first()
    if not row:
        row = Attendance(student_id=g.user_id, classroom_test_id=ct.id, is_present=True, tab_switch_count=0)
        db.session.add(row)
    row.tab_switch_count = (row.tab_switch_count or 0) + 1
    add_log(g.user_id, 'student', 'tab_switch',
            {'classroom_test_id': ct.id, 'count': row.tab_switch_count}, commit=False)
    db.session.commit()
    return jsonify({'message': 'Tab switch recorded', 'tab_switch_count': row.tab_switch_count})


@student_bp.route('/marks', methods=['GET'])
@auth_required('student')
def my_marks():
    """Marks per finalized classroom test, with the tab switch count."""
    done = (TestSubmission.query.filter_by(user_id=g.user_id)
            .order_by(TestSubmission.submitted_at.asc()).all())
    out = []
    for row in done:
        ct = db.session.get(ClassroomTest, row.classroom_test_id)
        if not ct:
            continue
        subs = Submission.query.filter_by(student_id=g.user_id, classroom_test_id=ct.id).all()
        code = sum(s.marks_awarded or 0 for s in recorder.latest_per_question(subs))
        mcq = sum(recorder.mcq_marks_by_question(g.user_id, ct.id).values())
        attendance = Attendance.query.filter_by(student_id=g.user_id, classroom_test_id=ct.id).first()
        out.append({
            'classroom_test_id': ct.id,
            'test_title': ct.test.title,
            'class_name': ct.classroom.name,
            'code_marks': code,
            'mcq_marks': mcq,
            'marks': code + mcq,
            'tab_switch_count': attendance.tab_switch_count if attendance else 0,
            'submitted_at': row.submitted_at.isoformat() if row.submitted_at else None,
        })
    return jsonify({'marks': out})
