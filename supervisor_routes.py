from flask import Blueprint, jsonify, g
from models import Attendance, ClassroomTest, User, classroom_student, db
from utils import add_log, auth_required, block_user, caller_role, error, payload, positive_int

supervisor_bp = Blueprint('supervisor', __name__)


def _supervised(classroom_test_id):
    """The classroom test if the caller supervises it (admins see all), else an error response."""
    ct = db.session.get(ClassroomTest, classroom_test_id)
    if not ct:
        return None, error('Scheduled test not found', 404)
    if ct.supervisor_id != g.user_id and 'admin' not in g.roles:
        return None, (jsonify({'message': 'Access denied'}), 403)
    return ct, None


def _in_classroom(student_id, classroom_id):
    return db.session.execute(classroom_student.select().where(
        classroom_student.c.classroom_id == classroom_id,
        classroom_student.c.student_id == student_id)).first() is not None


@supervisor_bp.route('/tests', methods=['GET'])
@auth_required('supervisor', 'admin')
def supervised_tests():
    rows = (ClassroomTest.query.filter_by(supervisor_id=g.user_id)
            .order_by(ClassroomTest.scheduled_at.asc()).all())
    out = []
    for ct in rows:
        out.append({
            'classroom_test_id': ct.id,
            'class_name': ct.classroom.name,
            'title': ct.test.title,
            'scheduled_at': ct.scheduled_at.isoformat(),
            'ends_at': ct.ends_at.isoformat(),
            'total_students': len(ct.classroom.students),
        })
    return jsonify({'tests': out})


@supervisor_bp.route('/attendance/<int:classroom_test_id>', methods=['GET'])
@auth_required('supervisor', 'admin')
def attendance_sheet(classroom_test_id):
    ct, resp = _supervised(classroom_test_id)
    if resp:
        return resp
    marked = {a.student_id: a for a in Attendance.query.filter_by(classroom_test_id=ct.id)}
    out = []
    for student in sorted(ct.classroom.students, key=lambda u: u.roll_no):
        row = marked.get(student.id)
        out.append({
            'student_id': student.id,
            'roll_no': student.roll_no,
            'user_name': student.user_name,
            'is_active': student.is_active,
            'is_present': bool(row and row.is_present),
            'tab_switch_count': row.tab_switch_count if row else 0,
        })
    return jsonify({'attendance': out})


@supervisor_bp.route('/attendance-present', methods=['POST'])
@auth_required('supervisor', 'admin')
def mark_present():
    d = payload()
    ct_id = positive_int(d.get('classroom_test_id'))
    student_id = positive_int(d.get('student_id'))
    if not ct_id or not student_id:
        return error('classroom_test_id and student_id are required', 400)
    ct, resp = _supervised(ct_id)
    if resp:
        return resp
    if not _in_classroom(student_id, ct.classroom_id):
        return error('Student not found in classroom', 404)

    present = str(d.get('is_present', True)).lower() not in ('0', 'false')
    row = Attendance.query.filter_by(student_id=student_id, classroom_test_id=ct.id).first()
    if not row:
        row = Attendance(student_id=student_id, classroom_test_id=ct.id, tab_switch_count=0)
        db.session.add(row)
    row.is_present = present
    add_log(g.user_id, caller_role(), 'attendance',
            {'classroom_test_id': ct.id, 'student_id': student_id, 'is_present': present}, commit=False)
    db.session.commit()
    return jsonify({'message': 'Attendance updated', 'is_present': present})


@supervisor_bp.route('/block-student', methods=['POST'])
@auth_required('supervisor', 'admin')
def block_student():
    d = payload()
    ct_id = positive_int(d.get('classroom_test_id'))
    student_id = positive_int(d.get('student_id'))
    if not ct_id or not student_id:
        return error('classroom_test_id and student_id are required', 400)
    ct, resp = _supervised(ct_id)
    if resp:
        return resp
    student = db.session.get(User, student_id)
    if not student or not student.has_role('student') or not _in_classroom(student.id, ct.classroom_id):
        return error('Student not found in classroom', 404)
    if not student.is_active:
        return error('Student is already blocked', 400)

    reason = (d.get('reason') or '').strip() or f'Blocked during classroom test {ct.id}'
    block = block_user(student, reason, g.user_id)
    return jsonify({'message': 'Student Blocked Successfully', 'block_id': block.id})
