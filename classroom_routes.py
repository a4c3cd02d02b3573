from flask import Blueprint, jsonify, g
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from models import Classroom, Role, User, classroom_staff, classroom_student, db, user_roles
from utils import add_log, auth_required, caller_role, error, payload

classroom_bp = Blueprint('classroom', __name__)


def serialize_classroom(c):
    return {
        'classroom_id': c.id,
        'name': c.name,
        'description': c.description,
        'created_at': c.created_at.isoformat() if c.created_at else None,
        'updated_at': c.updated_at.isoformat() if c.updated_at else None,
        'created_by': c.creator.roll_no if c.creator else None,
    }


def serialize_member(u):
    return {'user_id': u.id, 'roll_no': u.roll_no, 'email': u.email, 'user_name': u.user_name}


def users_with_role(role_name):
    return (User.query
            .join(user_roles, user_roles.c.user_id == User.id)
            .join(Role, Role.id == user_roles.c.role_id)
            .filter(Role.role_name == role_name))


@classroom_bp.route('/create', methods=['POST'])
@auth_required('staff', 'admin')
def create_classroom():
    d = payload()
    name = (d.get('name') or '').strip()
    if not name:
        return error('Name is required', 400)
    classroom = Classroom(name=name, description=d.get('description'), created_by=g.user_id)
    db.session.add(classroom)
    db.session.commit()
    add_log(g.user_id, caller_role(), 'create_classroom', {'classroom_id': classroom.id})
    return jsonify({'message': 'Classroom created', 'classroomId': classroom.id}), 201


@classroom_bp.route('/all', methods=['GET'])
@auth_required('staff', 'admin')
def list_classrooms():
    classrooms = Classroom.query.order_by(Classroom.id.asc()).all()
    return jsonify({'classrooms': [serialize_classroom(c) for c in classrooms]})


@classroom_bp.route('/id/<int:classroom_id>', methods=['GET'])
@auth_required('staff', 'admin')
def get_classroom(classroom_id):
    classroom = db.session.get(Classroom, classroom_id)
    if not classroom:
        return error('Classroom not found', 404)
    return jsonify({'classroom': serialize_classroom(classroom)})


@classroom_bp.route('/user/<user_id>', methods=['GET'])
@auth_required('staff', 'admin')
def user_classrooms(user_id):
    if user_id == 'me':
        user_id = g.user_id
    try:
        user_id = int(user_id)
    except ValueError:
        return error('Invalid user id', 400)
    classrooms = (Classroom.query
                  .outerjoin(classroom_staff, classroom_staff.c.classroom_id == Classroom.id)
                  .filter(or_(Classroom.created_by == user_id, classroom_staff.c.staff_id == user_id))
                  .distinct()
                  .order_by(Classroom.id.asc())
                  .all())
    return jsonify({'classrooms': [serialize_classroom(c) for c in classrooms]})


@classroom_bp.route('/<int:classroom_id>', methods=['PUT'])
@auth_required('staff', 'admin')
def update_classroom(classroom_id):
    d = payload()
    name = (d.get('name') or '').strip()
    if not name and 'description' not in d:
        return error('No update fields provided', 400)
    classroom = db.session.get(Classroom, classroom_id)
    if not classroom:
        return error('Classroom not found', 404)
    if name:
        classroom.name = name
    if 'description' in d:
        classroom.description = d.get('description')
    db.session.commit()
    add_log(g.user_id, caller_role(), 'update_classroom', {'classroom_id': classroom.id})
    return jsonify({'message': 'Classroom updated'})


@classroom_bp.route('/<int:classroom_id>', methods=['DELETE'])
@auth_required('staff', 'admin')
def delete_classroom(classroom_id):
    classroom = db.session.get(Classroom, classroom_id)
    if not classroom:
        return error('Classroom not found', 404)
    db.session.execute(classroom_staff.delete().where(classroom_staff.c.classroom_id == classroom_id))
    db.session.execute(classroom_student.delete().where(classroom_student.c.classroom_id == classroom_id))
    db.session.delete(classroom)
    db.session.commit()
    add_log(g.user_id, caller_role(), 'delete_classroom', {'classroom_id': classroom_id})
    return jsonify({'message': 'Classroom deleted'})


# --- Staff membership ---

@classroom_bp.route('/<int:classroom_id>/staff', methods=['GET'])
@auth_required('staff', 'admin')
def list_staff(classroom_id):
    classroom = db.session.get(Classroom, classroom_id)
    if not classroom:
        return error('Classroom not found', 404)
    return jsonify({'staff': [serialize_member(u) for u in classroom.staff]})


@classroom_bp.route('/<int:classroom_id>/staff', methods=['POST'])
@auth_required('staff', 'admin')
def add_staff(classroom_id):
    staff_email = (payload().get('staffEmail') or '').strip().lower()
    if not staff_email:
        return error('Staff email is required', 400)
    if not db.session.get(Classroom, classroom_id):
        return error('Classroom not found', 404)
    staff = users_with_role('staff').filter(User.email == staff_email).first()
    if not staff:
        return error('No staff member found with the provided email', 404)
    try:
        db.session.execute(classroom_staff.insert().values(classroom_id=classroom_id, staff_id=staff.id))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error('Staff is already a part of the classroom', 403)
    add_log(g.user_id, caller_role(), 'add_staff', {'classroom_id': classroom_id, 'staff_id': staff.id})
    return jsonify({'message': 'Staff added to classroom'}), 201


@classroom_bp.route('/<int:classroom_id>/staff/<int:staff_id>', methods=['DELETE'])
@auth_required('staff', 'admin')
def remove_staff(classroom_id, staff_id):
    result = db.session.execute(classroom_staff.delete().where(
        classroom_staff.c.classroom_id == classroom_id, classroom_staff.c.staff_id == staff_id))
    if result.rowcount == 0:
        db.session.rollback()
        return error('Staff not found in classroom', 404)
    db.session.commit()
    add_log(g.user_id, caller_role(), 'remove_staff', {'classroom_id': classroom_id, 'staff_id': staff_id})
    return jsonify({'message': 'Staff removed from classroom'})


# --- Student membership ---

@classroom_bp.route('/<int:classroom_id>/student', methods=['GET'])
@auth_required('staff', 'admin')
def list_students(classroom_id):
    classroom = db.session.get(Classroom, classroom_id)
    if not classroom:
        return error('Classroom not found', 404)
    return jsonify({'students': [serialize_member(u) for u in classroom.students]})


@classroom_bp.route('/<int:classroom_id>/students', methods=['POST'])
@auth_required('staff', 'admin')
def add_students(classroom_id):
    emails = payload().get('studentEmails')
    if not emails or not isinstance(emails, list):
        return error("Student's email(s) is/are required", 400)
    if not db.session.get(Classroom, classroom_id):
        return error('Classroom not found', 404)

    wanted = {str(e).strip().lower() for e in emails if str(e).strip()}
    students = users_with_role('student').filter(User.email.in_(wanted)).all()
    current = {row.student_id for row in db.session.execute(
        classroom_student.select().where(classroom_student.c.classroom_id == classroom_id))}
    new_ids = [s.id for s in students if s.id not in current]
    if not new_ids:
        return error('No valid students found or all students are already added', 404)

    db.session.execute(classroom_student.insert(),
                       [{'classroom_id': classroom_id, 'student_id': sid} for sid in new_ids])
    db.session.commit()
    add_log(g.user_id, caller_role(), 'add_students', {'classroom_id': classroom_id, 'student_ids': new_ids})
    return jsonify({'message': f'{len(new_ids)} students added to classroom', 'added': len(new_ids)}), 201


@classroom_bp.route('/<int:classroom_id>/student/<int:student_id>', methods=['DELETE'])
@auth_required('staff', 'admin')
def remove_student(classroom_id, student_id):
    result = db.session.execute(classroom_student.delete().where(
        classroom_student.c.classroom_id == classroom_id, classroom_student.c.student_id == student_id))
    if result.rowcount == 0:
        db.session.rollback()
        return error('Student not found in classroom', 404)
    db.session.commit()
    add_log(g.user_id, caller_role(), 'remove_student', {'classroom_id': classroom_id, 'student_id': student_id})
    return jsonify({'message': 'Student removed from classroom'})
