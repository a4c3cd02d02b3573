from flask import Blueprint, jsonify
from models import ClassroomTest, Test, User, classroom_staff, db
from classroom_routes import users_with_role
from utils import auth_required

staff_bp = Blueprint('staff', __name__)


@staff_bp.route('/all', methods=['GET'])
@auth_required('admin')
def all_staff():
    staff = users_with_role('staff').order_by(User.id.asc()).all()
    out = []
    for u in staff:
        class_count = db.session.query(classroom_staff).filter(classroom_staff.c.staff_id == u.id).count()
        out.append({
            'user_id': u.id,
            'email': u.email,
            'user_name': u.user_name,
            'roll_no': u.roll_no,
            'created_at': u.created_at.isoformat() if u.created_at else None,
            'status': u.is_active,
            'class_count': class_count,
            'test_assigned': ClassroomTest.query.filter_by(created_by=u.id).count(),
            'test_created': Test.query.filter_by(created_by=u.id).count(),
        })
    return jsonify({'staffs': out})
