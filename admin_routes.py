from flask import Blueprint, request, jsonify, g
from sqlalchemy import func
from models import Log, Role, User, UserBlock, db, user_roles
from utils import add_log, auth_required, block_user, error, payload, unblock

admin_bp = Blueprint('admin', __name__)


@admin_bp.route('/dashboard', methods=['GET'])
@auth_required('admin')
def admin_dashboard():
    rows = (db.session.query(Role.role_name, func.count(func.distinct(user_roles.c.user_id)))
            .outerjoin(user_roles, user_roles.c.role_id == Role.id)
            .group_by(Role.id, Role.role_name)
            .order_by(Role.id)
            .all())
    out = [{'role': name, 'count': count} for name, count in rows]
    return jsonify({'dashboard': out})


@admin_bp.route('/blocked/student', methods=['GET'])
@auth_required('admin')
def api_blocked_students():
    blocks = (UserBlock.query
              .join(User, User.id == UserBlock.user_id)
              .filter(UserBlock.is_active.is_(True), User.is_active.is_(False))
              .order_by(UserBlock.blocked_at.desc())
              .all())
    out = [{
        'block_id': b.id,
        'user_id': b.user_id,
        'user_name': b.user.user_name,
        'roll_no': b.user.roll_no,
        'reason': b.block_reason,
        'blocked_at': b.blocked_at.isoformat() if b.blocked_at else None,
    } for b in blocks if b.user.has_role('student')]
    return jsonify({'students': out})


@admin_bp.route('/block/student/<roll_no>', methods=['POST'])
@auth_required('admin')
def api_block_student(roll_no):
    reason = (payload().get('reason') or '').strip() or None
    user = User.query.filter_by(roll_no=roll_no).first()
    if not user or not user.has_role('student'):
        return error("Student with given Roll Number doesn't exists.", 404)
    block = block_user(user, reason, g.user_id)
    return jsonify({'message': 'Student Blocked Successfully', 'block_id': block.id})


@admin_bp.route('/unblock/student/<int:block_id>', methods=['PUT'])
@auth_required('admin')
def api_unblock_student(block_id):
    block = db.session.get(UserBlock, block_id)
    if not block:
        return error('Block record not found', 404)
    if not block.is_active:
        return error('Block is no longer active', 400)
    unblock(block, g.user_id)
    return jsonify({'message': 'Student Unblocked Successfully'})


@admin_bp.route('/role/<roll_no>', methods=['POST'])
@auth_required('admin')
def api_assign_role(roll_no):
    role_name = (payload().get('role') or '').strip().lower()
    role = Role.query.filter_by(role_name=role_name).first()
    if not role:
        return error(f'Unknown role {role_name}', 400)
    user = User.query.filter_by(roll_no=roll_no).first()
    if not user:
        return error('User not found', 404)
    if role not in user.roles:
        user.roles.append(role)
        db.session.commit()
        add_log(g.user_id, 'admin', 'assign_role', {'user_id': user.id, 'role': role_name})
    return jsonify({'message': 'Role assigned', 'roles': user.role_names})


@admin_bp.route('/user/<email>', methods=['DELETE'])
@auth_required('admin')
def api_delete_user(email):
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        return error('User not found', 404)
    if user.id == g.user_id:
        return error('Admins cannot delete their own account', 400)
    user_id = user.id
    db.session.delete(user)
    db.session.commit()
    add_log(g.user_id, 'admin', 'delete_user', {'user_id': user_id, 'email': email})
    return jsonify({'message': 'User deleted'})


@admin_bp.route('/logs', methods=['GET'])
@auth_required('admin')
def api_view_logs():
    q = Log.query
    etype = request.args.get('event_type')
    uid = request.args.get('user_id', type=int)
    limit = min(request.args.get('limit', default=500, type=int), 2000)
    if etype:
        q = q.filter_by(event_type=etype)
    if uid:
        q = q.filter_by(who_user_id=uid)
    logs = q.order_by(Log.created_at.desc(), Log.id.desc()).limit(limit).all()
    out = []
    for l in logs:
        out.append({
            'id': l.id,
            'who_user_id': l.who_user_id,
            'role': l.role,
            'event_type': l.event_type,
            'meta': l.meta,
            'created_at': l.created_at.isoformat()
        })
    return jsonify({'logs': out})
