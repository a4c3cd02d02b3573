from flask import Blueprint, jsonify
from sqlalchemy.exc import IntegrityError
from models import Role, User, db
from utils import add_log, bearer_user, generate_auth_token, payload

auth_bp = Blueprint('auth', __name__)

# anyone may sign up with these; other roles are created by an admin
PUBLIC_ROLES = ('student', 'staff')


@auth_bp.route('/register', methods=['POST'])
def register():
    d = payload()
    roll_no = str(d.get('roll_no') or '').strip()
    email = str(d.get('email') or '').strip().lower()
    password = str(d.get('password') or '')
    role_name = str(d.get('role') or '').strip().lower()
    user_name = str(d.get('user_name') or '').strip() or None

    if not roll_no or not email or not password or not role_name:
        return jsonify({'message': 'roll_no, email, password and role are required'}), 400
    role = Role.query.filter_by(role_name=role_name).first()
    if not role:
        return jsonify({'message': f'Unknown role {role_name}'}), 400
    created_by = None
    if role_name not in PUBLIC_ROLES:
        admin = bearer_user()
        if not admin or 'admin' not in admin.role_names:
            return jsonify({'message': 'Access denied'}), 403
        created_by = admin.id
    if User.query.filter((User.email == email) | (User.roll_no == roll_no)).first():
        return jsonify({'message': 'User already exists'}), 400

    user = User(roll_no=roll_no, email=email, user_name=user_name)
    user.set_password(password)
    user.roles.append(role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'message': 'User already exists'}), 400
    add_log(user.id, role_name, 'register', {'roll_no': roll_no, 'created_by': created_by})
    return jsonify({'message': 'User registered', 'userId': user.id}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    d = payload()
    email = str(d.get('email') or '').strip().lower()
    password = str(d.get('password') or '')
    if not email or not password:
        return jsonify({'message': 'email and password are required'}), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        return jsonify({'message': 'Invalid credentials'}), 401
    if not user.is_active:
        return jsonify({'message': 'Account blocked'}), 403

    token = generate_auth_token(user.id)
    add_log(user.id, None, 'login', {'roles': user.role_names})
    return jsonify({'message': 'Logged in successfully', 'token': token, 'roles': user.role_names,
                    'userId': user.id})
