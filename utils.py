from datetime import datetime
from functools import wraps
from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError
from models import Log, User, UserBlock, db

TOKEN_SALT = 'auth-token'


def add_log(who_id, role, event_type, meta=None, commit=True):
    """Helper function to add log entries. Pass commit=False to stage the
    entry inside a transaction the caller commits."""
    entry = Log(who_user_id=who_id, role=role, event_type=event_type, meta=meta or {})
    db.session.add(entry)
    if commit:
        db.session.commit()


def payload():
    """Request body as a dict, JSON first then form data."""
    return request.get_json(silent=True) or request.form or {}


def error(msg, status):
    return jsonify({'error': msg}), status


def parse_ids(value):
    """Accept a list of ids or a comma separated string and return ints,
    skipping blanks. Raises ValueError on anything non-numeric."""
    if value is None:
        return []
    if isinstance(value, (int, float)):
        return [int(value)]
    if isinstance(value, str):
        value = value.split(',')
    out = []
    for item in value:
        item = str(item).strip()
        if item:
            out.append(int(item))
    return out


def parse_datetime(value):
    """ISO-8601 string to a naive datetime; None when missing or malformed."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', ''))
    except ValueError:
        return None


# ===== Auth tokens =====

def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def generate_auth_token(user_id):
    return _serializer().dumps({'user_id': user_id})


def verify_auth_token(token):
    """Return the user id in the token. Raises SignatureExpired or
    BadSignature so callers can tell the two apart."""
    data = _serializer().loads(token, max_age=current_app.config['TOKEN_MAX_AGE'])
    return int(data['user_id'])


def bearer_user():
    """Active user behind the Authorization header, or None."""
    parts = request.headers.get('Authorization', '').split(' ')
    if len(parts) != 2 or parts[0].lower() != 'bearer' or not parts[1]:
        return None
    try:
        user_id = verify_auth_token(parts[1])
    except (BadSignature, KeyError, TypeError, ValueError):
        return None
    user = db.session.get(User, user_id)
    return user if user and user.is_active else None


def auth_required(*allowed_roles):
    """Protect a route with a bearer token. With no roles given any
    authenticated user is let through."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            header = request.headers.get('Authorization', '')
            parts = header.split(' ')
            if len(parts) != 2 or parts[0].lower() != 'bearer' or not parts[1]:
                return jsonify({'message': 'Authentication failed'}), 401
            try:
                user_id = verify_auth_token(parts[1])
            except SignatureExpired:
                return jsonify({'message': 'Token expired'}), 498
            except (BadSignature, KeyError, TypeError, ValueError):
                return jsonify({'message': 'Authentication failed'}), 401

            # roles are looked up on every request, never trusted from the token
            user = db.session.get(User, user_id)
            if not user:
                return jsonify({'message': 'Authentication failed'}), 401
            if not user.is_active:
                return jsonify({'message': 'Account blocked'}), 403
            roles = user.role_names
            if allowed_roles and not set(roles) & set(allowed_roles):
                return jsonify({'message': 'Access denied'}), 403

            g.user = user
            g.user_id = user.id
            g.roles = roles
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def caller_role():
    """Most privileged role of the current caller, for audit rows."""
    for name in ('admin', 'supervisor', 'staff', 'student'):
        if name in g.get('roles', ()):
            return name
    return None


# ===== Blocking =====

def block_user(user, reason, blocked_by):
    """Deactivate a user and append the block audit row in one transaction."""
    try:
        user.is_active = False
        block = UserBlock(user_id=user.id, block_reason=reason, blocked_by=blocked_by)
        db.session.add(block)
        add_log(blocked_by, caller_role(), 'block_user',
                {'user_id': user.id, 'reason': reason}, commit=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return block


def unblock(block, unblocked_by):
    """Close a block row and reactivate its user in one transaction."""
    try:
        block.is_active = False
        block.unblocked_by = unblocked_by
        block.unblocked_at = datetime.utcnow()
        # another active block keeps the user inactive
        still_blocked = UserBlock.query.filter(
            UserBlock.user_id == block.user_id,
            UserBlock.id != block.id,
            UserBlock.is_active.is_(True),
        ).count()
        if not still_blocked:
            block.user.is_active = True
        add_log(unblocked_by, caller_role(), 'unblock_user',
                {'user_id': block.user_id, 'block_id': block.id}, commit=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return block


def positive_int(value):
    """int(value) when it is a positive whole number, otherwise None."""
    try:
        value = int(value)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None
