from datetime import datetime, timezone
from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException
from config import Config
from models import db, Role, User, ROLE_NAMES
from judge import JudgeClient, JudgeError, JudgePendingError, JudgeSettings
from grading import GradingError
from auth_routes import auth_bp
from admin_routes import admin_bp
from classroom_routes import classroom_bp
from question_routes import question_bp
from staff_routes import staff_bp
from student_routes import student_bp
from submission_routes import submission_bp
from supervisor_routes import supervisor_bp
from test_routes import test_bp


def init_database(app):
    """Create tables and seed the static role rows (plus an admin when configured)."""
    db.create_all()

    existing = {r.role_name for r in Role.query.all()}
    for name in ROLE_NAMES:
        if name not in existing:
            db.session.add(Role(role_name=name))
    db.session.commit()

    email = app.config.get('ADMIN_EMAIL')
    password = app.config.get('ADMIN_PASSWORD')
    if email and password and not User.query.filter_by(email=email).first():
        admin = User(roll_no=app.config.get('ADMIN_ROLL_NO', 'ADMIN'), user_name='Administrator', email=email)
        admin.set_password(password)
        admin.roles.append(Role.query.filter_by(role_name='admin').first())
        db.session.add(admin)
        db.session.commit()
        app.logger.info('Seeded admin account %s', email)


def register_error_handlers(app):
    @app.errorhandler(GradingError)
    def handle_grading_error(e):
        return jsonify({'error': e.message}), e.status

    @app.errorhandler(JudgePendingError)
    def handle_judge_pending(e):
        return jsonify({'error': 'Results are not ready yet, try again shortly'}), 503

    @app.errorhandler(JudgeError)
    def handle_judge_error(e):
        current_app.logger.error('[JUDGE] %s', e)
        return jsonify({'error': 'Could not reach the code judge'}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        current_app.logger.exception('Unhandled error: %s', e)
        return jsonify({'error': 'Internal Server Error'}), 500


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config['SQLALCHEMY_DATABASE_URI'] = Config.get_database_uri()
    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    app.extensions['judge'] = JudgeClient(JudgeSettings.from_config(app.config))

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(classroom_bp, url_prefix='/api/classroom')
    app.register_blueprint(question_bp, url_prefix='/api/question')
    app.register_blueprint(staff_bp, url_prefix='/api/staff')
    app.register_blueprint(student_bp, url_prefix='/api/student')
    app.register_blueprint(submission_bp, url_prefix='/api/submission')
    app.register_blueprint(supervisor_bp, url_prefix='/api/supervisor')
    app.register_blueprint(test_bp, url_prefix='/api/test')
    register_error_handlers(app)

    # Server time endpoint (UTC), used by clients to sync test countdowns
    @app.route('/api/server_time')
    def server_time():
        now = datetime.now(timezone.utc)
        return jsonify({'server_time_utc': now.isoformat()})

    with app.app_context():
        init_database(app)

    return app


if __name__ == '__main__':
    create_app().run(debug=True)
