from datetime import datetime, timedelta
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

ROLE_NAMES = ('student', 'staff', 'admin', 'supervisor')

user_roles = db.Table(
    'user_roles',
    db.Column('user_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
)

classroom_staff = db.Table(
    'classroom_staff',
    db.Column('classroom_id', db.Integer, db.ForeignKey('classrooms.id', ondelete='CASCADE'), primary_key=True),
    db.Column('staff_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
)

classroom_student = db.Table(
    'classroom_student',
    db.Column('classroom_id', db.Integer, db.ForeignKey('classrooms.id', ondelete='CASCADE'), primary_key=True),
    db.Column('student_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
)


class Role(db.Model):
    __tablename__ = 'roles'
    id = db.Column(db.Integer, primary_key=True)
    role_name = db.Column(db.String(20), unique=True, nullable=False)


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    roll_no = db.Column(db.String(50), unique=True, nullable=False)
    user_name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    roles = db.relationship('Role', secondary=user_roles, lazy='joined')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def role_names(self):
        return sorted(r.role_name for r in self.roles)

    def has_role(self, name):
        return name in self.role_names


class Log(db.Model):
    __tablename__ = 'logs'
    id = db.Column(db.Integer, primary_key=True)
    who_user_id = db.Column(db.Integer, nullable=True)         # optional user id who performed the action
    role = db.Column(db.String(30), nullable=True)
    event_type = db.Column(db.String(120), nullable=False)
    meta = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class UserBlock(db.Model):
    __tablename__ = 'user_blocks'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    block_reason = db.Column(db.String(255), nullable=True)
    blocked_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    blocked_at = db.Column(db.DateTime, default=datetime.utcnow)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    unblocked_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    unblocked_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship('User', foreign_keys=[user_id])


class Classroom(db.Model):
    __tablename__ = 'classrooms'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator = db.relationship('User', foreign_keys=[created_by])
    staff = db.relationship('User', secondary=classroom_staff, viewonly=True)
    students = db.relationship('User', secondary=classroom_student, viewonly=True)
    scheduled_tests = db.relationship('ClassroomTest', backref='classroom', cascade='all, delete-orphan')


class Test(db.Model):
    __tablename__ = 'tests'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    duration_in_minutes = db.Column(db.Integer, nullable=False, default=60)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    creator = db.relationship('User', foreign_keys=[created_by])
    questions = db.relationship('Question', backref='test', cascade='all, delete-orphan',
                                order_by='Question.id')
    schedules = db.relationship('ClassroomTest', backref='test', cascade='all, delete-orphan')


class ClassroomTest(db.Model):
    __tablename__ = 'classroom_tests'
    __table_args__ = (db.UniqueConstraint('classroom_id', 'test_id', name='uix_classroom_test'),)
    id = db.Column(db.Integer, primary_key=True)
    classroom_id = db.Column(db.Integer, db.ForeignKey('classrooms.id', ondelete='CASCADE'), nullable=False)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    supervisor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    @property
    def ends_at(self):
        return self.scheduled_at + timedelta(minutes=self.test.duration_in_minutes)


class Question(db.Model):
    """Base row of every question; the type-specific detail lives in a
    satellite table joined through the polymorphic mapping below."""
    __tablename__ = 'questions'
    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False)
    question_type = db.Column(db.String(10), nullable=False)  # 'code' or 'mcq'
    question = db.Column(db.Text, nullable=False)
    question_title = db.Column(db.String(255), nullable=True)
    marks = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {'polymorphic_on': question_type}

    def summary(self):
        return {
            'question_id': self.id,
            'question_title': self.question_title or self.question,
            'type_name': self.question_type,
            'marks': self.marks,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def detail(self, include_answers=False):
        out = self.summary()
        out.update({'test_id': self.test_id, 'question': self.question})
        return out


class CodeQuestion(Question):
    __tablename__ = 'code_questions'
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), primary_key=True)
    solution_code = db.Column(db.Text, nullable=True)
    allowed_languages = db.Column(db.JSON, nullable=True)
    public_test_case = db.Column(db.JSON, nullable=True)   # [{'input': ..., 'output': ...}]
    private_test_case = db.Column(db.JSON, nullable=True)

    __mapper_args__ = {'polymorphic_identity': 'code'}

    def detail(self, include_answers=False):
        out = super().detail(include_answers)
        out['allowed_languages'] = self.allowed_languages or []
        out['public_test_case'] = self.public_test_case or []
        if include_answers:
            out['solution_code'] = self.solution_code
            out['private_test_case'] = self.private_test_case or []
        return out


class McqQuestion(Question):
    __tablename__ = 'mcq_questions'
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), primary_key=True)
    multiple_correct = db.Column(db.Boolean, nullable=False, default=False)

    options = db.relationship('McqOption', backref='mcq_question', cascade='all, delete-orphan',
                              order_by='McqOption.position')

    __mapper_args__ = {'polymorphic_identity': 'mcq'}

    @property
    def correct_option_ids(self):
        return {o.id for o in self.options if o.is_correct}

    def detail(self, include_answers=False):
        out = super().detail(include_answers)
        out['multiple_correct'] = self.multiple_correct
        opts = []
        for o in self.options:
            item = {'mcq_option_id': o.id, 'option_text': o.option_text}
            if include_answers:
                item['is_correct'] = o.is_correct
            opts.append(item)
        out['options'] = opts
        return out


class McqOption(db.Model):
    __tablename__ = 'mcq_options'
    id = db.Column(db.Integer, primary_key=True)
    mcq_question_id = db.Column(db.Integer, db.ForeignKey('mcq_questions.question_id', ondelete='CASCADE'),
                                nullable=False)
    option_text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)


class Submission(db.Model):
    __tablename__ = 'code_submissions'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False)
    classroom_test_id = db.Column(db.Integer, db.ForeignKey('classroom_tests.id', ondelete='CASCADE'),
                                  nullable=False)
    language = db.Column(db.Integer, nullable=False)
    source_code = db.Column(db.Text, nullable=False)
    j_tokens = db.Column(db.Text, nullable=False)  # base64 of the comma-joined judge tokens
    marks_awarded = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    question = db.relationship('Question')
    tokens = db.relationship('SubmissionToken', backref='submission', cascade='all, delete-orphan',
                             order_by='SubmissionToken.position')
    results = db.relationship('SubmissionResult', backref='submission', cascade='all, delete-orphan',
                              order_by='SubmissionResult.id')


class SubmissionToken(db.Model):
    __tablename__ = 'code_submission_tokens'
    token = db.Column(db.String(64), primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('code_submissions.id', ondelete='CASCADE'),
                              nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)


class SubmissionResult(db.Model):
    __tablename__ = 'code_submission_results'
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('code_submissions.id', ondelete='CASCADE'),
                              nullable=False, index=True)
    status = db.Column(db.String(64), nullable=True)
    time = db.Column(db.Float, nullable=True)
    memory = db.Column(db.Integer, nullable=True)
    j_token = db.Column(db.String(64), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class McqAnswer(db.Model):
    __tablename__ = 'mcq_submissions'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('mcq_questions.question_id', ondelete='CASCADE'),
                            nullable=False)
    option_id = db.Column(db.Integer, db.ForeignKey('mcq_options.id', ondelete='CASCADE'), nullable=False)
    classroom_test_id = db.Column(db.Integer, db.ForeignKey('classroom_tests.id', ondelete='CASCADE'),
                                  nullable=False)
    marks_awarded = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class TestSubmission(db.Model):
    __tablename__ = 'submitted_status'
    __table_args__ = (db.UniqueConstraint('user_id', 'classroom_test_id', name='uix_submitted_status'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    classroom_test_id = db.Column(db.Integer, db.ForeignKey('classroom_tests.id', ondelete='CASCADE'),
                                  nullable=False)
    submitted_at = db.Column(db.DateTime, default=datetime.utcnow)


class Attendance(db.Model):
    __tablename__ = 'attendance'
    __table_args__ = (db.UniqueConstraint('student_id', 'classroom_test_id', name='uix_attendance'),)
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    classroom_test_id = db.Column(db.Integer, db.ForeignKey('classroom_tests.id', ondelete='CASCADE'),
                                  nullable=False)
    is_present = db.Column(db.Boolean, nullable=False, default=False)
    tab_switch_count = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
