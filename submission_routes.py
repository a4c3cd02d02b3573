from datetime import datetime
from flask import Blueprint, current_app, request, jsonify, g
from models import ClassroomTest, Submission, SubmissionToken, classroom_student, db
from judge import DEFAULT_FIELDS, RESULT_FIELDS, RUN_FIELDS, MissingTokensError
from utils import auth_required, error, payload, positive_int
import grading

submission_bp = Blueprint('submission', __name__)


def _judge():
    return current_app.extensions['judge']


def _is_student_only():
    return 'student' in g.roles and not {'staff', 'admin'} & set(g.roles)


def _enrolled(classroom_test_id):
    """Students may only act on tests scheduled in their own classrooms."""
    if not _is_student_only():
        return True
    ct = db.session.get(ClassroomTest, classroom_test_id)
    if not ct:
        # let the grading layer report the missing test
        return True
    row = db.session.execute(classroom_student.select().where(
        classroom_student.c.classroom_id == ct.classroom_id,
        classroom_student.c.student_id == g.user_id)).first()
    return row is not None


def _outside_window(classroom_test_id, allow_late=False):
    """True when a student acts on a test that has not opened, or has closed
    and allow_late is off."""
    if not _is_student_only():
        return False
    ct = db.session.get(ClassroomTest, classroom_test_id)
    if not ct:
        return False
    now = datetime.utcnow()
    return now < ct.scheduled_at or (not allow_late and now > ct.ends_at)


def _student_fields(raw_tokens):
    """Judge fields a student may read for these tokens, None when any token
    belongs to someone else's graded submission.

    Graded runs never expose stdout since the program can echo the private
    input back.
    """
    tokens = [t.strip() for t in str(raw_tokens).split(',') if t.strip()]
    if not tokens:
        return RUN_FIELDS
    owners = (db.session.query(Submission.student_id)
              .join(SubmissionToken, SubmissionToken.submission_id == Submission.id)
              .filter(SubmissionToken.token.in_(tokens))
              .all())
    if any(student_id != g.user_id for (student_id,) in owners):
        return None
    return RESULT_FIELDS if owners else RUN_FIELDS


def serialize_submission(s):
    return {
        'submission_id': s.id,
        'student_id': s.student_id,
        'question_id': s.question_id,
        'classroom_test_id': s.classroom_test_id,
        'language': s.language,
        'source_code': s.source_code,
        'j_tokens': s.j_tokens,
        'marks_awarded': s.marks_awarded,
        'created_at': s.created_at.isoformat() if s.created_at else None,
    }


@submission_bp.route('/', methods=['GET'])
@auth_required('staff', 'admin', 'student')
def get_results():
    tokens = request.args.get('tokens', '')
    fields = DEFAULT_FIELDS
    if _is_student_only():
        fields = _student_fields(tokens)
        if fields is None:
            return jsonify({'message': 'Access denied'}), 403
    try:
        results = _judge().fetch_batch(tokens, fields=fields)
    except MissingTokensError as e:
        return error(str(e), 400)
    return jsonify({'submissions': [r.to_dict(fields) for r in results]})


@submission_bp.route('/', methods=['POST'])
@auth_required('staff', 'admin', 'student')
def create_submission():
    d = payload()
    ct_id = d.get('classroom_test_id')
    if d.get('question_id') and positive_int(ct_id) and not _enrolled(positive_int(ct_id)):
        return error('Not enrolled in this classroom', 403)
    if d.get('question_id') and positive_int(ct_id) and _outside_window(positive_int(ct_id)):
        return error('Test is not open', 403)
    out = grading.submit_solution(
        _judge(),
        g.user_id,
        d.get('language_id'),
        d.get('source_code'),
        test_cases=d.get('test_case'),
        question_id=d.get('question_id'),
        classroom_test_id=ct_id,
    )
    return jsonify(out), 201


@submission_bp.route('/get-all/<int:classroom_test_id>', methods=['GET'])
@auth_required('staff', 'admin', 'student')
def list_submissions(classroom_test_id):
    rows = (Submission.query
            .filter_by(student_id=g.user_id, classroom_test_id=classroom_test_id)
            .order_by(Submission.id.asc())
            .all())
    return jsonify({'submissions': [serialize_submission(s) for s in rows]})


@submission_bp.route('/id/<int:submission_id>', methods=['GET'])
@auth_required('staff', 'admin', 'student')
def get_submission(submission_id):
    submission = db.session.get(Submission, submission_id)
    if not submission:
        return error('Submission not found', 404)
    if submission.student_id != g.user_id and _is_student_only():
        return jsonify({'message': 'Access denied'}), 403

    if submission.results:
        results = [{
            'token': r.j_token,
            'status': {'description': r.status},
            'time': r.time,
            'memory': r.memory,
        } for r in submission.results]
    else:
        # not finalized yet, ask the judge directly
        tokens = [t.token for t in submission.tokens]
        results = [r.to_dict() for r in _judge().fetch_batch(tokens, fields=RESULT_FIELDS)]
    return jsonify({
        'submissions': results,
        'created_at': submission.created_at.isoformat() if submission.created_at else None,
        'source_code': submission.source_code,
        'language_id': submission.language,
        'marks_awarded': submission.marks_awarded,
    })


@submission_bp.route('/submit/<int:classroom_test_id>', methods=['POST'])
@auth_required('staff', 'student')
def finalize(classroom_test_id):
    if not _enrolled(classroom_test_id):
        return error('Not enrolled in this classroom', 403)
    # finalizing after the end is allowed
    if _outside_window(classroom_test_id, allow_late=True):
        return error('Test has not started', 403)
    d = payload()
    out = grading.finalize_test(_judge(), g.user_id, classroom_test_id, d.get('mcqAnswers'))
    return jsonify(out)
