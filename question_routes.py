from flask import Blueprint, jsonify, g
from sqlalchemy import insert
from models import ClassroomTest, CodeQuestion, McqOption, McqQuestion, Question, Test, db
from utils import add_log, auth_required, caller_role, error, payload, positive_int

question_bp = Blueprint('question', __name__)


def _marks(value):
    try:
        marks = float(value)
    except (TypeError, ValueError):
        return None
    return marks if marks >= 0 else None


def _test_cases(value, name):
    """Validate a list of {input, output} pairs; returns (cases, error_message)."""
    if value is None:
        return [], None
    if not isinstance(value, list):
        return None, f'{name} must be a list'
    out = []
    for case in value:
        if not isinstance(case, dict) or 'output' not in case:
            return None, f'Each {name} entry needs an input and an output'
        out.append({'input': str(case.get('input') or ''), 'output': str(case.get('output') or '')})
    return out, None


def _is_correct(option):
    return option.get('correct') in (True, 1, '1', 'true')


@question_bp.route('/<int:test_id>', methods=['GET'])
@auth_required()
def list_questions(test_id):
    questions = Question.query.filter_by(test_id=test_id).order_by(Question.id.asc()).all()
    if not questions:
        return error('No questions found for the specified test.', 404)
    return jsonify({'questions': [q.summary() for q in questions]})


@question_bp.route('/<int:test_id>/meta', methods=['GET'])
@auth_required()
def question_meta(test_id):
    questions = Question.query.filter_by(test_id=test_id).order_by(Question.id.asc()).all()
    schedule = (ClassroomTest.query.filter_by(test_id=test_id)
                .order_by(ClassroomTest.scheduled_at.asc()).first())
    if not questions or not schedule:
        return error('No questions found for the specified test.', 404)
    return jsonify({
        'questions': [{'id': q.id, 'type_name': q.question_type} for q in questions],
        'startTime': schedule.scheduled_at.isoformat(),
        'endTime': schedule.ends_at.isoformat(),
    })


@question_bp.route('/<int:test_id>/<int:question_id>', methods=['GET'])
@auth_required()
def get_question(test_id, question_id):
    question = Question.query.filter_by(test_id=test_id, id=question_id).first()
    if not question:
        return error('Question not found for the specified test.', 404)
    # answers and private cases stay hidden from students
    include_answers = bool({'staff', 'admin'} & set(g.roles))
    return jsonify({'question': question.detail(include_answers=include_answers)})


@question_bp.route('/add-code', methods=['POST'])
@auth_required('staff', 'admin')
def add_code_question():
    d = payload()
    prompt = (d.get('question') or '').strip()
    marks = _marks(d.get('marks'))
    if not positive_int(d.get('test_id')) or not prompt or marks is None:
        return error('test_id, question and marks are required', 400)
    test = db.session.get(Test, positive_int(d.get('test_id')))
    if not test:
        return error('Test not found', 404)

    public_cases, msg = _test_cases(d.get('public_test_case'), 'public_test_case')
    if msg:
        return error(msg, 400)
    private_cases, msg = _test_cases(d.get('private_test_case'), 'private_test_case')
    if msg:
        return error(msg, 400)
    if not private_cases:
        return error('At least one private test case is required', 400)
    languages = d.get('allowed_languages') or []
    if not isinstance(languages, list):
        return error('allowed_languages must be a list', 400)

    question = CodeQuestion(
        test_id=test.id,
        question=prompt,
        question_title=d.get('question_title'),
        marks=marks,
        solution_code=d.get('solution_code'),
        allowed_languages=languages,
        public_test_case=public_cases,
        private_test_case=private_cases,
    )
    db.session.add(question)
    db.session.commit()
    add_log(g.user_id, caller_role(), 'create_question', {'test_id': test.id, 'question_id': question.id, 'type': 'code'})
    return jsonify({'message': 'Code question added successfully', 'question_id': question.id}), 201


@question_bp.route('/add-mcq', methods=['POST'])
@auth_required('staff', 'admin')
def add_mcq_question():
    d = payload()
    prompt = (d.get('question') or '').strip()
    marks = _marks(d.get('marks'))
    options = d.get('options')
    if not positive_int(d.get('test_id')) or not prompt or marks is None:
        return error('test_id, question and marks are required', 400)
    if not isinstance(options, list) or len(options) < 2:
        return error('At least two options are required', 400)
    for option in options:
        if not isinstance(option, dict) or not str(option.get('value') or '').strip():
            return error('Each option needs a value', 400)
    correct = [o for o in options if _is_correct(o)]
    if not correct:
        return error('At least one option must be correct', 400)
    # question_type: 0 single correct, 1 multiple correct
    multiple_correct = str(d.get('question_type', 0)).lower() in ('1', 'true')
    if not multiple_correct and len(correct) > 1:
        return error('Single correct question has more than one correct option', 400)

    test = db.session.get(Test, positive_int(d.get('test_id')))
    if not test:
        return error('Test not found', 404)

    question = McqQuestion(test_id=test.id, question=prompt, question_title=d.get('question_title'),
                           marks=marks, multiple_correct=multiple_correct)
    db.session.add(question)
    db.session.flush()
    # one parameterized statement, one bound row per option
    db.session.execute(insert(McqOption), [{
        'mcq_question_id': question.id,
        'option_text': str(o.get('value')).strip(),
        'is_correct': _is_correct(o),
        'position': position,
    } for position, o in enumerate(options)])
    db.session.commit()
    add_log(g.user_id, caller_role(), 'create_question', {'test_id': test.id, 'question_id': question.id, 'type': 'mcq'})
    return jsonify({'message': 'MCQ question added successfully', 'question_id': question.id}), 201
