import base64
from sqlalchemy import insert
from models import db, McqAnswer, Submission, SubmissionResult, SubmissionToken, TestSubmission


def encode_tokens(tokens):
    return base64.b64encode(','.join(tokens).encode('ascii')).decode('ascii')


def decode_tokens(blob):
    if not blob:
        return []
    return [t for t in base64.b64decode(blob).decode('ascii').split(',') if t]


def record_submission(student_id, question_id, classroom_test_id, language, source_code, tokens):
    """Stage a Submission with its token blob and token index rows."""
    submission = Submission(
        student_id=student_id,
        question_id=question_id,
        classroom_test_id=classroom_test_id,
        language=language,
        source_code=source_code,
        j_tokens=encode_tokens(tokens),
    )
    for position, token in enumerate(tokens):
        submission.tokens.append(SubmissionToken(token=token, position=position))
    db.session.add(submission)
    db.session.flush()
    return submission


def load_submissions(student_id, classroom_test_id):
    return (Submission.query
            .filter_by(student_id=student_id, classroom_test_id=classroom_test_id)
            .order_by(Submission.id.asc())
            .all())


def token_index(submissions):
    """Ordered token list over all submissions plus a token -> submission map."""
    tokens = []
    owners = {}
    for sub in submissions:
        for row in sub.tokens:
            tokens.append(row.token)
            owners[row.token] = sub
    return tokens, owners


def record_result(submission, result):
    """Append a SubmissionResult unless the token was already recorded."""
    if any(r.j_token == result.token for r in submission.results):
        return None
    row = SubmissionResult(
        status=result.status,
        time=result.time,
        memory=result.memory,
        j_token=result.token,
    )
    submission.results.append(row)
    return row


def set_marks(submission, marks):
    submission.marks_awarded = marks


def latest_per_question(submissions):
    """Most recent submission for each question."""
    latest = {}
    for sub in submissions:
        current = latest.get(sub.question_id)
        if current is None or sub.id > current.id:
            latest[sub.question_id] = sub
    return list(latest.values())


def record_mcq_answers(student_id, question_id, option_ids, classroom_test_id, marks):
    """One row per selected option, all carrying the same mark."""
    rows = [{
        'student_id': student_id,
        'question_id': question_id,
        'option_id': option_id,
        'classroom_test_id': classroom_test_id,
        'marks_awarded': marks,
    } for option_id in option_ids]
    if rows:
        db.session.execute(insert(McqAnswer), rows)
    return len(rows)


def mcq_marks_by_question(student_id, classroom_test_id):
    rows = McqAnswer.query.filter_by(student_id=student_id, classroom_test_id=classroom_test_id).all()
    out = {}
    for row in rows:
        out[row.question_id] = row.marks_awarded
    return out


def is_test_submitted(user_id, classroom_test_id):
    return TestSubmission.query.filter_by(user_id=user_id, classroom_test_id=classroom_test_id).first() is not None


def mark_test_submitted(user_id, classroom_test_id):
    row = TestSubmission(user_id=user_id, classroom_test_id=classroom_test_id)
    db.session.add(row)
    return row
