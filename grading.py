"""Submission and grading workflow.

Submit sends every test case of a coding question to the judge and stores the
returned tokens. Finalize pulls the results back for all of a student's
submissions in a classroom test, records them, awards coding marks
(all-pass-or-zero) and MCQ marks (exact or proportional), all inside one
database transaction.
"""
from flask import current_app
from models import db, ClassroomTest, CodeQuestion, McqQuestion
from judge import ACCEPTED, JudgeError, JudgePendingError
import recorder
from utils import add_log, parse_ids


class GradingError(Exception):
    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


def coding_marks(question_marks, statuses):
    """Full marks only if there is at least one result and all are Accepted."""
    statuses = list(statuses)
    if statuses and all(s == ACCEPTED for s in statuses):
        return question_marks
    return 0


def mcq_marks(question_marks, correct_ids, selected_ids, multiple_correct):
    correct = set(correct_ids)
    selected = list(selected_ids)
    if not correct or not selected:
        return 0
    if multiple_correct:
        hits = len(correct & set(selected))
        awarded = hits / len(correct) * question_marks
        return min(max(awarded, 0), question_marks)
    # single correct: only the first pick counts
    return question_marks if selected[0] in correct else 0


def normalize_test_cases(test_cases):
    if not isinstance(test_cases, list):
        raise GradingError('test_case must be a list')
    out = []
    for case in test_cases:
        if not isinstance(case, dict):
            raise GradingError('Each test case needs an input and an output')
        expected = case.get('output', case.get('expected_output'))
        out.append({'input': case.get('input') or '', 'output': expected or ''})
    return out


def build_items(language_id, source_code, test_cases):
    return [{
        'language_id': language_id,
        'source_code': source_code,
        'stdin': case['input'],
        'expected_output': case['output'],
    } for case in test_cases]


def submit_solution(judge, student_id, language_id, source_code, test_cases=None,
                    question_id=None, classroom_test_id=None):
    """Queue a solution on the judge.

    Without a question this is an ungraded run over the caller's cases and
    only the tokens are returned. With a question the private cases are used
    and a Submission row is stored.
    """
    if language_id in (None, '') or not source_code:
        raise GradingError('language_id and source_code are required')
    try:
        language_id = int(language_id)
    except (TypeError, ValueError):
        raise GradingError('language_id must be a number')

    if not question_id:
        cases = normalize_test_cases(test_cases or [])
        if not cases:
            raise GradingError('test_case is required')
        tokens = judge.submit_batch(build_items(language_id, source_code, cases))
        return {'tokens': tokens}

    if not classroom_test_id:
        raise GradingError('ClassroomTestId was not provided')
    try:
        question_id = int(question_id)
        classroom_test_id = int(classroom_test_id)
    except (TypeError, ValueError):
        raise GradingError('question_id and classroom_test_id must be numbers')

    ct = db.session.get(ClassroomTest, classroom_test_id)
    if not ct:
        raise GradingError('Scheduled test not found', 404)
    question = db.session.get(CodeQuestion, question_id)
    if not question:
        raise GradingError('Code question not found', 404)
    if question.test_id != ct.test_id:
        raise GradingError('Question does not belong to this test')
    if recorder.is_test_submitted(student_id, ct.id):
        raise GradingError('Test already submitted', 409)

    # private cases are authoritative, whatever the caller sent is ignored
    cases = normalize_test_cases(question.private_test_case or [])
    if not cases:
        raise GradingError('Question has no private test cases')

    current_app.logger.info(f"[JUDGE] queueing {len(cases)} runs for question {question.id} by user {student_id}")
    tokens = judge.submit_batch(build_items(language_id, source_code, cases))
    if len(tokens) != len(cases):
        raise JudgeError(f'Sent {len(cases)} test cases, judge returned {len(tokens)} tokens')

    try:
        submission = recorder.record_submission(student_id, question.id, ct.id, language_id,
                                                source_code, tokens)
        add_log(student_id, 'student', 'code_submission',
                {'submission_id': submission.id, 'question_id': question.id,
                 'classroom_test_id': ct.id, 'test_cases': len(tokens)}, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return {'submissionId': submission.id, 'tokens': tokens}


def _grade_code(judge, student_id, classroom_test_id):
    submissions = recorder.load_submissions(student_id, classroom_test_id)
    submissions = [s for s in submissions if s.tokens]
    if not submissions:
        return 0, 0

    tokens, owners = recorder.token_index(submissions)
    results = judge.fetch_batch(tokens)
    pending = [r.token for r in results if r.pending]
    if pending:
        current_app.logger.info(f"[JUDGE] {len(pending)} of {len(results)} results pending for user {student_id}")
        raise JudgePendingError(f'{len(pending)} results are still being processed')

    recorded = 0
    for result in results:
        submission = owners.get(result.token)
        if submission is None:
            raise JudgeError(f'Judge returned unknown token {result.token}')
        if recorder.record_result(submission, result) is not None:
            recorded += 1

    for submission in submissions:
        if len(submission.results) != len(submission.tokens):
            raise JudgeError(f'Submission {submission.id} is missing results')
        marks = coding_marks(submission.question.marks, [r.status for r in submission.results])
        recorder.set_marks(submission, marks)

    total = sum(s.marks_awarded or 0 for s in recorder.latest_per_question(submissions))
    return total, recorded


def _grade_mcq(student_id, ct, mcq_answers):
    if not mcq_answers:
        return 0
    if not isinstance(mcq_answers, list):
        raise GradingError('mcqAnswers must be a list')

    seen = set()
    total = 0
    for answer in mcq_answers:
        if not isinstance(answer, dict):
            raise GradingError('Each MCQ answer needs a question_id and an answer')
        try:
            question_id = int(answer.get('question_id'))
            selected = parse_ids(answer.get('answer'))
        except (TypeError, ValueError):
            raise GradingError('Malformed MCQ answer')
        if question_id in seen:
            raise GradingError(f'Duplicate answer for question {question_id}')
        seen.add(question_id)

        question = db.session.get(McqQuestion, question_id)
        if not question:
            raise GradingError(f'MCQ question {question_id} not found', 404)
        if question.test_id != ct.test_id:
            raise GradingError('Question does not belong to this test')

        option_ids = {o.id for o in question.options}
        chosen = []
        for oid in selected:
            if oid in option_ids and oid not in chosen:
                chosen.append(oid)

        marks = mcq_marks(question.marks, question.correct_option_ids, chosen, question.multiple_correct)
        recorder.record_mcq_answers(student_id, question.id, chosen, ct.id, marks)
        total += marks
    return total


def finalize_test(judge, student_id, classroom_test_id, mcq_answers=None):
    """Grade everything a student submitted for a classroom test.

    Runs as one transaction: on any failure nothing is kept and the call can
    be repeated.
    """
    ct = db.session.get(ClassroomTest, classroom_test_id)
    if not ct:
        raise GradingError('Scheduled test not found', 404)
    if recorder.is_test_submitted(student_id, ct.id):
        raise GradingError('Test already submitted', 409)

    try:
        code_total, recorded = _grade_code(judge, student_id, ct.id)
        mcq_total = _grade_mcq(student_id, ct, mcq_answers)
        recorder.mark_test_submitted(student_id, ct.id)
        add_log(student_id, 'student', 'finalize_test',
                {'classroom_test_id': ct.id, 'code_marks': code_total, 'mcq_marks': mcq_total,
                 'results_recorded': recorded}, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {
        'message': 'Test submitted',
        'codeMarks': code_total,
        'mcqMarks': mcq_total,
        'total': code_total + mcq_total,
    }
