from datetime import datetime, timedelta
import models
from models import Submission, SubmissionResult, SubmissionToken, db
from judge import RESULT_FIELDS
from conftest import add_code_question, bearer, login, register


def submit(client, headers, question_id, ct_id, test_case=None):
    return client.post('/api/submission/', json={
        'question_id': question_id,
        'classroom_test_id': ct_id,
        'language_id': 71,
        'source_code': 'a, b = map(int, input().split())\nprint(a + b)',
        'test_case': test_case or [],
    }, headers=headers)


def test_all_accepted_gets_full_marks(app, client, staff_headers, student, classroom_test, judge_session):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'], marks=10)

    resp = submit(client, student['headers'], qid, classroom_test['id'])
    assert resp.status_code == 201
    body = resp.get_json()
    assert len(body['tokens']) == 2

    resp = client.post(f"/api/submission/submit/{classroom_test['id']}", json={}, headers=student['headers'])
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['codeMarks'] == 10
    assert len(judge_session.gets) == 1

    with app.app_context():
        sub = db.session.get(Submission, body['submissionId'])
        assert sub.marks_awarded == 10
        assert len(sub.results) == 2
        assert {r.status for r in sub.results} == {'Accepted'}
        assert [t.token for t in sub.tokens] == body['tokens']


def test_one_failing_case_gives_zero(app, client, staff_headers, student, classroom_test, judge_session):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'], marks=10)
    judge_session.statuses['2 2'] = 'Wrong Answer'
    sub_id = submit(client, student['headers'], qid, classroom_test['id']).get_json()['submissionId']

    resp = client.post(f"/api/submission/submit/{classroom_test['id']}", json={}, headers=student['headers'])
    assert resp.status_code == 200
    assert resp.get_json()['codeMarks'] == 0

    with app.app_context():
        assert db.session.get(Submission, sub_id).marks_awarded == 0


def test_private_cases_replace_caller_cases(client, staff_headers, student, classroom_test, judge_session):
    cases = [{'input': '5 5', 'output': '10'}, {'input': '1 1', 'output': '2'}, {'input': '0 9', 'output': '9'}]
    qid = add_code_question(client, staff_headers, classroom_test['test_id'], cases=cases)

    resp = submit(client, student['headers'], qid, classroom_test['id'],
                  test_case=[{'input': 'x', 'output': 'y'}])
    tokens = resp.get_json()['tokens']
    assert len(tokens) == 3
    assert [judge_session.runs[t]['stdin'] for t in tokens] == ['5 5', '1 1', '0 9']
    assert [judge_session.runs[t]['expected_output'] for t in tokens] == ['10', '2', '9']


def test_finalize_twice_is_a_conflict(app, client, staff_headers, student, classroom_test):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'])
    submit(client, student['headers'], qid, classroom_test['id'])
    url = f"/api/submission/submit/{classroom_test['id']}"
    assert client.post(url, json={}, headers=student['headers']).status_code == 200
    assert client.post(url, json={}, headers=student['headers']).status_code == 409
    assert submit(client, student['headers'], qid, classroom_test['id']).status_code == 409

    with app.app_context():
        assert SubmissionResult.query.count() == 2


def test_pending_results_roll_back_and_can_be_retried(app, client, staff_headers, student, classroom_test,
                                                      judge_session):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'], marks=4)
    submit(client, student['headers'], qid, classroom_test['id'])
    url = f"/api/submission/submit/{classroom_test['id']}"

    judge_session.default_status = 'Processing'
    assert client.post(url, json={}, headers=student['headers']).status_code == 503
    with app.app_context():
        assert SubmissionResult.query.count() == 0
        assert models.TestSubmission.query.count() == 0

    judge_session.default_status = 'Accepted'
    resp = client.post(url, json={}, headers=student['headers'])
    assert resp.status_code == 200
    assert resp.get_json()['total'] == 4


def test_latest_submission_per_question_counts(client, staff_headers, student, classroom_test, judge_session):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'], marks=10)
    first = submit(client, student['headers'], qid, classroom_test['id']).get_json()
    submit(client, student['headers'], qid, classroom_test['id'])
    judge_session.token_statuses[first['tokens'][0]] = 'Wrong Answer'

    resp = client.post(f"/api/submission/submit/{classroom_test['id']}", json={}, headers=student['headers'])
    assert resp.get_json()['codeMarks'] == 10


def test_latest_failing_submission_overrides_earlier_pass(client, staff_headers, student, classroom_test,
                                                          judge_session):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'], marks=10)
    submit(client, student['headers'], qid, classroom_test['id'])
    second = submit(client, student['headers'], qid, classroom_test['id']).get_json()
    judge_session.token_statuses[second['tokens'][1]] = 'Runtime Error (NZEC)'

    resp = client.post(f"/api/submission/submit/{classroom_test['id']}", json={}, headers=student['headers'])
    assert resp.get_json()['codeMarks'] == 0


def test_ad_hoc_run_is_not_stored(app, client, student):
    resp = client.post('/api/submission/', json={
        'language_id': 71, 'source_code': 'print(1)', 'test_case': [{'input': '', 'output': '1'}],
    }, headers=student['headers'])
    assert resp.status_code == 201
    assert len(resp.get_json()['tokens']) == 1
    assert 'submissionId' not in resp.get_json()
    with app.app_context():
        assert Submission.query.count() == 0
        assert SubmissionToken.query.count() == 0


def test_submit_validation(client, staff_headers, student, classroom_test):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'])
    resp = client.post('/api/submission/', json={'question_id': qid, 'language_id': 71, 'source_code': 'x'},
                       headers=student['headers'])
    assert resp.status_code == 400
    assert submit(client, student['headers'], 9999, classroom_test['id']).status_code == 404
    assert submit(client, student['headers'], qid, 9999).status_code == 404


def test_outsider_cannot_submit(client, staff_headers, classroom_test):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'])
    register(client, 'S9', 'outsider@x.com')
    headers = bearer(login(client, 'outsider@x.com'))
    assert submit(client, headers, qid, classroom_test['id']).status_code == 403
    resp = client.post(f"/api/submission/submit/{classroom_test['id']}", json={}, headers=headers)
    assert resp.status_code == 403


def test_raw_results_and_listing(client, staff_headers, student, classroom_test):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'])
    body = submit(client, student['headers'], qid, classroom_test['id']).get_json()

    resp = client.get('/api/submission/?tokens=' + ','.join(body['tokens']), headers=student['headers'])
    assert resp.status_code == 200
    assert [s['token'] for s in resp.get_json()['submissions']] == body['tokens']
    assert client.get('/api/submission/?tokens=', headers=student['headers']).status_code == 400

    resp = client.get(f"/api/submission/get-all/{classroom_test['id']}", headers=student['headers'])
    assert [s['submission_id'] for s in resp.get_json()['submissions']] == [body['submissionId']]

    resp = client.get(f"/api/submission/id/{body['submissionId']}", headers=student['headers'])
    assert resp.status_code == 200
    assert len(resp.get_json()['submissions']) == 2
    assert resp.get_json()['language_id'] == 71


def test_judge_failure_is_reported(client, staff_headers, student, classroom_test, judge_session):
    qid = add_code_question(client, staff_headers, classroom_test['test_id'])
    judge_session.fail_with = 500
    resp = submit(client, student['headers'], qid, classroom_test['id'])
    assert resp.status_code == 500
    assert resp.get_json()['error'] == 'Could not reach the code judge'


def test_raw_results_hide_private_cases_from_students(client, staff_headers, student, classroom_test,
                                                     judge_session):
    cases = [{'input': 'SECRET_IN', 'output': 'SECRET_OUT'}]
    qid = add_code_question(client, staff_headers, classroom_test['test_id'], cases=cases)
    tokens = submit(client, student['headers'], qid, classroom_test['id']).get_json()['tokens']
    url = '/api/submission/?tokens=' + ','.join(tokens)

    resp = client.get(url, headers=student['headers'])
    assert resp.status_code == 200
    assert judge_session.gets[-1]['params']['fields'] == RESULT_FIELDS
    assert 'SECRET' not in resp.get_data(as_text=True)
    row = resp.get_json()['submissions'][0]
    assert set(row) <= {'token', 'time', 'memory', 'status'}

    row = client.get(url, headers=staff_headers).get_json()['submissions'][0]
    assert row['stdin'] == 'SECRET_IN'
    assert row['expected_output'] == 'SECRET_OUT'

    register(client, 'S2', 'b@x.com')
    other = bearer(login(client, 'b@x.com'))
    resp = client.get(url, headers=other)
    assert resp.status_code == 403
    assert resp.get_json()['message'] == 'Access denied'


def test_ad_hoc_run_shows_output_but_not_input(client, student):
    tokens = client.post('/api/submission/', json={
        'language_id': 71, 'source_code': 'print(input())', 'test_case': [{'input': '7', 'output': '7'}],
    }, headers=student['headers']).get_json()['tokens']

    row = client.get('/api/submission/?tokens=' + tokens[0], headers=student['headers']).get_json()['submissions'][0]
    assert row['stdout'] == '7'
    assert 'stdin' not in row
    assert 'source_code' not in row
    assert 'expected_output' not in row


def schedule_with_question(client, headers, classroom_id, minutes_from_now, title):
    test_id = client.post('/api/test/create', json={'title': title, 'duration_in_minutes': 30},
                          headers=headers).get_json()['testId']
    qid = add_code_question(client, headers, test_id)
    start = (datetime.utcnow() + timedelta(minutes=minutes_from_now)).isoformat()
    ct_id = client.post('/api/test/schedule', json={
        'classroom_id': classroom_id, 'test_id': test_id, 'scheduled_at': start,
    }, headers=headers).get_json()['classroomTestId']
    return qid, ct_id


def test_students_submit_only_while_the_test_is_open(client, staff_headers, student, classroom_test,
                                                     judge_session):
    cid = classroom_test['classroom_id']
    early_qid, early = schedule_with_question(client, staff_headers, cid, 60, 'Final')
    late_qid, late = schedule_with_question(client, staff_headers, cid, -90, 'Quiz 0')
    posts_before = len(judge_session.posts)

    resp = submit(client, student['headers'], early_qid, early)
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'Test is not open'
    assert submit(client, student['headers'], late_qid, late).status_code == 403
    assert len(judge_session.posts) == posts_before

    # finalizing is refused before the start but still accepted after the end
    assert client.post(f'/api/submission/submit/{early}', json={}, headers=student['headers']).status_code == 403
    assert client.post(f'/api/submission/submit/{late}', json={}, headers=student['headers']).status_code == 200
