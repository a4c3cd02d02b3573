import base64
from datetime import datetime, timedelta
import pytest
from app import create_app
from judge import JudgeClient, JudgeSettings
from models import db

ADMIN_EMAIL = 'admin@x.com'
ADMIN_PASSWORD = 'adminpw'


def encode(text):
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data

    def json(self):
        return self._data


class FakeJudgeSession:
    """Stands in for requests.Session; answers the two batch endpoints.

    Every queued run is remembered with its decoded stdin. ``statuses`` maps a
    stdin value to the status reported for it, ``token_statuses`` does the same
    per token and wins over it; anything else gets ``default_status``.
    """

    def __init__(self):
        self.calls = []
        self.runs = {}
        self.statuses = {}
        self.token_statuses = {}
        self.default_status = 'Accepted'
        self.fail_with = None
        self._next = 0

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({'method': method, 'url': url, 'params': params, 'json': json, 'headers': headers})
        if self.fail_with:
            return FakeResponse(self.fail_with, {'error': 'boom'})
        if method == 'POST':
            out = []
            for item in json['submissions']:
                self._next += 1
                token = f'tok-{self._next}'
                self.runs[token] = {
                    'stdin': base64.b64decode(item['stdin']).decode('utf-8'),
                    'expected_output': base64.b64decode(item['expected_output']).decode('utf-8'),
                    'source_code': base64.b64decode(item['source_code']).decode('utf-8'),
                    'language_id': item['language_id'],
                }
                out.append({'token': token})
            return FakeResponse(201, out)

        tokens = params['tokens'].split(',')
        fields = params['fields'].split(',')
        subs = []
        for token in tokens:
            run = self.runs.get(token, {'stdin': '', 'expected_output': '', 'source_code': '', 'language_id': 71})
            status = self.token_statuses.get(token) or self.statuses.get(run['stdin'], self.default_status)
            full = {
                'token': token,
                'status': {'id': 3 if status == 'Accepted' else 4, 'description': status},
                'time': '0.01',
                'memory': 1024,
                'language_id': run['language_id'],
                'stdout': encode(run['expected_output']),
                'stdin': encode(run['stdin']),
                'expected_output': encode(run['expected_output']),
                'source_code': encode(run['source_code']),
            }
            subs.append({k: v for k, v in full.items() if k in fields})
        return FakeResponse(200, {'submissions': subs})

    @property
    def posts(self):
        return [c for c in self.calls if c['method'] == 'POST']

    @property
    def gets(self):
        return [c for c in self.calls if c['method'] == 'GET']


@pytest.fixture
def judge_session():
    return FakeJudgeSession()


@pytest.fixture
def app(judge_session):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SECRET_KEY': 'test-secret',
        'ADMIN_EMAIL': ADMIN_EMAIL,
        'ADMIN_PASSWORD': ADMIN_PASSWORD,
        'ADMIN_ROLL_NO': 'A0',
    })
    app.extensions['judge'] = JudgeClient(JudgeSettings.from_config(app.config), session=judge_session)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, roll_no, email, password='pw', role='student', user_name=None, headers=None):
    resp = client.post('/api/auth/register', json={
        'roll_no': roll_no, 'email': email, 'password': password, 'role': role,
        'user_name': user_name or roll_no,
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['userId']


def login(client, email, password='pw'):
    resp = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()['token']


def bearer(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client):
    return bearer(login(client, ADMIN_EMAIL, ADMIN_PASSWORD))


@pytest.fixture
def staff_headers(client):
    register(client, 'T1', 'staff@x.com', role='staff', user_name='Staff One')
    return bearer(login(client, 'staff@x.com'))


@pytest.fixture
def student(client):
    user_id = register(client, 'S1', 'a@x.com')
    return {'id': user_id, 'headers': bearer(login(client, 'a@x.com'))}


@pytest.fixture
def classroom_test(client, staff_headers, student):
    """A classroom with the student enrolled and a test scheduled one minute ago."""
    classroom_id = client.post('/api/classroom/create', json={'name': 'CS101'},
                               headers=staff_headers).get_json()['classroomId']
    resp = client.post(f'/api/classroom/{classroom_id}/students', json={'studentEmails': ['a@x.com']},
                       headers=staff_headers)
    assert resp.status_code == 201
    test_id = client.post('/api/test/create', json={'title': 'Midterm', 'duration_in_minutes': 60},
                          headers=staff_headers).get_json()['testId']
    start = (datetime.utcnow() - timedelta(minutes=1)).isoformat()
    resp = client.post('/api/test/schedule', json={
        'classroom_id': classroom_id, 'test_id': test_id, 'scheduled_at': start,
    }, headers=staff_headers)
    assert resp.status_code == 201, resp.get_json()
    return {'classroom_id': classroom_id, 'test_id': test_id, 'id': resp.get_json()['classroomTestId']}


def add_code_question(client, headers, test_id, marks=10, cases=None):
    cases = cases if cases is not None else [{'input': '1 2', 'output': '3'}, {'input': '2 2', 'output': '4'}]
    resp = client.post('/api/question/add-code', json={
        'test_id': test_id,
        'question': 'Add two numbers',
        'question_title': 'Sum',
        'marks': marks,
        'allowed_languages': [71],
        'public_test_case': [{'input': '0 0', 'output': '0'}],
        'private_test_case': cases,
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['question_id']
