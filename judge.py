"""Client for a Judge0 compatible code-execution service.

Source code and IO travel base64 encoded in both directions. The service
accepts and returns at most 20 submissions per batch call, so longer token
lists are split into sequential calls and the results stitched back together
in input order.
"""
import base64
from dataclasses import dataclass, field
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

BATCH_SIZE = 20
DEFAULT_FIELDS = ('token,source_code,language_id,stdin,expected_output,stdout,stderr,'
                  'compile_output,time,memory,status')
RESULT_FIELDS = 'token,time,memory,status'
# what a student may see of an ungraded run: never stdin, expected output or source
RUN_FIELDS = 'token,stdout,stderr,compile_output,time,memory,status'
BASE64_FIELDS = ('source_code', 'stdin', 'expected_output', 'stdout', 'stderr', 'compile_output')
PENDING_STATUSES = ('In Queue', 'Processing')
ACCEPTED = 'Accepted'


class JudgeError(Exception):
    """Base class for judge failures."""


class MissingTokensError(JudgeError, ValueError):
    """Raised before any request when there is nothing to fetch."""


class JudgeRequestError(JudgeError):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class JudgePendingError(JudgeError):
    """Some results are still queued or running on the judge."""


def b64encode(text):
    return base64.b64encode((text or '').encode('utf-8')).decode('ascii')


def b64decode(value):
    if value is None:
        return None
    try:
        raw = base64.b64decode(value)
    except ValueError as exc:
        raise JudgeRequestError(f'Judge returned invalid base64: {exc}') from exc
    return raw.decode('utf-8', errors='replace')


def chunks(items, size=BATCH_SIZE):
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass(frozen=True)
class JudgeSettings:
    base_url: str
    api_key: str = ''
    api_host: str = ''
    auth_user: str = ''
    auth_token: str = ''
    timeout: float = 10
    max_retries: int = 3
    backoff_factor: float = 0.5

    @classmethod
    def from_config(cls, config):
        return cls(
            base_url=config['JUDGE_BASE_URL'],
            api_key=config.get('JUDGE_API_KEY', ''),
            api_host=config.get('JUDGE_API_HOST', ''),
            auth_user=config.get('JUDGE_AUTH_USER', ''),
            auth_token=config.get('JUDGE_AUTH_TOKEN', ''),
            timeout=config.get('JUDGE_TIMEOUT', 10),
            max_retries=config.get('JUDGE_MAX_RETRIES', 3),
            backoff_factor=config.get('JUDGE_BACKOFF_FACTOR', 0.5),
        )

    def headers(self):
        # a new dict per call; nothing is ever set on the shared session
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['X-RapidAPI-Key'] = self.api_key
        if self.api_host:
            headers['X-RapidAPI-Host'] = self.api_host
        if self.auth_user:
            headers['X-Auth-User'] = self.auth_user
        if self.auth_token:
            headers['X-Auth-Token'] = self.auth_token
        return headers

    def url(self, path):
        return self.base_url.rstrip('/') + '/' + path.lstrip('/')


@dataclass(frozen=True)
class JudgeResult:
    token: str
    status: str = None
    time: float = None
    memory: int = None
    stdout: str = None
    stderr: str = None
    compile_output: str = None
    payload: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, raw, token):
        raw = dict(raw or {})
        for key in BASE64_FIELDS:
            if key in raw:
                raw[key] = b64decode(raw[key])
        raw['token'] = raw.get('token') or token
        status = raw.get('status')
        if isinstance(status, dict):
            status = status.get('description')
        return cls(
            token=raw['token'],
            status=status,
            time=float(raw['time']) if raw.get('time') is not None else None,
            memory=int(raw['memory']) if raw.get('memory') is not None else None,
            stdout=raw.get('stdout'),
            stderr=raw.get('stderr'),
            compile_output=raw.get('compile_output'),
            payload=raw,
        )

    @property
    def accepted(self):
        return self.status == ACCEPTED

    @property
    def pending(self):
        return self.status in PENDING_STATUSES

    def to_dict(self, fields=None):
        if fields is None:
            return dict(self.payload)
        keep = fields.split(',')
        return {k: v for k, v in self.payload.items() if k in keep}


class JudgeClient:
    def __init__(self, settings, session=None):
        self.settings = settings
        self.session = session if session is not None else self._build_session(settings)

    @staticmethod
    def _build_session(settings):
        # Connection errors are retried for every method; status based retries
        # only for GET since a repeated batch POST would queue duplicate runs.
        retry = Retry(
            total=settings.max_retries,
            backoff_factor=settings.backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(['GET']),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session = requests.Session()
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        return session

    def _request(self, method, path, params=None, body=None):
        try:
            resp = self.session.request(
                method,
                self.settings.url(path),
                params=params,
                json=body,
                headers=self.settings.headers(),
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            raise JudgeRequestError(f'{method} {path} failed: {exc}') from exc
        if not 200 <= resp.status_code < 300:
            raise JudgeRequestError(f'{method} {path} returned {resp.status_code}', resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise JudgeRequestError(f'{method} {path} returned invalid JSON') from exc

    def submit_batch(self, items):
        """Queue one run per item and return the tokens in item order.

        Each item is a dict with language_id, source_code, stdin and
        expected_output as plain text.
        """
        if not items:
            raise JudgeError('Nothing to submit')
        tokens = []
        for chunk in chunks(list(items)):
            body = {'submissions': [{
                'language_id': item['language_id'],
                'source_code': b64encode(item['source_code']),
                'stdin': b64encode(item.get('stdin')),
                'expected_output': b64encode(item.get('expected_output')),
            } for item in chunk]}
            data = self._request('POST', 'submissions/batch', params={'base64_encoded': 'true'}, body=body)
            if not isinstance(data, list):
                raise JudgeRequestError('Unexpected batch response from judge')
            got = [(entry or {}).get('token') for entry in data]
            if len(got) != len(chunk) or not all(got):
                raise JudgeError(f'Judge rejected part of the batch: {data}')
            tokens.extend(got)
        return tokens

    def fetch_batch(self, tokens, fields=DEFAULT_FIELDS):
        """Fetch results for tokens, in the same order as given."""
        if isinstance(tokens, str):
            tokens = tokens.split(',')
        tokens = [t.strip() for t in (tokens or []) if t and t.strip()]
        if not tokens:
            raise MissingTokensError('Token not found')
        results = []
        for chunk in chunks(tokens):
            params = {'tokens': ','.join(chunk), 'fields': fields, 'base64_encoded': 'true'}
            data = self._request('GET', 'submissions/batch', params=params)
            submissions = (data or {}).get('submissions') or []
            if len(submissions) != len(chunk):
                raise JudgeRequestError(f'Expected {len(chunk)} results, judge returned {len(submissions)}')
            for token, raw in zip(chunk, submissions):
                results.append(JudgeResult.from_payload(raw, token))
        return results
