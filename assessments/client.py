"""
Thin HTTP client for the student test endpoints, used by scripts and
non-browser front ends to drive a ``TimedAttempt`` against the API.
"""
import logging
import time

import requests

from .attempt import TimedAttempt

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code, message, payload=None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}


class ResultRedirect(Exception):
    """The test cannot be taken again; show the result page instead."""

    def __init__(self, url):
        super().__init__(url)
        self.url = url


class SchoolHubClient:
    def __init__(self, base_url, access_token=None, session=None, timeout=20):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        if access_token:
            self.set_token(access_token)

    def set_token(self, access_token):
        self.session.headers['Authorization'] = f"Bearer {access_token}"

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        kwargs.setdefault('timeout', self.timeout)
        resp = self.session.request(method, url, **kwargs)
        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}

        if not resp.ok:
            message = data.get('error') or data.get('detail') or resp.reason
            if data.get('redirect'):
                raise ResultRedirect(data['redirect'])
            logger.warning("%s %s failed with %s: %s", method, path, resp.status_code, message)
            raise ApiError(resp.status_code, message, data)
        return data

    # --- Auth ---

    def login(self, email, password):
        data = self._request('POST', '/api/auth/login/', json={'email': email, 'password': password})
        self.set_token(data['access'])
        return data

    # --- Tests ---

    def list_tests(self, status='all'):
        return self._request('GET', '/api/students/tests/', params={'status': status})['data']

    def get_test(self, test_id):
        return self._request('GET', f'/api/students/tests/{test_id}/')['data']['test']

    def start_test(self, test_id):
        return self._request('POST', f'/api/students/tests/{test_id}/start/')['data']['attempt']

    def submit_test(self, payload):
        return self._request('POST', '/api/students/tests/submit/', json=payload)['submission']

    def get_result(self, test_id):
        return self._request('GET', f'/api/students/tests/result/{test_id}/')['data']

    def open_attempt(self, test_id, clock=time.time):
        """
        Load a test and start (or resume) an attempt on it.
        Raises ``ResultRedirect`` when the test was already taken and retakes are off.
        """
        test = self.get_test(test_id)
        config = test.get('testConfig') or {}
        if not config.get('allowRetake') and test.get('mySubmission'):
            raise ResultRedirect(test.get('resultUrl') or f"/protected/students/tests/result/{test_id}")

        server_attempt = self.start_test(test_id)
        test['testConfig'] = dict(config, questions=server_attempt['questions'])
        attempt = TimedAttempt(test, submit=self.submit_test, clock=clock)
        return attempt.start(remaining=server_attempt['timeRemainingSeconds'])
