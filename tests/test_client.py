import json
from unittest import mock

import pytest
import requests

from assessments.attempt import AttemptState
from assessments.client import SchoolHubClient, ApiError, ResultRedirect


def fake_response(status_code, payload):
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = json.dumps(payload).encode()
    resp.reason = 'Error' if status_code >= 400 else 'OK'
    return resp


def definition(allow_retake=False, submitted=False):
    return {
        'id': 5,
        'testConfig': {'duration': 10, 'allowRetake': allow_retake},
        'mySubmission': {'id': 9} if submitted else None,
        'resultUrl': '/protected/students/tests/result/5' if submitted else None,
    }


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session, headers={})


def test_token_is_sent_as_bearer(session):
    SchoolHubClient('http://api.local/', access_token='abc', session=session)
    assert session.headers['Authorization'] == 'Bearer abc'


def test_error_response_raises_api_error(session):
    session.request.return_value = fake_response(403, {'success': False, 'error': 'Access denied'})
    client = SchoolHubClient('http://api.local', session=session)
    with pytest.raises(ApiError) as exc:
        client.list_tests()
    assert exc.value.status_code == 403
    assert exc.value.message == 'Access denied'


def test_open_attempt_redirects_when_retake_not_allowed(session):
    session.request.return_value = fake_response(200, {'success': True, 'data': {'test': definition(submitted=True)}})
    client = SchoolHubClient('http://api.local', session=session)

    with pytest.raises(ResultRedirect) as exc:
        client.open_attempt(5)
    assert exc.value.url == '/protected/students/tests/result/5'
    # Never tried to start
    assert session.request.call_count == 1


def test_server_conflict_with_redirect_becomes_result_redirect(session):
    session.request.side_effect = [
        fake_response(200, {'success': True, 'data': {'test': definition()}}),
        fake_response(409, {'success': False, 'error': 'Already taken', 'redirect': '/protected/students/tests/result/5'}),
    ]
    client = SchoolHubClient('http://api.local', session=session)
    with pytest.raises(ResultRedirect):
        client.open_attempt(5)


def test_open_attempt_starts_with_server_clock(session):
    questions = [{'id': 1, 'type': 'objective', 'options': [{'index': 0, 'text': 'x'}]}]
    session.request.side_effect = [
        fake_response(200, {'success': True, 'data': {'test': definition(allow_retake=True, submitted=True)}}),
        fake_response(200, {'success': True, 'data': {'attempt': {'id': 3, 'questions': questions,
                                                                   'timeRemainingSeconds': 420}}}),
        fake_response(200, {'success': True, 'submission': {'id': 3, 'status': 'graded'}}),
    ]
    client = SchoolHubClient('http://api.local', session=session)

    attempt = client.open_attempt(5)
    assert attempt.state == AttemptState.IN_PROGRESS
    assert attempt.remaining == 420
    assert attempt.questions == questions

    attempt.answer(1, 0)
    result = attempt.submit()
    assert result == {'id': 3, 'status': 'graded'}

    method, url = session.request.call_args.args
    assert (method, url) == ('POST', 'http://api.local/api/students/tests/submit/')
    assert session.request.call_args.kwargs['json']['answers'] == {'1': 0}
    assert session.request.call_args.kwargs['timeout'] == 20


def test_get_result_unwraps_data(session):
    session.request.return_value = fake_response(200, {'success': True, 'data': {'passed': True}})
    client = SchoolHubClient('http://api.local', session=session)
    assert client.get_result(5) == {'passed': True}
    assert session.request.call_args.args == ('GET', 'http://api.local/api/students/tests/result/5/')
