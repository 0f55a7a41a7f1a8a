import pytest

from cores.models import School

from .conftest import make_user

pytestmark = pytest.mark.django_db

STUDENT_FORBIDDEN = [
    ('get', '/api/teacher/tests/'),
    ('get', '/api/teacher/grading/pending/'),
    ('get', '/api/admin/users/'),
    ('get', '/api/admin/stats/'),
    ('get', '/api/headadmin/schools/'),
    ('get', '/api/headadmin/invoices/'),
]


@pytest.mark.parametrize('method, url', STUDENT_FORBIDDEN + [('get', '/api/students/tests/')])
def test_anonymous_callers_get_401(api_client, method, url):
    response = getattr(api_client, method)(url)
    assert response.status_code == 401
    assert response.json()['success'] is False


@pytest.mark.parametrize('method, url', STUDENT_FORBIDDEN)
def test_students_cannot_reach_staff_endpoints(client_for, student, method, url):
    response = getattr(client_for(student), method)(url)
    assert response.status_code == 403
    assert response.json() == {'success': False, 'error': 'Access denied'}


def test_teachers_cannot_take_tests(client_for, teacher, objective_test):
    response = client_for(teacher).post(f'/api/students/tests/{objective_test.pk}/start/')
    assert response.status_code == 403


def test_school_admin_cannot_manage_schools(client_for, admin_user):
    assert client_for(admin_user).get('/api/headadmin/schools/').status_code == 403


def test_suspended_school_is_locked_out(client_for, school, student):
    school.status = School.Status.SUSPENDED
    school.save()
    response = client_for(student).get('/api/students/tests/')
    assert response.status_code == 403
    assert response.json()['error'] == 'Your school account is not active'


def test_tests_of_other_schools_are_invisible(client_for, other_school, objective_test):
    outsider = make_user('student@hilltop.test', 'student', other_school)
    response = client_for(outsider).get(f'/api/students/tests/{objective_test.pk}/')
    assert response.status_code == 404


def test_login_returns_tokens_and_user(api_client, student):
    response = api_client.post('/api/auth/login/', {'email': student.email, 'password': 'Str0ng-pass!'},
                               format='json')
    assert response.status_code == 200
    body = response.json()
    assert body['access']
    assert body['user']['role'] == 'student'
    assert body['user']['student_profile']['class_name'] == 'JSS1A'


def test_login_blocked_for_suspended_school(api_client, school, student):
    school.status = School.Status.SUSPENDED
    school.save()
    response = api_client.post('/api/auth/login/', {'email': student.email, 'password': 'Str0ng-pass!'},
                               format='json')
    assert response.status_code == 400


def test_headadmin_bootstrap_only_once(api_client, headadmin):
    response = api_client.post('/api/auth/create-headadmin/', {
        'email': 'second@schoolhub.test', 'first_name': 'B', 'last_name': 'C', 'password': 'An0ther-pass!',
    }, format='json')
    assert response.status_code == 403
