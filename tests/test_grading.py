import pytest

from assessments.models import TestSubmission as Submission, Grade
from cores.models import Notification

from .conftest import make_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def pending_submission(client_for, student, mixed_test):
    client = client_for(student)
    client.post(f'/api/students/tests/{mixed_test.pk}/start/')
    objective = mixed_test.questions.get(question_type='objective')
    theory = mixed_test.questions.get(question_type='theory')
    client.post('/api/students/tests/submit/', {
        'testId': mixed_test.pk,
        'answers': {str(objective.pk): 1, str(theory.pk): 'a(b + c) = ab + ac'},
    }, format='json')
    client.force_authenticate(user=None)
    return Submission.objects.get(test=mixed_test, student=student)


def test_pending_list_shows_theory_answers(client_for, teacher, pending_submission):
    response = client_for(teacher).get('/api/teacher/grading/pending/')

    assert response.status_code == 200
    rows = response.json()
    assert [row['id'] for row in rows] == [pending_submission.pk]
    assert rows[0]['theory_answers'][0]['text_answer'] == 'a(b + c) = ab + ac'


def test_grading_theory_finalises_submission(client_for, teacher, student, mixed_test, pending_submission):
    theory = mixed_test.questions.get(question_type='theory')
    response = client_for(teacher).post(f'/api/teacher/grading/{pending_submission.pk}/', {
        'theoryGrades': {str(theory.pk): 4},
        'feedback': {str(theory.pk): 'Good', 'general': 'Well done'},
    }, format='json')

    assert response.status_code == 200
    body = response.json()['submission']
    assert body['finalScore'] == 6
    assert body['grade'] == 'B'

    pending_submission.refresh_from_db()
    assert pending_submission.status == Submission.Status.GRADED
    assert pending_submission.feedback == 'Well done'
    assert pending_submission.graded_by == teacher
    assert float(Grade.objects.get(submission=pending_submission).percentage) == pytest.approx(85.71, abs=0.01)
    assert Notification.objects.filter(user=student, title='Test Graded').exists()


def test_marks_above_question_marks_are_rejected(client_for, teacher, mixed_test, pending_submission):
    theory = mixed_test.questions.get(question_type='theory')
    response = client_for(teacher).post(f'/api/teacher/grading/{pending_submission.pk}/', {
        'theoryGrades': {str(theory.pk): 9},
    }, format='json')

    assert response.status_code == 400
    pending_submission.refresh_from_db()
    assert pending_submission.status == Submission.Status.SUBMITTED


def test_missing_theory_grade_is_rejected(client_for, teacher, pending_submission):
    response = client_for(teacher).post(f'/api/teacher/grading/{pending_submission.pk}/', {
        'theoryGrades': {},
    }, format='json')
    assert response.status_code == 400
    assert 'Missing grades' in response.json()['error']


def test_graded_submission_cannot_be_graded_again(client_for, teacher, mixed_test, pending_submission):
    theory = mixed_test.questions.get(question_type='theory')
    client = client_for(teacher)
    url = f'/api/teacher/grading/{pending_submission.pk}/'
    client.post(url, {'theoryGrades': {str(theory.pk): 3}}, format='json')

    response = client.post(url, {'theoryGrades': {str(theory.pk): 5}}, format='json')
    assert response.status_code == 400


def test_other_teacher_cannot_grade(client_for, school, mixed_test, pending_submission):
    outsider = make_user('other@greenfield.test', 'teacher', school)
    theory = mixed_test.questions.get(question_type='theory')
    response = client_for(outsider).post(f'/api/teacher/grading/{pending_submission.pk}/', {
        'theoryGrades': {str(theory.pk): 3},
    }, format='json')
    assert response.status_code == 404


def test_school_admin_can_grade(client_for, admin_user, mixed_test, pending_submission):
    theory = mixed_test.questions.get(question_type='theory')
    response = client_for(admin_user).post(f'/api/teacher/grading/{pending_submission.pk}/', {
        'theoryGrades': {str(theory.pk): 5},
    }, format='json')
    assert response.status_code == 200
    assert response.json()['submission']['grade'] == 'A'


def test_result_visible_after_grading(client_for, teacher, student, mixed_test, pending_submission):
    theory = mixed_test.questions.get(question_type='theory')
    client = client_for(teacher)
    client.post(f'/api/teacher/grading/{pending_submission.pk}/', {
        'theoryGrades': {str(theory.pk): 2},
        'feedback': {str(theory.pk): 'Incomplete'},
    }, format='json')

    client.force_authenticate(user=student)
    data = client.get(f'/api/students/tests/result/{mixed_test.pk}/').json()['data']
    assert data['submission']['score'] == 4
    assert data['passed'] is True
    feedback = [d['teacherFeedback'] for d in data['details'] if d['type'] == 'theory']
    assert feedback == ['Incomplete']
