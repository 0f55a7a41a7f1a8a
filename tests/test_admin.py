from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from cores.models import AuditLog, Notification, School, SchoolClass
from exams.models import OnlineTest, Question
from users.models import StudentProfile

from .conftest import make_user

pytestmark = pytest.mark.django_db

User = get_user_model()


def csv_file(text, name='upload.csv'):
    return SimpleUploadedFile(name, text.encode('utf-8'), content_type='text/csv')


# --- users ---

def test_admin_creates_student_with_profile(client_for, admin_user, school):
    response = client_for(admin_user).post('/api/admin/users/', {
        'email': 'new.student@greenfield.test', 'first_name': 'Ngozi', 'last_name': 'Eze',
        'password': 'Fresh-pass-42', 'role': 'student', 'class_name': 'JSS2B', 'admission_number': 'GF/017',
    }, format='json')

    assert response.status_code == 201
    user = User.objects.get(email='new.student@greenfield.test')
    assert user.school == school
    assert user.student_profile.school_class.name == 'JSS2B'
    assert AuditLog.objects.filter(action='CREATE', school=school).exists()


def test_admin_cannot_create_headadmin(client_for, admin_user):
    response = client_for(admin_user).post('/api/admin/users/', {
        'email': 'boss@greenfield.test', 'first_name': 'B', 'last_name': 'O',
        'password': 'Fresh-pass-42', 'role': 'headadmin',
    }, format='json')
    assert response.status_code == 400
    assert response.json()['success'] is False


def test_user_list_is_school_scoped(client_for, admin_user, teacher, other_school):
    make_user('teacher@hilltop.test', 'teacher', other_school)
    rows = client_for(admin_user).get('/api/admin/users/', {'role': 'teacher'}).json()
    assert [row['email'] for row in rows] == [teacher.email]


def test_toggle_status(client_for, admin_user, teacher):
    client = client_for(admin_user)
    response = client.post(f'/api/admin/users/{teacher.pk}/toggle-status/')
    assert response.json() == {'success': True, 'is_active': False}

    own = client.post(f'/api/admin/users/{admin_user.pk}/toggle-status/')
    assert own.status_code == 400


def test_student_csv_import(client_for, admin_user, school, student):
    upload = csv_file(
        "first_name,last_name,email,class_name,admission_number,password\n"
        "Amaka,Okafor,Amaka@Greenfield.test,JSS1A,GF/101,\n"
        "Bayo,Ade,student@greenfield.test,JSS1A,GF/102,\n"
        ",Musa,musa@greenfield.test,JSS1A,,\n"
    )
    response = client_for(admin_user).post('/api/admin/users/import/', {'file': upload}, format='multipart')

    assert response.status_code == 201
    body = response.json()
    assert body['created'] == 1
    assert [error['row'] for error in body['errors']] == [3, 4]
    profile = StudentProfile.objects.get(user__email='amaka@greenfield.test')
    assert profile.school_class.name == 'JSS1A'
    assert profile.admission_number == 'GF/101'
    assert AuditLog.objects.filter(action='IMPORT', school=school).exists()


def test_student_import_respects_capacity(client_for, admin_user, school, student):
    school.max_students = 2
    school.save()
    upload = csv_file(
        "first_name,last_name,email\n"
        "A,One,one@greenfield.test\n"
        "B,Two,two@greenfield.test\n"
    )
    body = client_for(admin_user).post('/api/admin/users/import/', {'file': upload}, format='multipart').json()
    assert body['created'] == 1
    assert body['errors'][0]['error'] == 'Student limit reached for this school'


def test_student_import_needs_columns(client_for, admin_user):
    upload = csv_file("name,email\nA,a@greenfield.test\n")
    response = client_for(admin_user).post('/api/admin/users/import/', {'file': upload}, format='multipart')
    assert response.status_code == 400
    assert 'Missing columns' in response.json()['error']


# --- classes & stats ---

def test_class_crud(client_for, admin_user, teacher, school_class, student):
    client = client_for(admin_user)
    created = client.post('/api/admin/classes/', {'name': 'SS1 Science'}, format='json')
    assert created.status_code == 201

    duplicate = client.post('/api/admin/classes/', {'name': 'jss1a'}, format='json')
    assert duplicate.status_code == 400

    client.force_authenticate(user=teacher)
    rows = client.get('/api/admin/classes/').json()
    assert {row['name']: row['student_count'] for row in rows} == {'JSS1A': 1, 'SS1 Science': 0}
    assert client.delete(f"/api/admin/classes/{created.json()['id']}/").status_code == 403


def test_admin_stats(client_for, admin_user, student, teacher, objective_test):
    data = client_for(admin_user).get('/api/admin/stats/').json()['data']
    assert data['users'] == {'students': 1, 'teachers': 1, 'total': 3}
    assert data['tests']['published'] == 1
    assert data['submissions']['pendingGrading'] == 0


def test_audit_log_filter(client_for, admin_user, teacher):
    client = client_for(admin_user)
    client.post(f'/api/admin/users/{teacher.pk}/toggle-status/')
    rows = client.get('/api/admin/audit-logs/', {'action': 'UPDATE'}).json()
    assert len(rows) == 1
    assert rows[0]['actor_email'] == admin_user.email


# --- head admin: schools ---

def test_extend_trial_and_toggle_school(client_for, headadmin, school):
    client = client_for(headadmin)
    before = timezone.now()

    extended = client.post(f'/api/headadmin/schools/{school.pk}/extend-trial/', {'days': 14}, format='json')
    assert extended.json()['status'] == 'trial'
    school.refresh_from_db()
    assert school.trial_ends_at >= before + timedelta(days=14)

    assert client.post(f'/api/headadmin/schools/{school.pk}/extend-trial/', {'days': 0},
                       format='json').status_code == 400
    assert client.post(f'/api/headadmin/schools/{school.pk}/toggle-status/').json()['status'] == 'suspended'
    assert client.post(f'/api/headadmin/schools/{school.pk}/toggle-status/').json()['status'] == 'active'


def test_school_user_count(client_for, headadmin, school, student, teacher, admin_user):
    data = client_for(headadmin).get(f'/api/headadmin/schools/{school.pk}/user-count/').json()['data']
    assert data['students'] == 1
    assert data['teachers'] == 1
    assert data['staff'] == 1
    assert data['total'] == 3


def test_headadmin_creates_school(client_for, headadmin):
    response = client_for(headadmin).post('/api/headadmin/schools/', {
        'name': 'Riverside', 'code': 'riverside', 'email': 'office@riverside.test',
    }, format='json')
    assert response.status_code == 201
    assert School.objects.get(code='riverside').status == School.Status.TRIAL


# --- teacher: tests & questions ---

def test_teacher_creates_test_with_inline_questions(client_for, teacher, subject, school_class):
    now = timezone.now()
    response = client_for(teacher).post('/api/teacher/tests/', {
        'title': 'Fractions', 'subject': subject.pk, 'classes': ['JSS1A'],
        'available_from': now.isoformat(), 'due_date': (now + timedelta(days=2)).isoformat(),
        'duration_minutes': 20, 'max_score': 3, 'passing_score': 2,
        'questions': [
            {'type': 'objective', 'question': '1/2 + 1/2 = ?', 'options': ['1', '2'], 'correctAnswer': 0},
            {'type': 'theory', 'question': 'Define a fraction.', 'marks': 2},
        ],
    }, format='json')

    assert response.status_code == 201
    test = OnlineTest.objects.get(title='Fractions')
    assert response.json()['classes'] == ['JSS1A']
    assert test.status == OnlineTest.Status.DRAFT
    assert test.questions.count() == 2
    assert test.questions.get(question_type='objective').options.get(is_correct=True).text == '1'


def test_teacher_test_list_and_detail_render_class_names(client_for, teacher, objective_test):
    client = client_for(teacher)

    rows = client.get('/api/teacher/tests/').json()
    assert [(row['id'], row['classes']) for row in rows] == [(objective_test.pk, ['JSS1A'])]

    detail = client.get(f'/api/teacher/tests/{objective_test.pk}/').json()
    assert detail['classes'] == ['JSS1A']
    assert len(detail['question_list']) == 2


def test_admin_subjects_render_class_names(client_for, admin_user, subject):
    client = client_for(admin_user)
    rows = client.get('/api/admin/subjects/').json()
    assert rows[0]['classes'] == ['JSS1A']

    created = client.post('/api/admin/subjects/', {'name': 'Physics', 'code': 'PHY', 'classes': ['SS1A']},
                          format='json')
    assert created.status_code == 201
    assert created.json()['classes'] == ['SS1A']


def test_publish_notifies_class(client_for, teacher, student, make_test):
    draft = make_test(status=OnlineTest.Status.DRAFT)
    client = client_for(teacher)
    assert client.post(f'/api/teacher/tests/{draft.pk}/publish/').status_code == 400

    Question.objects.create(school=draft.school, test=draft, subject=draft.subject, text='Why?',
                            question_type=Question.QuestionType.THEORY, marks=2)
    response = client.post(f'/api/teacher/tests/{draft.pk}/publish/')

    assert response.json() == {'success': True, 'status': 'published', 'notified': 1}
    assert Notification.objects.filter(user=student, title__startswith='New quiz').exists()


def test_teacher_sees_only_own_tests(client_for, school, objective_test):
    other = make_user('second@greenfield.test', 'teacher', school)
    assert client_for(other).get('/api/teacher/tests/').json() == []


def test_question_bulk_upload(client_for, teacher, objective_test):
    upload = csv_file(
        "question_text,question_type,difficulty,marks,options,correct_answer\n"
        "Capital of Nigeria?,objective,easy,1,Lagos|Abuja|Kano,Abuja\n"
        "Describe photosynthesis.,theory,hard,5,,\n"
    )
    response = client_for(teacher).post('/api/teacher/questions/bulk-upload/', {
        'file': upload, 'test_id': objective_test.pk,
    }, format='multipart')

    assert response.status_code == 201
    question = objective_test.questions.get(text='Capital of Nigeria?')
    assert question.options.get(is_correct=True).position == 1
    assert objective_test.questions.count() == 4


def test_question_bulk_upload_rolls_back_bad_rows(client_for, teacher):
    upload = csv_file(
        "question_text,question_type,options,correct_answer\n"
        "Good one?,objective,Yes|No,0\n"
        "Bad one?,objective,Yes|No,Maybe\n"
    )
    response = client_for(teacher).post('/api/teacher/questions/bulk-upload/', {'file': upload},
                                        format='multipart')
    assert response.status_code == 400
    assert 'Row 3' in response.json()['error']
    assert not Question.objects.exists()


# --- notifications ---

def test_notifications_read_and_read_all(client_for, student):
    first = Notification.send(student, 'One', 'First')
    Notification.send(student, 'Two', 'Second')
    client = client_for(student)

    assert client.get('/api/notifications/').json()['unread'] == 2
    client.post(f'/api/notifications/{first.pk}/read/')
    assert client.get('/api/notifications/', {'unread': 'true'}).json()['unread'] == 1
    assert client.post('/api/notifications/read-all/').json()['updated'] == 1
