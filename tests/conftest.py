from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from cores.models import School, SchoolClass
from exams.models import OnlineTest, Question, Option, Subject
from users.models import StudentProfile

User = get_user_model()


def make_user(email, role, school=None, **extra):
    return User.objects.create_user(
        username=email,
        email=email,
        password='Str0ng-pass!',
        first_name=extra.pop('first_name', role.title()),
        last_name=extra.pop('last_name', 'User'),
        role=role,
        school=school,
        **extra,
    )


def add_objective(test, text, options, correct, marks=1):
    question = Question.objects.create(school=test.school, test=test, subject=test.subject, text=text,
                                       question_type=Question.QuestionType.OBJECTIVE, marks=marks)
    for position, option in enumerate(options):
        Option.objects.create(question=question, text=option, position=position, is_correct=position == correct)
    return question


def add_theory(test, text, marks=5):
    return Question.objects.create(school=test.school, test=test, subject=test.subject, text=text,
                                   question_type=Question.QuestionType.THEORY, marks=marks)


@pytest.fixture
def school(db):
    return School.objects.create(name='Greenfield Academy', code='greenfield', status=School.Status.ACTIVE)


@pytest.fixture
def other_school(db):
    return School.objects.create(name='Hilltop College', code='hilltop', status=School.Status.ACTIVE)


@pytest.fixture
def school_class(school):
    return SchoolClass.objects.create(school=school, name='JSS1A')


@pytest.fixture
def headadmin(db):
    return make_user('head@schoolhub.test', User.Role.HEADADMIN)


@pytest.fixture
def admin_user(school):
    return make_user('admin@greenfield.test', User.Role.ADMIN, school)


@pytest.fixture
def teacher(school):
    return make_user('teacher@greenfield.test', User.Role.TEACHER, school, first_name='Ada', last_name='Obi')


@pytest.fixture
def student(school, school_class):
    user = make_user('student@greenfield.test', User.Role.STUDENT, school, first_name='Tunde', last_name='Bello')
    StudentProfile.objects.create(user=user, school_class=school_class, admission_number='GF/001')
    return user


@pytest.fixture
def subject(school, teacher, school_class):
    subject = Subject.objects.create(school=school, name='Mathematics', code='MTH')
    subject.teachers.add(teacher)
    subject.classes.add(school_class)
    return subject


@pytest.fixture
def make_test(school, subject, teacher, school_class):
    def factory(**overrides):
        now = timezone.now()
        fields = dict(
            school=school,
            subject=subject,
            teacher=teacher,
            title='Algebra Quiz',
            test_type=OnlineTest.TestType.QUIZ,
            status=OnlineTest.Status.PUBLISHED,
            available_from=now - timedelta(hours=1),
            due_date=now + timedelta(days=1),
            duration_minutes=30,
            max_score=100,
        )
        fields.update(overrides)
        test = OnlineTest.objects.create(**fields)
        test.classes.add(school_class)
        return test
    return factory


@pytest.fixture
def objective_test(make_test):
    test = make_test(max_score=2, passing_score=1)
    add_objective(test, '2 + 2 = ?', ['3', '4', '5'], correct=1)
    add_objective(test, '3 x 3 = ?', ['6', '9', '12'], correct=1)
    return test


@pytest.fixture
def mixed_test(make_test):
    test = make_test(title='Algebra Exam', test_type=OnlineTest.TestType.EXAM, max_score=7, passing_score=4)
    add_objective(test, '2 + 2 = ?', ['3', '4', '5'], correct=1, marks=2)
    add_theory(test, 'Explain the distributive law.', marks=5)
    return test


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(api_client):
    def login(user):
        api_client.force_authenticate(user=user)
        return api_client
    return login
