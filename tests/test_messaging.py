import pytest

from messaging.models import Conversation, Message

from .conftest import make_user

pytestmark = pytest.mark.django_db


def start(client, *recipients, content='Hello'):
    return client.post('/api/messages/conversations/', {
        'participant_ids': [user.pk for user in recipients],
        'subject': 'Homework',
        'content': content,
    }, format='json')


def test_one_to_one_thread_is_reused(client_for, teacher, student):
    client = client_for(teacher)

    first = start(client, student)
    second = start(client, student, content='Reminder')

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()['data']['id'] == second.json()['data']['id']
    assert [m['content'] for m in second.json()['data']['messages']] == ['Hello', 'Reminder']


def test_group_thread_is_not_reused_for_direct_message(client_for, teacher, student, admin_user):
    client = client_for(teacher)
    group = start(client, student, admin_user)
    direct = start(client, student)
    again = start(client, student)

    assert group.status_code == 201
    assert direct.status_code == 201
    assert direct.json()['data']['id'] != group.json()['data']['id']
    assert again.status_code == 200
    assert again.json()['data']['id'] == direct.json()['data']['id']
    assert Conversation.objects.count() == 2


def test_cannot_message_another_school(client_for, teacher, other_school):
    outsider = make_user('teacher@hilltop.test', 'teacher', other_school)
    response = start(client_for(teacher), outsider)
    assert response.status_code == 400
    assert not Conversation.objects.exists()


def test_send_and_mark_read(client_for, teacher, student):
    client = client_for(teacher)
    conversation_id = start(client, student, content='').json()['data']['id']

    sent = client.post('/api/messages/send/', {
        'conversation_id': conversation_id, 'content': 'See me after class', 'priority': 'high',
    }, format='json')
    assert sent.status_code == 201
    assert sent.json()['message']['from_current_user'] is True

    client.force_authenticate(user=student)
    listing = client.get('/api/messages/conversations/').json()['data']
    assert listing[0]['unread_count'] == 1

    marked = client.post(f'/api/messages/conversations/{conversation_id}/read/').json()
    assert marked['marked'] == 1
    assert client.get('/api/messages/conversations/').json()['data'][0]['unread_count'] == 0


def test_outsiders_cannot_open_a_thread(client_for, teacher, student, admin_user):
    client = client_for(teacher)
    conversation_id = start(client, student).json()['data']['id']

    client.force_authenticate(user=admin_user)
    assert client.get(f'/api/messages/conversations/{conversation_id}/').status_code == 404
    response = client.post('/api/messages/send/', {'conversation_id': conversation_id, 'content': 'Hi'},
                           format='json')
    assert response.status_code == 404


def test_admin_broadcast_to_teachers(client_for, admin_user, teacher, student):
    response = client_for(admin_user).post('/api/messages/broadcast/', {
        'subject': 'Staff meeting', 'content': 'Friday at 2pm', 'target_roles': ['teacher'],
    }, format='json')

    assert response.status_code == 201
    assert response.json()['count'] == 1
    conversation = Conversation.objects.get(pk=response.json()['conversation'])
    assert conversation.is_broadcast
    assert set(conversation.participants.all()) == {admin_user, teacher}
    assert Message.objects.get(conversation=conversation).content == 'Friday at 2pm'


def test_headadmin_broadcast_defaults_to_school_admins(client_for, headadmin, admin_user, teacher, other_school):
    other_admin = make_user('admin@hilltop.test', 'admin', other_school)
    response = client_for(headadmin).post('/api/messages/broadcast/', {
        'subject': 'Maintenance', 'content': 'Downtime on Sunday',
    }, format='json')

    assert response.status_code == 201
    conversation = Conversation.objects.get(pk=response.json()['conversation'])
    assert set(conversation.participants.all()) == {headadmin, admin_user, other_admin}


def test_students_cannot_broadcast(client_for, student):
    response = client_for(student).post('/api/messages/broadcast/', {
        'subject': 'Party', 'content': 'Everyone come',
    }, format='json')
    assert response.status_code == 403
