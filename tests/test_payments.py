from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

import pytest
import requests
from django.contrib.auth import get_user_model
from django.core.management import call_command

from cores.models import School
from payments import services
from payments.models import Invoice, InvoicePayment

pytestmark = pytest.mark.django_db


def issue(school, period=date(2025, 3, 1), on=date(2025, 3, 1)):
    return services.create_invoice(school, period, issued_on=on)


def paystack_reply(status='success', amount_kobo=0):
    reply = mock.Mock()
    reply.json.return_value = {'status': True, 'data': {'status': status, 'amount': amount_kobo}}
    return reply


# --- numbering & billing ---

def test_invoice_numbers_follow_month_sequence(school, other_school):
    first = issue(school)
    second = issue(other_school)
    april = issue(school, period=date(2025, 4, 1), on=date(2025, 4, 2))

    assert first.invoice_number == 'INV-202503-0001'
    assert second.invoice_number == 'INV-202503-0002'
    assert april.invoice_number == 'INV-202504-0001'


def test_amount_is_users_times_price(school, student, teacher):
    school.price_per_user = Decimal('150.00')
    school.save()
    invoice = issue(school)

    assert invoice.student_count == 1
    assert invoice.teacher_count == 1
    assert invoice.amount == Decimal('300.00')
    assert invoice.due_date == date(2025, 3, 31)


def test_monthly_generation_skips_billed_and_inactive_schools(school, other_school):
    other_school.status = School.Status.SUSPENDED
    other_school.save()
    School.objects.create(name='Lakeside', code='lakeside', status=School.Status.ACTIVE)

    created = services.generate_monthly_invoices(date(2025, 5, 10))
    again = services.generate_monthly_invoices(date(2025, 5, 20))

    assert {i.school.code for i in created} == {'greenfield', 'lakeside'}
    assert again == []
    assert Invoice.objects.filter(billing_period=date(2025, 5, 1)).count() == 2


def test_mark_overdue_only_touches_pending_past_due(school, other_school):
    late = issue(school)
    paid = issue(other_school)
    services.mark_paid(paid)

    updated = services.mark_overdue_invoices(today=late.due_date + timedelta(days=1))

    late.refresh_from_db()
    paid.refresh_from_db()
    assert updated == 1
    assert late.status == Invoice.Status.OVERDUE
    assert paid.status == Invoice.Status.PAID


def test_commands_run(school):
    call_command('generate_monthly_invoices', '--month', '2025-06')
    assert Invoice.objects.filter(school=school, billing_period=date(2025, 6, 1)).exists()
    call_command('mark_overdue_invoices')


# --- head admin endpoints ---

def test_headadmin_creates_invoice_once_per_month(client_for, headadmin, school):
    client = client_for(headadmin)
    payload = {'school': school.pk, 'billing_period': '2025-07-15', 'notes': 'July'}

    first = client.post('/api/headadmin/invoices/', payload, format='json')
    second = client.post('/api/headadmin/invoices/', payload, format='json')

    assert first.status_code == 201
    assert first.json()['billing_period'] == '2025-07-01'
    assert first.json()['invoice_number'].startswith('INV-')
    assert second.status_code == 400


def test_mark_paid_and_cancel(client_for, headadmin, school, other_school):
    client = client_for(headadmin)
    invoice = issue(school)
    other = issue(other_school)

    paid = client.post(f'/api/headadmin/invoices/{invoice.pk}/mark-paid/', {'reference': 'TRF-881'}, format='json')
    assert paid.status_code == 200
    assert paid.json()['data']['status'] == 'paid'
    assert InvoicePayment.objects.get(reference='TRF-881').provider == 'manual'

    assert client.post(f'/api/headadmin/invoices/{invoice.pk}/cancel/').status_code == 400
    assert client.post(f'/api/headadmin/invoices/{other.pk}/cancel/').json()['status'] == 'cancelled'


def test_invoice_stats(client_for, headadmin, school, other_school):
    services.mark_paid(issue(school))
    issue(other_school)

    stats = client_for(headadmin).get('/api/headadmin/invoices/stats/').json()['stats']
    assert stats['paidInvoices'] == 1
    assert stats['pendingInvoices'] == 1


def test_school_admin_sees_only_own_invoices(client_for, admin_user, school, other_school):
    issue(school)
    issue(other_school)
    rows = client_for(admin_user).get('/api/admin/invoices/').json()
    assert [row['school'] for row in rows] == [school.pk]


# --- Paystack ---

@pytest.fixture
def paystack_key(settings):
    settings.PAYSTACK_SECRET_KEY = 'sk_test_123'


def test_paystack_payment_marks_invoice_paid(client_for, admin_user, school, paystack_key):
    invoice = issue(school)
    invoice.amount = Decimal('500.00')
    invoice.save()

    with mock.patch('payments.views.requests.get', return_value=paystack_reply(amount_kobo=50000)) as get:
        response = client_for(admin_user).post('/api/payments/verify/',
                                               {'reference': 'ps_ref_1', 'invoice_id': invoice.pk}, format='json')

    assert response.status_code == 200
    assert get.call_args.kwargs['timeout'] == 20
    assert get.call_args.kwargs['headers'] == {'Authorization': 'Bearer sk_test_123'}
    invoice.refresh_from_db()
    assert invoice.status == Invoice.Status.PAID
    assert InvoicePayment.objects.get(reference='ps_ref_1').amount == Decimal('500.00')


def test_paystack_underpayment_is_rejected(client_for, admin_user, school, paystack_key):
    invoice = issue(school)
    invoice.amount = Decimal('500.00')
    invoice.save()

    with mock.patch('payments.views.requests.get', return_value=paystack_reply(amount_kobo=10000)):
        response = client_for(admin_user).post('/api/payments/verify/',
                                               {'reference': 'ps_ref_2', 'invoice_id': invoice.pk}, format='json')

    assert response.status_code == 400
    assert 'Incomplete payment' in response.json()['error']


def test_reused_reference_is_rejected(client_for, admin_user, school, paystack_key):
    invoice = issue(school)
    InvoicePayment.objects.create(invoice=invoice, amount=1, reference='dup', status='success')

    with mock.patch('payments.views.requests.get') as get:
        response = client_for(admin_user).post('/api/payments/verify/',
                                               {'reference': 'dup', 'invoice_id': invoice.pk}, format='json')
    assert response.status_code == 400
    get.assert_not_called()


@pytest.mark.parametrize('error, code', [
    (requests.exceptions.Timeout(), 504),
    (requests.exceptions.ConnectionError(), 503),
])
def test_paystack_network_failures(client_for, admin_user, school, paystack_key, error, code):
    invoice = issue(school)
    with mock.patch('payments.views.requests.get', side_effect=error):
        response = client_for(admin_user).post('/api/payments/verify/',
                                               {'reference': 'ps_ref_3', 'invoice_id': invoice.pk}, format='json')
    assert response.status_code == code
    invoice.refresh_from_db()
    assert invoice.status == Invoice.Status.PENDING


def test_cannot_pay_another_schools_invoice(client_for, admin_user, other_school, paystack_key):
    invoice = issue(other_school)
    response = client_for(admin_user).post('/api/payments/verify/',
                                           {'reference': 'x', 'invoice_id': invoice.pk}, format='json')
    assert response.status_code == 404


def test_create_headadmin_command():
    call_command('create_headadmin', '--email', 'Root@SchoolHub.test', '--password', 'R00t-pass!')
    user = get_user_model().objects.get(email='root@schoolhub.test')
    assert user.role == 'headadmin'
    assert user.school is None
