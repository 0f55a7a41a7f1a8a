"""
Invoice bookkeeping shared by the head-admin views and the billing commands.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from cores.models import School
from .models import Invoice

logger = logging.getLogger(__name__)

User = get_user_model()


def payment_term():
    return timedelta(days=getattr(settings, 'INVOICE_PAYMENT_TERM_DAYS', 30))


def next_invoice_number(on=None):
    """``INV-YYYYMM-NNNN``; the sequence restarts every month."""
    on = on or timezone.localdate()
    prefix = f"INV-{on:%Y%m}-"
    last = (Invoice.objects.filter(invoice_number__startswith=prefix)
            .order_by('-invoice_number').values_list('invoice_number', flat=True).first())
    sequence = int(last.rsplit('-', 1)[1]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


def calculate_amount(student_count, teacher_count, price_per_user):
    return (student_count + teacher_count) * Decimal(price_per_user)


def billing_period_for(day):
    return date(day.year, day.month, 1)


def create_invoice(school, billing_period, created_by=None, notes='', issued_on=None):
    """Bill ``school`` for the month containing ``billing_period`` using its current user counts."""
    issued_on = issued_on or timezone.localdate()
    students = school.users.filter(role=User.Role.STUDENT, is_active=True).count()
    teachers = school.users.filter(role=User.Role.TEACHER, is_active=True).count()
    return Invoice.objects.create(
        school=school,
        invoice_number=next_invoice_number(issued_on),
        billing_period=billing_period_for(billing_period),
        student_count=students,
        teacher_count=teachers,
        total_users=students + teachers,
        price_per_user=school.price_per_user,
        amount=calculate_amount(students, teachers, school.price_per_user),
        due_date=issued_on + payment_term(),
        notes=notes,
        created_by=created_by,
    )


def generate_monthly_invoices(billing_date=None, created_by=None):
    """
    One invoice per active school for the month of ``billing_date``.
    Schools already billed for that month are skipped.
    """
    billing_date = billing_date or timezone.localdate()
    period = billing_period_for(billing_date)
    created = []
    for school in School.objects.filter(status=School.Status.ACTIVE).order_by('pk'):
        if Invoice.objects.filter(school=school, billing_period=period).exists():
            continue
        with transaction.atomic():
            created.append(create_invoice(school, period, created_by=created_by, issued_on=billing_date))
    logger.info("Generated %d invoices for %s", len(created), period.strftime('%Y-%m'))
    return created


def mark_overdue_invoices(today=None):
    today = today or timezone.localdate()
    updated = Invoice.objects.filter(status=Invoice.Status.PENDING, due_date__lt=today).update(
        status=Invoice.Status.OVERDUE)
    if updated:
        logger.info("Marked %d invoices overdue", updated)
    return updated


def mark_paid(invoice, verified_by=None, now=None):
    invoice.status = Invoice.Status.PAID
    invoice.paid_at = now or timezone.now()
    invoice.verified_by = verified_by
    invoice.save(update_fields=['status', 'paid_at', 'verified_by'])
    if invoice.school.status in (School.Status.TRIAL, School.Status.SUSPENDED):
        invoice.school.status = School.Status.ACTIVE
        invoice.school.save(update_fields=['status'])
    return invoice
