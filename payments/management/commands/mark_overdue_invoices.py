from django.core.management.base import BaseCommand

from payments.services import mark_overdue_invoices


class Command(BaseCommand):
    help = 'Flags pending invoices whose due date has passed as overdue'

    def handle(self, *args, **options):
        updated = mark_overdue_invoices()
        self.stdout.write(self.style.SUCCESS(f"{updated} invoices marked overdue"))
