from datetime import datetime

from django.core.management.base import BaseCommand, CommandError

from payments.services import generate_monthly_invoices


class Command(BaseCommand):
    help = 'Bills every active school for a month based on its current student and teacher count'

    def add_arguments(self, parser):
        parser.add_argument('--month', help='Month to bill as YYYY-MM (defaults to the current month)')

    def handle(self, *args, **options):
        billing_date = None
        if options['month']:
            try:
                billing_date = datetime.strptime(options['month'], '%Y-%m').date()
            except ValueError:
                raise CommandError("--month must look like 2025-01")

        invoices = generate_monthly_invoices(billing_date)
        for invoice in invoices:
            self.stdout.write(f"{invoice.invoice_number}  {invoice.school.name}  {invoice.amount}")
        self.stdout.write(self.style.SUCCESS(f"Generated {len(invoices)} invoices"))
