# payments/models.py
from django.conf import settings
from django.db import models


class Invoice(models.Model):
    """Monthly subscription bill for a school, priced per active user."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        OVERDUE = "overdue", "Overdue"
        CANCELLED = "cancelled", "Cancelled"

    school = models.ForeignKey('cores.School', on_delete=models.CASCADE, related_name='invoices')
    invoice_number = models.CharField(max_length=20, unique=True)  # INV-YYYYMM-NNNN
    # First day of the billed month
    billing_period = models.DateField()

    student_count = models.PositiveIntegerField(default=0)
    teacher_count = models.PositiveIntegerField(default=0)
    total_users = models.PositiveIntegerField(default=0)
    price_per_user = models.DecimalField(max_digits=10, decimal_places=2)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="NGN")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    due_date = models.DateField()
    paid_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='invoices_created')
    verified_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='invoices_verified')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-billing_period', '-created_at']
        unique_together = ('school', 'billing_period')

    def __str__(self):
        return f"{self.invoice_number} - {self.school} - {self.status}"

    @property
    def is_payable(self):
        return self.status in (self.Status.PENDING, self.Status.OVERDUE)


class InvoicePayment(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        SUCCESS = "success", "Success"
        FAILED = "failed", "Failed"

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='payments')
    paid_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reference = models.CharField(max_length=100, unique=True)  # Paystack ref, or manual receipt number
    provider = models.CharField(max_length=20, default="paystack")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.invoice.invoice_number} - {self.reference} - {self.status}"
