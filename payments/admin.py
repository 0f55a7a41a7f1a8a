from django.contrib import admin

from .models import Invoice, InvoicePayment


class InvoicePaymentInline(admin.TabularInline):
    model = InvoicePayment
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'school', 'billing_period', 'amount', 'status', 'due_date')
    list_filter = ('status',)
    search_fields = ('invoice_number', 'school__name')
    inlines = [InvoicePaymentInline]
