import logging
from decimal import Decimal

import requests
from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import generics, status, views, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from cores.context import AuthContext
from cores.models import AuditLog, Notification
from cores.permissions import IsHeadAdmin, IsSchoolAdmin
from . import services
from .models import Invoice, InvoicePayment
from .serializers import InvoiceSerializer, MarkPaidSerializer, VerifyPaymentSerializer

logger = logging.getLogger(__name__)

PAYSTACK_VERIFY_URL = "https://api.paystack.co/transaction/verify/{reference}"


class InvoiceViewSet(viewsets.ModelViewSet):
    """Head-admin billing. ?status= and ?school= narrow the list."""
    serializer_class = InvoiceSerializer
    permission_classes = [IsHeadAdmin]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        queryset = Invoice.objects.select_related('school').prefetch_related('payments')
        invoice_status = self.request.query_params.get('status')
        if invoice_status:
            queryset = queryset.filter(status=invoice_status)
        school_id = self.request.query_params.get('school')
        if school_id:
            queryset = queryset.filter(school_id=school_id)
        return queryset

    def perform_create(self, serializer):
        data = serializer.validated_data
        with transaction.atomic():
            serializer.instance = services.create_invoice(
                data['school'], data['billing_period'],
                created_by=self.request.user,
                notes=data.get('notes', ''),
            )
        AuditLog.record(self.request, 'INVOICE', serializer.instance,
                        f"Issued {serializer.instance.invoice_number} to {serializer.instance.school.name}")

    def destroy(self, request, *args, **kwargs):
        invoice = self.get_object()
        if invoice.status == Invoice.Status.PAID:
            return Response({"success": False, "error": "Paid invoices cannot be deleted"},
                            status=status.HTTP_400_BAD_REQUEST)
        AuditLog.record(request, 'DELETE', invoice, f"Deleted invoice {invoice.invoice_number}")
        invoice.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='mark-paid')
    def mark_paid(self, request, pk=None):
        """Record a payment received outside Paystack (bank transfer, cash)."""
        invoice = self.get_object()
        if not invoice.is_payable:
            return Response({"success": False, "error": f"Invoice is {invoice.status}"},
                            status=status.HTTP_400_BAD_REQUEST)
        serializer = MarkPaidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reference = serializer.validated_data.get('reference') or f"MANUAL-{invoice.invoice_number}"
        if InvoicePayment.objects.filter(reference=reference).exists():
            return Response({"success": False, "error": "This payment reference has already been used."},
                            status=status.HTTP_400_BAD_REQUEST)

        now = timezone.now()
        with transaction.atomic():
            InvoicePayment.objects.create(
                invoice=invoice,
                paid_by=request.user,
                amount=invoice.amount,
                reference=reference,
                provider='manual',
                status=InvoicePayment.Status.SUCCESS,
                verified_at=now,
            )
            services.mark_paid(invoice, verified_by=request.user, now=now)
        AuditLog.record(request, 'INVOICE', invoice, f"Marked {invoice.invoice_number} as paid ({reference})")
        return Response({"success": True, "data": InvoiceSerializer(self.get_object()).data})

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        invoice = self.get_object()
        if invoice.status == Invoice.Status.PAID:
            return Response({"success": False, "error": "Paid invoices cannot be cancelled"},
                            status=status.HTTP_400_BAD_REQUEST)
        invoice.status = Invoice.Status.CANCELLED
        invoice.cancelled_at = timezone.now()
        invoice.save(update_fields=['status', 'cancelled_at'])
        AuditLog.record(request, 'INVOICE', invoice, f"Cancelled {invoice.invoice_number}")
        return Response({"success": True, "status": invoice.status})

    @action(detail=False, methods=['get'])
    def stats(self, request):
        totals = Invoice.objects.aggregate(
            total_revenue=Sum('amount', filter=Q(status=Invoice.Status.PAID)),
            pending_amount=Sum('amount', filter=Q(status=Invoice.Status.PENDING)),
            overdue_amount=Sum('amount', filter=Q(status=Invoice.Status.OVERDUE)),
            paid=Count('id', filter=Q(status=Invoice.Status.PAID)),
            pending=Count('id', filter=Q(status=Invoice.Status.PENDING)),
            overdue=Count('id', filter=Q(status=Invoice.Status.OVERDUE)),
        )
        return Response({
            "success": True,
            "stats": {
                "totalRevenue": totals['total_revenue'] or 0,
                "pendingAmount": totals['pending_amount'] or 0,
                "overdueAmount": totals['overdue_amount'] or 0,
                "paidInvoices": totals['paid'],
                "pendingInvoices": totals['pending'],
                "overdueInvoices": totals['overdue'],
            },
        })

    @action(detail=False, methods=['get'])
    def recent(self, request):
        invoices = self.get_queryset().order_by('-created_at')[:5]
        return Response({"success": True, "data": InvoiceSerializer(invoices, many=True).data})


class SchoolInvoiceListView(generics.ListAPIView):
    """The caller's own school invoices."""
    serializer_class = InvoiceSerializer
    permission_classes = [IsSchoolAdmin]

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        return Invoice.objects.filter(school_id=ctx.school_id).prefetch_related('payments')


class VerifyPaystackPaymentView(views.APIView):
    """
    Verifies a Paystack reference provided by a school admin against one of
    their school's invoices.
    """
    permission_classes = [IsSchoolAdmin]

    def post(self, request):
        ctx = AuthContext.from_request(request)
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reference = serializer.validated_data['reference'].strip()

        invoice = get_object_or_404(Invoice, id=serializer.validated_data['invoice_id'], school_id=ctx.school_id)
        if not invoice.is_payable:
            return Response({"success": False, "error": f"Invoice is {invoice.status}"},
                            status=status.HTTP_400_BAD_REQUEST)

        # 1. Check if this reference was already used
        if InvoicePayment.objects.filter(reference=reference).exists():
            return Response({"success": False, "error": "This payment receipt has already been used."},
                            status=status.HTTP_400_BAD_REQUEST)

        # 2. Verify with Paystack
        if not settings.PAYSTACK_SECRET_KEY:
            logger.error("PAYSTACK_SECRET_KEY missing in settings.")
            return Response({"success": False, "error": "Server misconfiguration: Missing Paystack Key"},
                            status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        headers = {"Authorization": f"Bearer {settings.PAYSTACK_SECRET_KEY}"}
        try:
            # Timeout is crucial to prevent server hanging
            resp = requests.get(PAYSTACK_VERIFY_URL.format(reference=reference), headers=headers, timeout=20)
            resp_data = resp.json()
        except requests.exceptions.Timeout:
            return Response({"success": False, "error": "Verification timed out. Paystack is slow right now."},
                            status=status.HTTP_504_GATEWAY_TIMEOUT)
        except requests.exceptions.ConnectionError:
            return Response({"success": False, "error": "Network error. Could not connect to Paystack."},
                            status=status.HTTP_503_SERVICE_UNAVAILABLE)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Payment verification error for %s: %s", reference, e)
            return Response({"success": False, "error": "An internal error occurred during verification."},
                            status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        data = resp_data.get('data') or {}
        if not (resp_data.get('status') and data.get('status') == 'success'):
            logger.info("Paystack rejected reference %s for invoice %s", reference, invoice.invoice_number)
            return Response({"success": False, "error": "Invalid or failed transaction reference."},
                            status=status.HTTP_400_BAD_REQUEST)

        # 3. Validation: Did they pay the correct amount?
        amount_paid = Decimal(data.get('amount', 0)) / 100  # Convert kobo to naira
        if amount_paid < invoice.amount:
            return Response({
                "success": False,
                "error": f"Incomplete payment. Invoice is {invoice.amount} but you paid {amount_paid}",
            }, status=status.HTTP_400_BAD_REQUEST)

        # 4. Success! Save the record
        now = timezone.now()
        with transaction.atomic():
            InvoicePayment.objects.create(
                invoice=invoice,
                paid_by=request.user,
                amount=amount_paid,
                reference=reference,
                provider='paystack',
                status=InvoicePayment.Status.SUCCESS,
                verified_at=now,
            )
            services.mark_paid(invoice, now=now)

        logger.info("Invoice %s paid via Paystack (%s)", invoice.invoice_number, reference)
        AuditLog.record(request, 'INVOICE', invoice, f"Paid {invoice.invoice_number} via Paystack ({reference})")
        Notification.send(
            request.user,
            title='Payment Received',
            content=f"Payment of {amount_paid} for invoice {invoice.invoice_number} was verified.",
            type=Notification.Type.SUCCESS,
        )
        return Response({"success": True, "message": "Payment verified!", "status": invoice.status})
