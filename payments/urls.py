from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import InvoiceViewSet, SchoolInvoiceListView, VerifyPaystackPaymentView

router = DefaultRouter()
router.register(r'invoices', InvoiceViewSet, basename='invoices')

headadmin_urlpatterns = [
    path('', include(router.urls)),
]

admin_urlpatterns = [
    path('invoices/', SchoolInvoiceListView.as_view(), name='school-invoices'),
]

urlpatterns = [
    # The actual URL will be: /api/payments/verify/
    path('verify/', VerifyPaystackPaymentView.as_view(), name='verify-payment'),
]
