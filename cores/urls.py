from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    SchoolViewSet, HeadAdminStatsView, SchoolClassViewSet, AdminStatsView,
    AuditLogListView, NotificationListView, NotificationReadView, NotificationReadAllView,
)

headadmin_router = DefaultRouter()
headadmin_router.register(r'schools', SchoolViewSet, basename='schools')

admin_router = DefaultRouter()
admin_router.register(r'classes', SchoolClassViewSet, basename='classes')

headadmin_urlpatterns = [
    path('stats/', HeadAdminStatsView.as_view(), name='headadmin-stats'),
    path('', include(headadmin_router.urls)),
]

admin_urlpatterns = [
    path('stats/', AdminStatsView.as_view(), name='admin-stats'),
    path('audit-logs/', AuditLogListView.as_view(), name='audit-logs'),
    path('', include(admin_router.urls)),
]

notification_urlpatterns = [
    path('', NotificationListView.as_view(), name='notifications'),
    path('read-all/', NotificationReadAllView.as_view(), name='notifications-read-all'),
    path('<int:pk>/read/', NotificationReadView.as_view(), name='notification-read'),
]
