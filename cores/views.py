import logging

from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.shortcuts import get_object_or_404
from rest_framework import generics, viewsets, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from assessments.models import TestSubmission
from exams.models import OnlineTest, Subject
from payments.models import Invoice
from .context import AuthContext
from .models import School, SchoolClass, AuditLog, Notification
from .permissions import IsHeadAdmin, IsSchoolAdmin, IsSchoolStaff
from .serializers import (
    SchoolSerializer, ExtendTrialSerializer, SchoolClassSerializer,
    AuditLogSerializer, NotificationSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()


# --- Head admin: tenants ---

class SchoolViewSet(viewsets.ModelViewSet):
    serializer_class = SchoolSerializer
    permission_classes = [IsHeadAdmin]
    filter_backends = [filters.SearchFilter]
    search_fields = ['name', 'code', 'email']

    def get_queryset(self):
        queryset = School.objects.annotate(
            student_count=Count('users', filter=Q(users__role=User.Role.STUDENT)),
            teacher_count=Count('users', filter=Q(users__role=User.Role.TEACHER)),
        )
        school_status = self.request.query_params.get('status')
        if school_status:
            queryset = queryset.filter(status=school_status)
        return queryset.order_by('-created_at')

    def perform_create(self, serializer):
        school = serializer.save()
        AuditLog.record(self.request, 'SCHOOL', school, f"Created school: {school.name}")

    def perform_update(self, serializer):
        school = serializer.save()
        AuditLog.record(self.request, 'SCHOOL', school, f"Updated school: {school.name}")

    def perform_destroy(self, instance):
        AuditLog.record(self.request, 'DELETE', instance, f"Deleted school: {instance.name}")
        instance.delete()

    @action(detail=True, methods=['post'], url_path='extend-trial')
    def extend_trial(self, request, pk=None):
        school = self.get_object()
        serializer = ExtendTrialSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        days = serializer.validated_data['days']
        school.extend_trial(days)
        AuditLog.record(request, 'SCHOOL', school, f"Extended trial of {school.name} by {days} days")
        return Response({"success": True, "trial_ends_at": school.trial_ends_at, "status": school.status})

    @action(detail=True, methods=['post'], url_path='toggle-status')
    def toggle_status(self, request, pk=None):
        school = self.get_object()
        school.status = School.Status.SUSPENDED if school.is_active else School.Status.ACTIVE
        school.save(update_fields=['status'])
        AuditLog.record(request, 'SCHOOL', school, f"Set {school.name} to {school.status}")
        return Response({"success": True, "status": school.status})

    @action(detail=True, methods=['get'], url_path='user-count')
    def user_count(self, request, pk=None):
        school = self.get_object()
        counts = dict(school.users.values_list('role').order_by().annotate(total=Count('id')))
        return Response({
            "success": True,
            "data": {
                "students": counts.get(User.Role.STUDENT, 0),
                "teachers": counts.get(User.Role.TEACHER, 0),
                "staff": sum(v for k, v in counts.items() if k not in (User.Role.STUDENT, User.Role.TEACHER)),
                "total": sum(counts.values()),
                "max_students": school.max_students,
                "max_teachers": school.max_teachers,
            },
        })


class HeadAdminStatsView(APIView):
    permission_classes = [IsHeadAdmin]

    def get(self, request):
        schools = dict(School.objects.values_list('status').order_by().annotate(total=Count('id')))
        invoices = Invoice.objects.aggregate(
            paid=Sum('amount', filter=Q(status=Invoice.Status.PAID)),
            outstanding=Sum('amount', filter=Q(status__in=[Invoice.Status.PENDING, Invoice.Status.OVERDUE])),
            overdue=Count('id', filter=Q(status=Invoice.Status.OVERDUE)),
        )
        return Response({
            "success": True,
            "data": {
                "schools": {
                    "total": sum(schools.values()),
                    **{key: schools.get(key, 0) for key in School.Status.values},
                },
                "users": {
                    "students": User.objects.filter(role=User.Role.STUDENT).count(),
                    "teachers": User.objects.filter(role=User.Role.TEACHER).count(),
                },
                "revenue": {
                    "paid": invoices['paid'] or 0,
                    "outstanding": invoices['outstanding'] or 0,
                    "overdueInvoices": invoices['overdue'],
                },
            },
        })


# --- School admin ---

class SchoolClassViewSet(viewsets.ModelViewSet):
    serializer_class = SchoolClassSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [IsSchoolStaff()]
        return [IsSchoolAdmin()]

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        return SchoolClass.objects.filter(school_id=ctx.school_id)

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['school'] = getattr(self.request.user, 'school', None)
        return context

    def perform_create(self, serializer):
        school_class = serializer.save(school=self.request.user.school)
        AuditLog.record(self.request, 'CREATE', school_class, f"Created class: {school_class.name}")

    def perform_destroy(self, instance):
        AuditLog.record(self.request, 'DELETE', instance, f"Deleted class: {instance.name}")
        instance.delete()


class AdminStatsView(APIView):
    permission_classes = [IsSchoolAdmin]

    def get(self, request):
        ctx = AuthContext.from_request(request)
        roles = dict(User.objects.filter(school_id=ctx.school_id)
                     .values_list('role').order_by().annotate(total=Count('id')))
        tests = dict(OnlineTest.objects.filter(school_id=ctx.school_id)
                     .values_list('status').order_by().annotate(total=Count('id')))
        submissions = TestSubmission.objects.filter(school_id=ctx.school_id)

        return Response({
            "success": True,
            "data": {
                "users": {
                    "students": roles.get(User.Role.STUDENT, 0),
                    "teachers": roles.get(User.Role.TEACHER, 0),
                    "total": sum(roles.values()),
                },
                "classes": SchoolClass.objects.filter(school_id=ctx.school_id).count(),
                "subjects": Subject.objects.filter(school_id=ctx.school_id).count(),
                "tests": {"total": sum(tests.values()), **tests},
                "submissions": {
                    "total": submissions.exclude(status=TestSubmission.Status.IN_PROGRESS).count(),
                    "pendingGrading": submissions.filter(status=TestSubmission.Status.SUBMITTED).count(),
                },
                "outstandingInvoices": Invoice.objects.filter(
                    school_id=ctx.school_id,
                    status__in=[Invoice.Status.PENDING, Invoice.Status.OVERDUE],
                ).count(),
            },
        })


class AuditLogListView(generics.ListAPIView):
    serializer_class = AuditLogSerializer
    permission_classes = [IsSchoolAdmin]

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        # Select related avoids N+1 queries when fetching users
        queryset = AuditLog.objects.filter(school_id=ctx.school_id).select_related('actor')
        action_name = self.request.query_params.get('action')
        if action_name:
            queryset = queryset.filter(action=action_name)
        return queryset


# --- Notifications (any signed-in user) ---

class NotificationListView(generics.ListAPIView):
    serializer_class = NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(user=self.request.user)
        if self.request.query_params.get('unread') in ('1', 'true'):
            queryset = queryset.filter(is_read=False)
        return queryset

    def list(self, request, *args, **kwargs):
        queryset = self.get_queryset()
        return Response({
            "success": True,
            "data": NotificationSerializer(queryset[:100], many=True).data,
            "unread": queryset.filter(is_read=False).count(),
        })


class NotificationReadView(APIView):
    def post(self, request, pk):
        notification = get_object_or_404(Notification, pk=pk, user=request.user)
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=['is_read'])
        return Response({"success": True})


class NotificationReadAllView(APIView):
    def post(self, request):
        updated = Notification.objects.filter(user=request.user, is_read=False).update(is_read=True)
        return Response({"success": True, "updated": updated})
