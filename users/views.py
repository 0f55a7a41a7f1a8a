import csv
import io
import logging
import secrets

from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import generics, permissions, status, viewsets, filters
from rest_framework.decorators import action
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from cores.context import AuthContext
from cores.models import AuditLog, SchoolClass
from cores.permissions import IsSchoolAdmin, IsSchoolStaff
from .models import StudentProfile
from .serializers import (
    RegisterSerializer,
    CustomTokenObtainPairSerializer,
    StudentListSerializer,
    UserSerializer,
    ChangePasswordSerializer,
    HeadAdminCreateSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()


# --- 1. User Management (CRUD for School Admin) ---
class UserViewSet(viewsets.ModelViewSet):
    """
    School-admin endpoint to manage the users of their own school.
    Every write is recorded in the audit log.
    """
    permission_classes = [IsSchoolAdmin]
    filter_backends = [filters.SearchFilter]
    search_fields = ['email', 'first_name', 'last_name']

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        queryset = User.objects.filter(school_id=ctx.school_id).select_related('student_profile__school_class')
        role = self.request.query_params.get('role')
        if role:
            queryset = queryset.filter(role=role)
        return queryset.order_by('-date_joined')

    def get_serializer_class(self):
        if self.action == 'create':
            return RegisterSerializer
        return UserSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['school'] = self.request.user.school
        return context

    def perform_create(self, serializer):
        user = serializer.save()
        AuditLog.record(self.request, 'CREATE', user, f"Created new user: {user.email} (Role: {user.role})")

    def perform_update(self, serializer):
        user = serializer.save()
        # Handle password update if present
        if self.request.data.get('password'):
            user.set_password(self.request.data['password'])
            user.save()
        AuditLog.record(self.request, 'UPDATE', user, f"Updated profile for: {user.email}")

    def perform_destroy(self, instance):
        AuditLog.record(self.request, 'DELETE', instance, f"Deleted user account: {instance.email}")
        instance.delete()

    @action(detail=True, methods=['post'], url_path='toggle-status')
    def toggle_status(self, request, pk=None):
        user = self.get_object()
        if user == request.user:
            return Response({"success": False, "error": "You cannot deactivate your own account"},
                            status=status.HTTP_400_BAD_REQUEST)
        user.is_active = not user.is_active
        user.save(update_fields=['is_active'])
        AuditLog.record(request, 'UPDATE', user,
                        f"{'Activated' if user.is_active else 'Deactivated'} account: {user.email}")
        return Response({"success": True, "is_active": user.is_active})


class StudentImportView(APIView):
    """
    Import students from CSV.
    Expected CSV Header: first_name, last_name, email, class_name, admission_number, password
    Rows with an existing email or missing fields are reported and skipped.
    """
    permission_classes = [IsSchoolAdmin]
    parser_classes = (MultiPartParser, FormParser)

    REQUIRED_COLUMNS = ('first_name', 'last_name', 'email')

    def post(self, request):
        ctx = AuthContext.from_request(request)
        file_obj = request.FILES.get('file')
        if not file_obj:
            return Response({"success": False, "error": "No file uploaded"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            decoded_file = file_obj.read().decode('utf-8-sig')
        except UnicodeDecodeError:
            return Response({"success": False, "error": "File must be UTF-8 encoded CSV"},
                            status=status.HTTP_400_BAD_REQUEST)

        reader = csv.DictReader(io.StringIO(decoded_file))
        missing = [col for col in self.REQUIRED_COLUMNS if col not in (reader.fieldnames or [])]
        if missing:
            return Response({"success": False, "error": f"Missing columns: {', '.join(missing)}"},
                            status=status.HTTP_400_BAD_REQUEST)

        school = ctx.school
        capacity = school.max_students - User.objects.filter(school=school, role=User.Role.STUDENT).count()
        created, errors = [], []

        for line_no, row in enumerate(reader, start=2):
            email = (row.get('email') or '').strip().lower()
            first_name = (row.get('first_name') or '').strip()
            last_name = (row.get('last_name') or '').strip()

            if not (email and first_name and last_name):
                errors.append({"row": line_no, "error": "first_name, last_name and email are required"})
                continue
            if User.objects.filter(email__iexact=email).exists():
                errors.append({"row": line_no, "error": f"{email} already exists"})
                continue
            if len(created) >= capacity:
                errors.append({"row": line_no, "error": "Student limit reached for this school"})
                continue

            with transaction.atomic():
                user = User.objects.create_user(
                    username=email,
                    email=email,
                    password=(row.get('password') or '').strip() or secrets.token_urlsafe(12),
                    first_name=first_name,
                    last_name=last_name,
                    role=User.Role.STUDENT,
                    school=school,
                )
                class_name = (row.get('class_name') or '').strip()
                school_class = None
                if class_name:
                    school_class, _ = SchoolClass.objects.get_or_create(school=school, name=class_name)
                StudentProfile.objects.create(
                    user=user,
                    school_class=school_class,
                    admission_number=(row.get('admission_number') or '').strip(),
                )
            created.append(email)

        if errors:
            logger.info("Student import for %s skipped %d rows", school.code, len(errors))
        AuditLog.objects.create(
            actor=request.user,
            school=school,
            action='IMPORT',
            target_model='User',
            details=f"Imported {len(created)} students ({len(errors)} rows skipped)",
            ip_address=request.META.get('REMOTE_ADDR'),
        )

        return Response({
            "success": True,
            "created": len(created),
            "skipped": len(errors),
            "errors": errors,
        }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


# --- 2. Authentication Views ---
class CustomLoginView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CreateHeadAdminView(generics.CreateAPIView):
    """Bootstraps the platform. Closed once a head admin exists."""
    serializer_class = HeadAdminCreateSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def create(self, request, *args, **kwargs):
        if User.objects.filter(role=User.Role.HEADADMIN).exists():
            return Response({"success": False, "error": "A head admin already exists"},
                            status=status.HTTP_403_FORBIDDEN)
        return super().create(request, *args, **kwargs)


class UserProfileView(generics.RetrieveUpdateAPIView):
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user


class ChangePasswordView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        request.user.set_password(serializer.validated_data['new_password'])
        request.user.save()
        return Response({"success": True, "message": "Password updated"})


# --- 3. Student List View ---
class StudentListView(generics.ListAPIView):
    serializer_class = StudentListSerializer
    permission_classes = [IsSchoolStaff]
    filter_backends = [filters.SearchFilter]
    search_fields = ['email', 'first_name', 'last_name']

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        queryset = User.objects.filter(school_id=ctx.school_id, role=User.Role.STUDENT)
        class_name = self.request.query_params.get('class')
        if class_name:
            queryset = queryset.filter(student_profile__school_class__name=class_name)
        return queryset.select_related('student_profile__school_class').order_by('last_name', 'first_name')
