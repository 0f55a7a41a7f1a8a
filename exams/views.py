import csv
import io
import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.response import Response

from cores.context import AuthContext
from cores.models import Notification
from cores.permissions import IsSchoolAdmin, IsTeacherOrSchoolAdmin, IsSchoolStaff
from .models import OnlineTest, Question, Option, Subject
from .serializers import (
    OnlineTestSerializer, OnlineTestDetailSerializer,
    QuestionSerializer, SubjectSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()


class SchoolScopedMixin:
    """Adds the caller's school to the serializer context."""

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['school'] = getattr(self.request.user, 'school', None)
        return context


class SubjectViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    serializer_class = SubjectSerializer
    filter_backends = [filters.SearchFilter]
    search_fields = ['name', 'code']

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [IsSchoolStaff()]
        return [IsSchoolAdmin()]

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        queryset = Subject.objects.filter(school_id=ctx.school_id).prefetch_related('classes', 'teachers')
        if ctx.role == 'teacher':
            queryset = queryset.filter(teachers=ctx.user)
        return queryset


class OnlineTestViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    """
    Teachers manage their own tests; school admins can see and manage every
    test of the school.
    """
    permission_classes = [IsTeacherOrSchoolAdmin]

    # Enable search on title and subject name
    filter_backends = [filters.SearchFilter]
    search_fields = ['title', 'subject__name']

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        queryset = OnlineTest.objects.filter(school_id=ctx.school_id).select_related('subject', 'teacher')
        if ctx.role == 'teacher':
            queryset = queryset.filter(teacher=ctx.user)
        test_status = self.request.query_params.get('status')
        if test_status:
            queryset = queryset.filter(status=test_status)
        return queryset.prefetch_related('classes').order_by('-created_at')

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return OnlineTestDetailSerializer
        return OnlineTestSerializer

    def perform_create(self, serializer):
        test = serializer.save()
        if test.status in OnlineTest.OPEN_STATUSES:
            self._notify_students(test)

    def _notify_students(self, test):
        students = User.objects.filter(
            role=User.Role.STUDENT,
            school_id=test.school_id,
            student_profile__school_class__in=test.classes.all(),
        ).distinct()
        teacher = test.teacher
        Notification.objects.bulk_create([
            Notification(
                user=student,
                school_id=test.school_id,
                title=f"New {test.test_type}: {test.title}",
                content=f"{teacher.full_name} has published a new {test.test_type} for {test.subject.name}",
                type=Notification.Type.INFO,
                action_url=f"/protected/students/tests/{test.id}",
                action_text="Take Test",
            )
            for student in students
        ])
        return len(students)

    @action(detail=True, methods=['post'])
    def publish(self, request, pk=None):
        test = self.get_object()
        if test.status != OnlineTest.Status.DRAFT:
            return Response({"success": False, "error": f"Only draft tests can be published (status: {test.status})"},
                            status=status.HTTP_400_BAD_REQUEST)
        if not test.questions.exists():
            return Response({"success": False, "error": "Add questions before publishing"},
                            status=status.HTTP_400_BAD_REQUEST)
        test.status = OnlineTest.Status.PUBLISHED
        test.save(update_fields=['status', 'updated_at'])
        notified = self._notify_students(test)
        return Response({"success": True, "status": test.status, "notified": notified})

    @action(detail=True, methods=['post'])
    def close(self, request, pk=None):
        test = self.get_object()
        test.status = OnlineTest.Status.CLOSED
        test.save(update_fields=['status', 'updated_at'])
        return Response({"success": True, "status": test.status})

    @action(detail=True, methods=['post'], url_path='assign-questions')
    def assign_questions(self, request, pk=None):
        """
        Assigns a list of bank Question IDs to this test.
        Payload: { "question_ids": [1, 2, 3] }
        """
        test = self.get_object()
        question_ids = request.data.get('question_ids', [])

        # Update the questions to point to this test
        count = Question.objects.filter(id__in=question_ids, school_id=test.school_id).update(test=test)

        return Response({"success": True, "status": f"Added {count} questions to {test.title}"})

    @action(detail=True, methods=['post'], url_path='remove-questions')
    def remove_questions(self, request, pk=None):
        """
        Removes questions from the test (sets test=None), returning them to the bank.
        """
        question_ids = request.data.get('question_ids', [])
        Question.objects.filter(id__in=question_ids, test=self.get_object()).update(test=None)
        return Response({"success": True, "status": "Questions returned to bank"})


class QuestionViewSet(SchoolScopedMixin, viewsets.ModelViewSet):
    serializer_class = QuestionSerializer
    permission_classes = [IsTeacherOrSchoolAdmin]

    # Enable Search and Filtering for the Question Bank
    filter_backends = [filters.SearchFilter]
    search_fields = ['text']

    # Add parsers to handle file uploads
    parser_classes = (JSONParser, MultiPartParser, FormParser)

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        queryset = Question.objects.filter(school_id=ctx.school_id).prefetch_related('options').order_by('-id')
        # Filter by Test if provided ?test_id=1
        test_id = self.request.query_params.get('test_id')
        if test_id:
            queryset = queryset.filter(test_id=test_id)
        subject_id = self.request.query_params.get('subject_id')
        if subject_id:
            queryset = queryset.filter(subject_id=subject_id)
        return queryset

    @action(detail=False, methods=['post'], url_path='bulk-upload')
    def bulk_upload(self, request):
        """
        Upload questions via CSV.
        Expected CSV Header: question_text, question_type, difficulty, marks, options, correct_answer
        ``options`` is pipe separated; ``correct_answer`` is the option text or its index.
        Optional form field ``test_id`` attaches the questions to a test.
        """
        ctx = AuthContext.from_request(request)
        file_obj = request.FILES.get('file')
        if not file_obj:
            return Response({"success": False, "error": "No file uploaded"}, status=status.HTTP_400_BAD_REQUEST)

        test = None
        test_id = request.data.get('test_id')
        if test_id:
            test = OnlineTest.objects.filter(id=test_id, school_id=ctx.school_id).first()
            if test is None:
                return Response({"success": False, "error": "Test not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            decoded_file = file_obj.read().decode('utf-8-sig')
            reader = csv.DictReader(io.StringIO(decoded_file))

            with transaction.atomic():
                created_count = 0
                for line_no, row in enumerate(reader, start=2):
                    created_count += self._create_from_row(ctx, test, row, line_no)

            return Response({"success": True, "status": f"Successfully uploaded {created_count} questions"},
                            status=status.HTTP_201_CREATED)

        except (ValueError, KeyError, UnicodeDecodeError) as e:
            logger.warning("Question bulk upload rejected: %s", e)
            return Response({"success": False, "error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

    def _create_from_row(self, ctx, test, row, line_no):
        q_type = (row.get('question_type') or 'objective').strip().lower()
        if q_type in ('mcq', 'objective'):
            q_type = Question.QuestionType.OBJECTIVE
        elif q_type in ('theory', 'essay'):
            q_type = Question.QuestionType.THEORY
        else:
            raise ValueError(f"Row {line_no}: unknown question_type '{q_type}'")

        # 1. Create Question
        question = Question.objects.create(
            school=ctx.school,
            test=test,
            subject=test.subject if test else None,
            text=row['question_text'],
            question_type=q_type,
            difficulty=(row.get('difficulty') or 'medium').strip().lower(),
            marks=int(row.get('marks') or 1),
        )

        # 2. Handle Options (for objective questions)
        if question.is_objective:
            raw_options = [opt.strip() for opt in (row.get('options') or '').split('|') if opt.strip()]
            correct_raw = (row.get('correct_answer') or '').strip()
            if correct_raw.isdigit():
                correct_index = int(correct_raw)
            else:
                lowered = [opt.lower() for opt in raw_options]
                correct_index = lowered.index(correct_raw.lower()) if correct_raw.lower() in lowered else None

            if len(raw_options) < 2 or correct_index is None or correct_index >= len(raw_options):
                raise ValueError(f"Row {line_no}: objective questions need options and a matching correct_answer")

            Option.objects.bulk_create([
                Option(question=question, text=text, position=index, is_correct=(index == correct_index))
                for index, text in enumerate(raw_options)
            ])
        return 1
