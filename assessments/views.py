from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import generics, status, views
from rest_framework.response import Response

from cores.context import AuthContext
from cores.permissions import IsStudent, IsTeacherOrSchoolAdmin
from exams.models import OnlineTest
from . import services
from .models import TestSubmission, Grade
from .serializers import (
    StudentTestSerializer, StudentTestDetailSerializer, AttemptSerializer, SubmitTestSerializer,
    TestResultSerializer, PendingSubmissionSerializer, GradeTheorySerializer, GradeSerializer,
)


# --- STUDENT VIEWS ---

class StudentTestListView(views.APIView):
    """
    Tests assigned to the student's class.
    ?status=all|available|upcoming|completed|pending|not-submitted|draft|published|active|closed|cancelled
    """
    permission_classes = [IsStudent]

    def get(self, request):
        ctx = AuthContext.from_request(request)
        school_class = services.student_class(ctx)
        if school_class is None:
            return Response({
                "success": True,
                "data": {"tests": [], "summary": None, "message": "Student class not found"},
            })

        now = timezone.now()
        base = services.tests_for_student(ctx, school_class)
        tests = services.filter_tests_by_status(base, request.query_params.get('status', 'all'), now)

        return Response({
            "success": True,
            "data": {
                "tests": StudentTestSerializer(tests, many=True, context={'request': request}).data,
                "summary": services.summarize_tests(base, now),
                "studentClass": school_class.name,
            },
        })


class StudentTestDetailView(views.APIView):
    permission_classes = [IsStudent]

    def get(self, request, test_id):
        ctx = AuthContext.from_request(request)
        test = get_object_or_404(OnlineTest, id=test_id, school_id=ctx.school_id)
        if not test.is_assigned_to(services.student_class(ctx)):
            return Response({"success": False, "error": "This test is not assigned to your class"},
                            status=status.HTTP_403_FORBIDDEN)

        context = {'request': request, 'attempt': services.open_attempt(ctx.user, test)}
        return Response({
            "success": True,
            "data": {"test": StudentTestDetailSerializer(test, context=context).data},
        })


class StartTestView(views.APIView):
    """
    Student starts (or resumes) an attempt.
    Returns the presented questions and the seconds left on the server clock.
    """
    permission_classes = [IsStudent]

    def post(self, request, test_id):
        ctx = AuthContext.from_request(request)
        test = get_object_or_404(OnlineTest, id=test_id, school_id=ctx.school_id)
        now = timezone.now()
        attempt, created = services.start_attempt(ctx, test, now=now)
        return Response(
            {"success": True, "data": {"attempt": AttemptSerializer(attempt, context={'now': now}).data}},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class SubmitTestView(views.APIView):
    """
    Student submits answers.
    Payload: { "testId": 1, "answers": {"<questionId>": <optionIndex or text>}, "timeSpent": 120, "autoSubmit": false }
    Objective answers are scored immediately; theory answers wait for the teacher.
    """
    permission_classes = [IsStudent]

    def post(self, request):
        ctx = AuthContext.from_request(request)
        serializer = SubmitTestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        test = get_object_or_404(OnlineTest, id=data['testId'], school_id=ctx.school_id)
        submission = services.submit_attempt(
            ctx, test,
            answers=data['answers'],
            time_spent=data.get('timeSpent'),
            auto_submit=data['autoSubmit'],
        )

        show_results = test.show_results_immediately and not submission.needs_manual_grading
        result = TestResultSerializer(submission).data
        return Response({
            "success": True,
            "message": "Test submitted successfully",
            "submission": {
                "id": submission.pk,
                "objectiveScore": submission.objective_score,
                "objectiveMaxScore": submission.objective_max_score,
                "theoryMaxScore": submission.theory_max_score,
                "needsManualGrading": submission.needs_manual_grading,
                "status": submission.status,
                "showResults": test.show_results_immediately,
                "gradedAnswers": result['details'] if show_results else None,
                "resultUrl": services.result_url(test),
            },
        })


class StudentTestResultView(views.APIView):
    """Latest finished submission of the student for a test."""
    permission_classes = [IsStudent]

    def get(self, request, test_id):
        ctx = AuthContext.from_request(request)
        test = get_object_or_404(OnlineTest, id=test_id, school_id=ctx.school_id)
        submission = services.latest_submission(ctx.user, test)
        if submission is None:
            return Response({"success": False, "error": "No submission found for this test"},
                            status=status.HTTP_404_NOT_FOUND)
        return Response({"success": True, "data": TestResultSerializer(submission).data})


class StudentDashboardView(views.APIView):
    permission_classes = [IsStudent]

    def get(self, request):
        ctx = AuthContext.from_request(request)
        school_class = services.student_class(ctx)
        summary = None
        if school_class is not None:
            summary = services.summarize_tests(services.tests_for_student(ctx, school_class))
        grades = Grade.objects.filter(student=ctx.user).select_related('subject')[:5]
        unread = ctx.user.notifications.filter(is_read=False).count()
        return Response({
            "success": True,
            "data": {
                "studentClass": school_class.name if school_class else None,
                "tests": summary,
                "recentGrades": GradeSerializer(grades, many=True).data,
                "unreadNotifications": unread,
            },
        })


class StudentGradeListView(generics.ListAPIView):
    permission_classes = [IsStudent]
    serializer_class = GradeSerializer

    def get_queryset(self):
        return Grade.objects.filter(student=self.request.user).select_related('subject')


# --- TEACHER VIEWS ---

class PendingGradingListView(generics.ListAPIView):
    """Submissions with theory answers waiting for manual grading. ?test_id= narrows to one test."""
    permission_classes = [IsTeacherOrSchoolAdmin]
    serializer_class = PendingSubmissionSerializer

    def get_queryset(self):
        ctx = AuthContext.from_request(self.request)
        return services.submissions_awaiting_grading(ctx, self.request.query_params.get('test_id'))


class GradeTheoryView(views.APIView):
    """
    Teacher submits marks for the theory answers of a submission.
    Payload: { "theoryGrades": {"<questionId>": 4}, "feedback": {"<questionId>": "...", "general": "..."} }
    """
    permission_classes = [IsTeacherOrSchoolAdmin]

    def post(self, request, submission_id):
        ctx = AuthContext.from_request(request)
        queryset = TestSubmission.objects.filter(school_id=ctx.school_id).select_related('test')
        if ctx.role == 'teacher':
            queryset = queryset.filter(test__teacher=ctx.user)
        submission = get_object_or_404(queryset, id=submission_id)

        serializer = GradeTheorySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        submission, grade = services.grade_theory(
            ctx, submission,
            serializer.validated_data['theoryGrades'],
            serializer.validated_data['feedback'],
        )
        return Response({
            "success": True,
            "message": "Theory questions graded successfully",
            "submission": {
                "id": submission.pk,
                "finalScore": submission.score,
                "percentage": round(grade.percentage),
                "grade": grade.letter,
            },
        })
