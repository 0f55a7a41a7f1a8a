from django.urls import path

from .views import (
    StudentTestListView, StudentTestDetailView, StartTestView, SubmitTestView, StudentTestResultView,
    StudentDashboardView, StudentGradeListView, PendingGradingListView, GradeTheoryView,
)

student_urlpatterns = [
    path('dashboard/', StudentDashboardView.as_view(), name='student-dashboard'),
    path('grades/', StudentGradeListView.as_view(), name='student-grades'),

    # Student Test Flow
    path('tests/', StudentTestListView.as_view(), name='student-tests'),
    path('tests/submit/', SubmitTestView.as_view(), name='student-test-submit'),
    path('tests/result/<int:test_id>/', StudentTestResultView.as_view(), name='student-test-result'),
    path('tests/<int:test_id>/', StudentTestDetailView.as_view(), name='student-test-detail'),
    path('tests/<int:test_id>/start/', StartTestView.as_view(), name='student-test-start'),
]

teacher_urlpatterns = [
    # --- Grading Module ---
    path('grading/pending/', PendingGradingListView.as_view(), name='grading-pending'),
    path('grading/<int:submission_id>/', GradeTheoryView.as_view(), name='grading-submit'),
]
