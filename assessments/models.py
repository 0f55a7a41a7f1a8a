# assessments/models.py
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone

from exams.models import OnlineTest, Question


class TestSubmission(models.Model):
    """
    Tracks a student's attempt at a test. Created when the attempt starts;
    ``submitted_at`` is set exactly once when the answers land.
    """

    class Status(models.TextChoices):
        IN_PROGRESS = "in_progress", "In Progress"
        SUBMITTED = "submitted", "Submitted (Awaiting Grading)"
        GRADED = "graded", "Graded"

    test = models.ForeignKey(OnlineTest, on_delete=models.CASCADE, related_name='submissions')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='test_submissions')
    school = models.ForeignKey('cores.School', on_delete=models.CASCADE, related_name='test_submissions')

    started_at = models.DateTimeField(default=timezone.now)
    submitted_at = models.DateTimeField(null=True, blank=True)
    time_spent_seconds = models.PositiveIntegerField(null=True, blank=True)
    auto_submitted = models.BooleanField(default=False)
    is_late = models.BooleanField(default=False)
    # Question ids in the order they were shown to the student
    question_order = models.JSONField(default=list, blank=True)

    objective_score = models.DecimalField(max_digits=7, decimal_places=2, default=0)
    objective_max_score = models.PositiveIntegerField(default=0)
    theory_max_score = models.PositiveIntegerField(default=0)
    # Null until every answer is graded
    score = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    max_score = models.PositiveIntegerField(default=0)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.IN_PROGRESS)
    feedback = models.TextField(blank=True)
    graded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='graded_submissions')
    graded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-started_at']

    def __str__(self):
        return f"{self.student} - {self.test.title}"

    @property
    def is_open(self):
        return self.submitted_at is None

    @property
    def deadline(self):
        return self.started_at + timedelta(minutes=self.test.duration_minutes)

    @property
    def needs_manual_grading(self):
        return self.status == self.Status.SUBMITTED

    def time_remaining_seconds(self, now=None):
        if not self.is_open:
            return 0
        now = now or timezone.now()
        return max(0, int((self.deadline - now).total_seconds()))


class SubmittedAnswer(models.Model):
    submission = models.ForeignKey(TestSubmission, related_name='answers', on_delete=models.CASCADE)
    question = models.ForeignKey(Question, on_delete=models.CASCADE)

    # Objective: original index of the chosen option
    selected_option = models.PositiveIntegerField(null=True, blank=True)
    # Theory
    text_answer = models.TextField(null=True, blank=True)

    # Null for theory answers until a teacher grades them
    is_correct = models.BooleanField(null=True)
    awarded_marks = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    grader_comment = models.TextField(blank=True)

    class Meta:
        unique_together = ('submission', 'question')

    @property
    def is_answered(self):
        return self.selected_option is not None or bool(self.text_answer)


class Grade(models.Model):
    """Grade-book row written when a submission is fully graded."""
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='grades')
    subject = models.ForeignKey('exams.Subject', on_delete=models.CASCADE, related_name='grades')
    school = models.ForeignKey('cores.School', on_delete=models.CASCADE, related_name='grades')
    teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True,
                                related_name='grades_given')
    submission = models.OneToOneField(TestSubmission, on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='grade')

    assessment_type = models.CharField(max_length=20)
    assessment_name = models.CharField(max_length=255)
    score = models.DecimalField(max_digits=7, decimal_places=2)
    max_score = models.PositiveIntegerField()
    percentage = models.DecimalField(max_digits=5, decimal_places=2)
    letter = models.CharField(max_length=2)
    term_name = models.CharField(max_length=50, default="Current Term")
    academic_year = models.CharField(max_length=9)
    comments = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.student} - {self.assessment_name}: {self.letter}"

    @staticmethod
    def letter_for(percentage):
        if percentage >= 90:
            return 'A'
        if percentage >= 80:
            return 'B'
        if percentage >= 70:
            return 'C'
        if percentage >= 60:
            return 'D'
        return 'F'
