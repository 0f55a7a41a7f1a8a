# schoolhub_platform/exams/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone


class Subject(models.Model):
    school = models.ForeignKey('cores.School', on_delete=models.CASCADE, related_name='subjects')
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20, blank=True)
    teachers = models.ManyToManyField(settings.AUTH_USER_MODEL, related_name='subjects_taught', blank=True)
    classes = models.ManyToManyField('cores.SchoolClass', related_name='subjects', blank=True)

    class Meta:
        unique_together = ('school', 'name')
        ordering = ['name']

    def __str__(self):
        return self.name


class OnlineTest(models.Model):
    class TestType(models.TextChoices):
        TEST = "test", "Test"
        QUIZ = "quiz", "Quiz"
        EXAM = "exam", "Exam"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        ACTIVE = "active", "Active"
        CLOSED = "closed", "Closed"
        CANCELLED = "cancelled", "Cancelled"

    OPEN_STATUSES = (Status.PUBLISHED, Status.ACTIVE)

    school = models.ForeignKey('cores.School', on_delete=models.CASCADE, related_name='tests')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='tests')
    teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='tests_created')

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    instructions = models.TextField(blank=True)
    test_type = models.CharField(max_length=10, choices=TestType.choices, default=TestType.TEST)
    classes = models.ManyToManyField('cores.SchoolClass', related_name='tests', blank=True)

    max_score = models.PositiveIntegerField(default=100)
    passing_score = models.PositiveIntegerField(default=60)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    available_from = models.DateTimeField(default=timezone.now)
    due_date = models.DateTimeField()

    # --- Attempt configuration ---
    duration_minutes = models.PositiveIntegerField(default=60)
    allow_retake = models.BooleanField(default=False)
    show_results_immediately = models.BooleanField(default=True)
    shuffle_questions = models.BooleanField(default=False)
    shuffle_options = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['due_date']

    def __str__(self):
        return self.title

    @property
    def is_open(self):
        return self.status in self.OPEN_STATUSES

    @property
    def duration_seconds(self):
        return self.duration_minutes * 60

    def is_assigned_to(self, school_class):
        return school_class is not None and self.classes.filter(pk=school_class.pk).exists()

    def config(self):
        return {
            'duration': self.duration_minutes,
            'allowRetake': self.allow_retake,
            'showResultsImmediately': self.show_results_immediately,
            'shuffleQuestions': self.shuffle_questions,
            'shuffleOptions': self.shuffle_options,
        }


class Question(models.Model):
    class QuestionType(models.TextChoices):
        OBJECTIVE = "objective", "Objective (Multiple Choice)"
        THEORY = "theory", "Theory (Manually Graded)"

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    school = models.ForeignKey('cores.School', on_delete=models.CASCADE, related_name='questions')
    # Nullable test: allows questions to sit in the bank without being assigned
    test = models.ForeignKey(OnlineTest, related_name='questions', on_delete=models.SET_NULL, null=True, blank=True)
    subject = models.ForeignKey(Subject, related_name='questions', on_delete=models.SET_NULL, null=True, blank=True)

    text = models.TextField()
    question_type = models.CharField(max_length=20, choices=QuestionType.choices, default=QuestionType.OBJECTIVE)
    difficulty = models.CharField(max_length=20, choices=Difficulty.choices, default=Difficulty.MEDIUM)
    marks = models.PositiveIntegerField(default=1)
    order = models.PositiveIntegerField(default=0)

    explanation = models.TextField(blank=True)
    sample_answer = models.TextField(blank=True)

    class Meta:
        ordering = ['order', 'id']

    def __str__(self):
        return f"{self.text[:50]}..."

    @property
    def is_objective(self):
        return self.question_type == self.QuestionType.OBJECTIVE

    @property
    def correct_answer(self):
        """Index of the correct option, or None for theory questions."""
        for index, option in enumerate(self.options.all()):
            if option.is_correct:
                return index
        return None


class Option(models.Model):
    question = models.ForeignKey(Question, related_name='options', on_delete=models.CASCADE)
    text = models.CharField(max_length=255)
    position = models.PositiveIntegerField(default=0)
    is_correct = models.BooleanField(default=False)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return self.text
