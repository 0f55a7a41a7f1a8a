from rest_framework import serializers

from exams.models import OnlineTest
from .models import TestSubmission, SubmittedAnswer, Grade
from .services import present_questions, result_statistics, result_url, results_visible


class SubjectSummarySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    code = serializers.CharField()


class MySubmissionSerializer(serializers.ModelSerializer):
    submittedAt = serializers.DateTimeField(source='submitted_at')
    maxScore = serializers.IntegerField(source='max_score')
    timeSpent = serializers.IntegerField(source='time_spent_seconds')
    autoSubmitted = serializers.BooleanField(source='auto_submitted')
    isLateSubmission = serializers.BooleanField(source='is_late')
    gradedAt = serializers.DateTimeField(source='graded_at')

    class Meta:
        model = TestSubmission
        fields = ['id', 'submittedAt', 'score', 'maxScore', 'status', 'feedback', 'timeSpent',
                  'autoSubmitted', 'isLateSubmission', 'gradedAt']


class StudentTestSerializer(serializers.ModelSerializer):
    """Test card shown in the student's test list."""
    assignmentType = serializers.CharField(source='test_type')
    maxScore = serializers.IntegerField(source='max_score')
    passingScore = serializers.IntegerField(source='passing_score')
    availableFrom = serializers.DateTimeField(source='available_from')
    dueDate = serializers.DateTimeField(source='due_date')
    createdAt = serializers.DateTimeField(source='created_at')
    subject = SubjectSummarySerializer()
    teacherName = serializers.CharField(source='teacher.full_name')
    testConfig = serializers.SerializerMethodField()
    questionCount = serializers.SerializerMethodField()
    mySubmission = serializers.SerializerMethodField()

    class Meta:
        model = OnlineTest
        fields = ['id', 'title', 'description', 'instructions', 'assignmentType', 'maxScore', 'passingScore',
                  'status', 'availableFrom', 'dueDate', 'createdAt', 'subject', 'teacherName', 'testConfig',
                  'questionCount', 'mySubmission']

    def get_testConfig(self, obj):
        return obj.config()

    def get_questionCount(self, obj):
        return obj.questions.count()

    def _latest(self, obj):
        student = self.context['request'].user
        return (obj.submissions.filter(student=student, submitted_at__isnull=False)
                .order_by('-submitted_at').first())

    def get_mySubmission(self, obj):
        submission = self._latest(obj)
        return MySubmissionSerializer(submission).data if submission else None


class StudentTestDetailSerializer(StudentTestSerializer):
    """Full definition for the take-test page. Answer keys are never included."""
    canAttempt = serializers.SerializerMethodField()
    resultUrl = serializers.SerializerMethodField()

    class Meta(StudentTestSerializer.Meta):
        fields = StudentTestSerializer.Meta.fields + ['canAttempt', 'resultUrl']

    def get_testConfig(self, obj):
        config = obj.config()
        config['questions'] = present_questions(obj, self.context.get('attempt'))
        return config

    def get_canAttempt(self, obj):
        return obj.allow_retake or self._latest(obj) is None

    def get_resultUrl(self, obj):
        return result_url(obj) if self._latest(obj) else None


class AttemptSerializer(serializers.ModelSerializer):
    """Returned when an attempt starts or resumes."""
    testId = serializers.IntegerField(source='test_id')
    startedAt = serializers.DateTimeField(source='started_at')
    durationMinutes = serializers.IntegerField(source='test.duration_minutes')
    timeRemainingSeconds = serializers.SerializerMethodField()
    questions = serializers.SerializerMethodField()

    class Meta:
        model = TestSubmission
        fields = ['id', 'testId', 'status', 'startedAt', 'durationMinutes', 'timeRemainingSeconds', 'questions']

    def get_timeRemainingSeconds(self, obj):
        return obj.time_remaining_seconds(self.context.get('now'))

    def get_questions(self, obj):
        return present_questions(obj.test, obj)


class SubmitTestSerializer(serializers.Serializer):
    testId = serializers.IntegerField()
    answers = serializers.DictField(child=serializers.JSONField(allow_null=True), required=False, default=dict)
    timeSpent = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    autoSubmit = serializers.BooleanField(required=False, default=False)


class AnswerDetailSerializer(serializers.ModelSerializer):
    questionId = serializers.IntegerField(source='question_id')
    question = serializers.CharField(source='question.text')
    type = serializers.CharField(source='question.question_type')
    marks = serializers.IntegerField(source='question.marks')
    studentAnswer = serializers.SerializerMethodField()
    correctAnswer = serializers.SerializerMethodField()
    isCorrect = serializers.BooleanField(source='is_correct', allow_null=True)
    scored = serializers.DecimalField(source='awarded_marks', max_digits=5, decimal_places=2, allow_null=True)
    explanation = serializers.CharField(source='question.explanation')
    teacherFeedback = serializers.CharField(source='grader_comment')
    needsGrading = serializers.SerializerMethodField()

    class Meta:
        model = SubmittedAnswer
        fields = ['questionId', 'question', 'type', 'marks', 'studentAnswer', 'correctAnswer', 'isCorrect',
                  'scored', 'explanation', 'teacherFeedback', 'needsGrading']

    def get_studentAnswer(self, obj):
        return obj.selected_option if obj.question.is_objective else obj.text_answer

    def get_correctAnswer(self, obj):
        return obj.question.correct_answer if obj.question.is_objective else None

    def get_needsGrading(self, obj):
        return not obj.question.is_objective and obj.awarded_marks is None


class TestResultSerializer(serializers.Serializer):
    """Composite result payload: test, submission, per-answer details, statistics."""

    def to_representation(self, submission):
        test = submission.test
        details = None
        if results_visible(submission):
            answers = submission.answers.select_related('question').prefetch_related('question__options')
            details = AnswerDetailSerializer(answers, many=True).data
        return {
            'test': {
                'id': test.pk,
                'title': test.title,
                'description': test.description,
                'assignmentType': test.test_type,
                'maxScore': test.max_score,
                'passingScore': test.passing_score,
                'dueDate': test.due_date,
                'subject': SubjectSummarySerializer(test.subject).data,
                'teacherName': test.teacher.full_name,
            },
            'submission': MySubmissionSerializer(submission).data,
            'passed': (submission.score >= test.passing_score) if submission.score is not None else None,
            'details': details,
            'statistics': result_statistics(submission),
        }


# --- Teacher side ---

class TheoryAnswerSerializer(serializers.ModelSerializer):
    question_text = serializers.CharField(source='question.text', read_only=True)
    marks = serializers.IntegerField(source='question.marks', read_only=True)
    sample_answer = serializers.CharField(source='question.sample_answer', read_only=True)

    class Meta:
        model = SubmittedAnswer
        fields = ['id', 'question', 'question_text', 'marks', 'sample_answer', 'text_answer',
                  'awarded_marks', 'grader_comment']


class PendingSubmissionSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    test_title = serializers.CharField(source='test.title', read_only=True)
    subject_name = serializers.CharField(source='test.subject.name', read_only=True)
    theory_answers = serializers.SerializerMethodField()

    class Meta:
        model = TestSubmission
        fields = ['id', 'test', 'test_title', 'subject_name', 'student', 'student_name', 'submitted_at',
                  'auto_submitted', 'is_late', 'objective_score', 'objective_max_score', 'theory_max_score',
                  'theory_answers']

    def get_theory_answers(self, obj):
        answers = obj.answers.select_related('question').filter(question__question_type='theory')
        return TheoryAnswerSerializer(answers, many=True).data


class GradeTheorySerializer(serializers.Serializer):
    theoryGrades = serializers.DictField(child=serializers.DecimalField(max_digits=5, decimal_places=2))
    feedback = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False, default=dict)


class GradeSerializer(serializers.ModelSerializer):
    subject_name = serializers.CharField(source='subject.name', read_only=True)

    class Meta:
        model = Grade
        fields = ['id', 'subject', 'subject_name', 'assessment_type', 'assessment_name', 'score', 'max_score',
                  'percentage', 'letter', 'term_name', 'academic_year', 'comments', 'created_at']
