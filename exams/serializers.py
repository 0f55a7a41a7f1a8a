# schoolhub_platform/exams/serializers.py
from django.db import transaction
from rest_framework import serializers

from cores.models import SchoolClass
from .models import OnlineTest, Question, Option, Subject


# --- Helper Serializers ---

class OptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Option
        fields = ['id', 'text', 'position', 'is_correct']


def resolve_classes(school, names):
    """Map class names to SchoolClass rows of ``school``, creating missing ones."""
    return [SchoolClass.objects.get_or_create(school=school, name=name.strip())[0]
            for name in names if name and name.strip()]


class SubjectSerializer(serializers.ModelSerializer):
    classes = serializers.ListField(child=serializers.CharField(), required=False, write_only=True)

    class Meta:
        model = Subject
        fields = ['id', 'name', 'code', 'teachers', 'classes']

    def validate_teachers(self, value):
        school = self.context['school']
        for teacher in value:
            if teacher.school_id != school.pk or teacher.role != 'teacher':
                raise serializers.ValidationError(f"{teacher.email} is not a teacher of this school.")
        return value

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['classes'] = [c.name for c in instance.classes.all()]
        return data

    def create(self, validated_data):
        class_names = validated_data.pop('classes', [])
        teachers = validated_data.pop('teachers', [])
        school = self.context['school']
        subject = Subject.objects.create(school=school, **validated_data)
        subject.teachers.set(teachers)
        subject.classes.set(resolve_classes(school, class_names))
        return subject

    def update(self, instance, validated_data):
        class_names = validated_data.pop('classes', None)
        instance = super().update(instance, validated_data)
        if class_names is not None:
            instance.classes.set(resolve_classes(instance.school, class_names))
        return instance


# --- Question Serializers ---

class QuestionSerializer(serializers.ModelSerializer):
    # Map frontend 'question_text' to backend 'text'
    question_text = serializers.CharField(source='text')
    # Frontend sends options as an array of strings plus the index of the right one
    options = serializers.ListField(child=serializers.CharField(), required=False, write_only=True)
    correct_answer = serializers.IntegerField(required=False, allow_null=True, write_only=True, min_value=0)
    options_data = OptionSerializer(source='options', many=True, read_only=True)
    correct_answer_index = serializers.IntegerField(source='correct_answer', read_only=True)

    # Read-only field to show test title
    test_title = serializers.CharField(source='test.title', read_only=True, default=None)

    class Meta:
        model = Question
        fields = [
            'id', 'test', 'test_title', 'subject', 'question_text', 'question_type',
            'difficulty', 'marks', 'order', 'explanation', 'sample_answer',
            'options', 'correct_answer', 'options_data', 'correct_answer_index',
        ]

    def validate(self, attrs):
        q_type = attrs.get('question_type', getattr(self.instance, 'question_type', Question.QuestionType.OBJECTIVE))
        options = attrs.get('options')
        if q_type == Question.QuestionType.OBJECTIVE:
            if options is None and self.instance is None:
                raise serializers.ValidationError({'options': "Objective questions need options."})
            if options is not None:
                if len(options) < 2:
                    raise serializers.ValidationError({'options': "Provide at least two options."})
                correct = attrs.get('correct_answer')
                if correct is None or correct >= len(options):
                    raise serializers.ValidationError({'correct_answer': "Must be the index of one of the options."})
        school = self.context.get('school')
        for field in ('test', 'subject'):
            related = attrs.get(field)
            if related is not None and school is not None and related.school_id != school.pk:
                raise serializers.ValidationError({field: f"Unknown {field}."})
        return attrs

    def _write_options(self, question, options, correct):
        question.options.all().delete()
        Option.objects.bulk_create([
            Option(question=question, text=text, position=index, is_correct=(index == correct))
            for index, text in enumerate(options)
        ])

    @transaction.atomic
    def create(self, validated_data):
        options = validated_data.pop('options', [])
        correct = validated_data.pop('correct_answer', None)
        validated_data.setdefault('school', self.context['school'])
        question = Question.objects.create(**validated_data)
        if question.is_objective:
            self._write_options(question, options, correct)
        return question

    @transaction.atomic
    def update(self, instance, validated_data):
        options = validated_data.pop('options', None)
        correct = validated_data.pop('correct_answer', None)
        instance = super().update(instance, validated_data)
        if not instance.is_objective:
            instance.options.all().delete()
        elif options is not None:
            self._write_options(instance, options, correct)
        return instance


class InlineQuestionSerializer(serializers.Serializer):
    """Question payload accepted inside a test create request."""
    type = serializers.ChoiceField(choices=Question.QuestionType.choices, default=Question.QuestionType.OBJECTIVE)
    question = serializers.CharField()
    marks = serializers.IntegerField(min_value=1, default=1)
    options = serializers.ListField(child=serializers.CharField(), required=False, allow_null=True)
    correctAnswer = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    explanation = serializers.CharField(required=False, allow_blank=True, default='')
    sampleAnswer = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['type'] == Question.QuestionType.OBJECTIVE:
            options = attrs.get('options') or []
            correct = attrs.get('correctAnswer')
            if len(options) < 2 or correct is None or correct >= len(options):
                raise serializers.ValidationError("Objective questions need options and a valid correctAnswer index.")
        return attrs


# --- Test Serializers ---

class OnlineTestSerializer(serializers.ModelSerializer):
    subject_name = serializers.CharField(source='subject.name', read_only=True)
    teacher_name = serializers.CharField(source='teacher.full_name', read_only=True)
    classes = serializers.ListField(child=serializers.CharField(), required=False, write_only=True)
    questions = InlineQuestionSerializer(many=True, write_only=True, required=False)

    # Read-only counts
    total_questions = serializers.IntegerField(source='questions.count', read_only=True)

    class Meta:
        model = OnlineTest
        fields = [
            'id', 'title', 'description', 'instructions', 'test_type', 'subject', 'subject_name',
            'teacher_name', 'classes', 'max_score', 'passing_score', 'status', 'available_from',
            'due_date', 'duration_minutes', 'allow_retake', 'show_results_immediately',
            'shuffle_questions', 'shuffle_options', 'total_questions', 'questions', 'created_at',
        ]
        read_only_fields = ['created_at']

    def validate_subject(self, value):
        if value.school_id != self.context['school'].pk:
            raise serializers.ValidationError("Unknown subject.")
        return value

    def validate_duration_minutes(self, value):
        if value < 1:
            raise serializers.ValidationError("Duration must be at least one minute.")
        return value

    def validate(self, attrs):
        available_from = attrs.get('available_from', getattr(self.instance, 'available_from', None))
        due_date = attrs.get('due_date', getattr(self.instance, 'due_date', None))
        if available_from and due_date and due_date <= available_from:
            raise serializers.ValidationError({'due_date': "Due date must be after the availability start."})
        max_score = attrs.get('max_score', getattr(self.instance, 'max_score', 100))
        passing_score = attrs.get('passing_score', getattr(self.instance, 'passing_score', 60))
        if passing_score > max_score:
            raise serializers.ValidationError({'passing_score': "Passing score cannot exceed the max score."})
        return attrs

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['classes'] = [c.name for c in instance.classes.all()]
        return data

    @transaction.atomic
    def create(self, validated_data):
        school = self.context['school']
        class_names = validated_data.pop('classes', [])
        questions = validated_data.pop('questions', [])

        test = OnlineTest.objects.create(school=school, teacher=self.context['request'].user, **validated_data)
        test.classes.set(resolve_classes(school, class_names))

        for index, item in enumerate(questions):
            question = Question.objects.create(
                school=school,
                test=test,
                subject=test.subject,
                text=item['question'],
                question_type=item['type'],
                marks=item['marks'],
                order=index + 1,
                explanation=item.get('explanation', ''),
                sample_answer=item.get('sampleAnswer', ''),
            )
            if question.is_objective:
                Option.objects.bulk_create([
                    Option(question=question, text=text, position=pos, is_correct=(pos == item['correctAnswer']))
                    for pos, text in enumerate(item['options'])
                ])
        return test

    def update(self, instance, validated_data):
        class_names = validated_data.pop('classes', None)
        validated_data.pop('questions', None)
        instance = super().update(instance, validated_data)
        if class_names is not None:
            instance.classes.set(resolve_classes(instance.school, class_names))
        return instance


class OnlineTestDetailSerializer(OnlineTestSerializer):
    """Teacher view of a test, including the answer key."""
    question_list = QuestionSerializer(source='questions', many=True, read_only=True)

    class Meta(OnlineTestSerializer.Meta):
        fields = OnlineTestSerializer.Meta.fields + ['question_list']
