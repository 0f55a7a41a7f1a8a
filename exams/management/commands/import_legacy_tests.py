import json
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from cores.models import School
from exams.config import parse_test_config, normalize_question
from exams.models import OnlineTest, Question, Option, Subject
from exams.serializers import resolve_classes

User = get_user_model()

LEGACY_STATUS = {'published': OnlineTest.Status.ACTIVE}


class Command(BaseCommand):
    help = 'Imports tests exported with their configuration in an "attachments" JSON blob'

    def add_arguments(self, parser):
        parser.add_argument('filename', type=str, help='JSON file holding a list of test records')
        parser.add_argument('--school', required=True, help='Code of the school receiving the tests')

    def handle(self, *args, **options):
        try:
            school = School.objects.get(code=options['school'])
        except School.DoesNotExist:
            raise CommandError(f"School {options['school']} not found")

        try:
            with open(options['filename'], encoding='utf-8') as fh:
                records = json.load(fh)
        except (OSError, ValueError) as e:
            raise CommandError(f"Could not read {options['filename']}: {e}")

        imported = 0
        for record in records:
            try:
                import_record(school, record)
            except (KeyError, ValueError, User.DoesNotExist) as e:
                self.stdout.write(self.style.WARNING(f"Skipped '{record.get('title', '?')}': {e}"))
                continue
            imported += 1

        self.stdout.write(self.style.SUCCESS(f"Imported {imported} of {len(records)} tests"))


@transaction.atomic
def import_record(school, record):
    config = parse_test_config(record.get('attachments'))
    teacher = User.objects.get(email__iexact=record['teacherEmail'], school=school)
    subject, _ = Subject.objects.get_or_create(school=school, name=record['subject'])

    available_from = parse_datetime(record.get('availableFrom') or '') or timezone.now()
    due_date = parse_datetime(record.get('dueDate') or '') or available_from + timedelta(days=7)
    status = record.get('status') or OnlineTest.Status.DRAFT

    test = OnlineTest.objects.create(
        school=school,
        subject=subject,
        teacher=teacher,
        title=record['title'],
        description=record.get('description') or '',
        instructions=record.get('instructions') or '',
        test_type=record.get('assignmentType') or OnlineTest.TestType.TEST,
        max_score=record.get('maxScore') or 100,
        passing_score=record.get('passingScore') or 60,
        status=LEGACY_STATUS.get(status, status),
        available_from=available_from,
        due_date=due_date,
        duration_minutes=config['duration'],
        allow_retake=bool(config['allowRetake']),
        show_results_immediately=bool(config['showResultsImmediately']),
        shuffle_questions=bool(config['shuffleQuestions']),
        shuffle_options=bool(config['shuffleOptions']),
    )
    test.classes.set(resolve_classes(school, record.get('classes') or []))

    for index, raw in enumerate(config['questions']):
        item = normalize_question(raw, index)
        question = Question.objects.create(
            school=school,
            test=test,
            subject=subject,
            text=item['question'],
            question_type=item['type'],
            marks=item['marks'],
            order=item['order'],
            explanation=item['explanation'],
            sample_answer=item['sampleAnswer'],
        )
        if question.is_objective and item['options']:
            Option.objects.bulk_create([
                Option(question=question, text=text, position=pos, is_correct=(pos == item['correctAnswer']))
                for pos, text in enumerate(item['options'])
            ])
    return test
