"""
Server side of the online test flow: starting attempts, scoring
submissions, theory grading and the student-facing status filters.

Every function takes the caller's ``AuthContext`` explicitly.
"""
import logging
import random
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import OuterRef, Subquery
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from cores.models import Notification
from exams.models import OnlineTest
from users.models import StudentProfile
from .exceptions import (
    TestNotAvailable, RetakeNotAllowed, NoActiveAttempt, AlreadySubmitted,
    SubmissionDeadlinePassed, InvalidGrade,
)
from .models import TestSubmission, SubmittedAnswer, Grade

logger = logging.getLogger(__name__)

STATUS_FILTERS = (
    'all', 'available', 'upcoming', 'completed', 'pending', 'not-submitted',
    'draft', 'published', 'active', 'closed', 'cancelled',
)


def result_url(test):
    return f"/protected/students/tests/result/{test.pk}"


def grace_period():
    return timedelta(seconds=getattr(settings, 'TEST_SUBMISSION_GRACE_SECONDS', 60))


def submission_cutoff(attempt):
    return attempt.deadline + grace_period()


def student_class(ctx):
    profile = StudentProfile.objects.select_related('school_class').filter(user=ctx.user).first()
    return profile.school_class if profile else None


def finished_submissions(student, test):
    return TestSubmission.objects.filter(test=test, student=student, submitted_at__isnull=False)


def latest_submission(student, test):
    return finished_submissions(student, test).order_by('-submitted_at').first()


def open_attempt(student, test, lock=False):
    queryset = TestSubmission.objects.filter(test=test, student=student, submitted_at__isnull=True)
    if lock:
        queryset = queryset.select_for_update()
    return queryset.order_by('-started_at').first()


# --- Listing ---

def tests_for_student(ctx, school_class):
    """Tests assigned to the student's class, annotated with their latest finished submission."""
    latest = (TestSubmission.objects
              .filter(test=OuterRef('pk'), student=ctx.user, submitted_at__isnull=False)
              .order_by('-submitted_at'))
    return (OnlineTest.objects
            .filter(school_id=ctx.school_id, classes=school_class)
            .exclude(status=OnlineTest.Status.DRAFT)
            .annotate(my_status=Subquery(latest.values('status')[:1]))
            .select_related('subject', 'teacher')
            .order_by('due_date'))


def filter_tests_by_status(queryset, status, now=None):
    """
    Apply one of ``STATUS_FILTERS``. Date-window filters use the test columns;
    completed / pending / not-submitted use the caller's latest submission.
    """
    now = now or timezone.now()
    if status not in STATUS_FILTERS:
        raise ValidationError({'status': f"Unknown status '{status}'."})

    if status == 'all':
        return queryset
    if status == 'available':
        return queryset.filter(status__in=OnlineTest.OPEN_STATUSES, available_from__lte=now, due_date__gte=now)
    if status == 'upcoming':
        return queryset.filter(available_from__gt=now).exclude(status=OnlineTest.Status.CANCELLED)
    if status == 'completed':
        return queryset.filter(my_status=TestSubmission.Status.GRADED)
    if status == 'pending':
        return queryset.filter(my_status=TestSubmission.Status.SUBMITTED)
    if status == 'not-submitted':
        return queryset.filter(my_status__isnull=True)
    return queryset.filter(status=status)


def summarize_tests(queryset, now=None):
    now = now or timezone.now()
    summary = {'total': 0, 'available': 0, 'upcoming': 0, 'completed': 0, 'pending': 0, 'notSubmitted': 0}
    for row in queryset.values('status', 'available_from', 'due_date', 'my_status'):
        summary['total'] += 1
        if row['status'] in OnlineTest.OPEN_STATUSES and row['available_from'] <= now <= row['due_date']:
            summary['available'] += 1
        if row['available_from'] > now and row['status'] != OnlineTest.Status.CANCELLED:
            summary['upcoming'] += 1
        if row['my_status'] == TestSubmission.Status.GRADED:
            summary['completed'] += 1
        elif row['my_status'] == TestSubmission.Status.SUBMITTED:
            summary['pending'] += 1
        else:
            summary['notSubmitted'] += 1
    return summary


# --- Question presentation ---

def present_questions(test, attempt=None):
    """
    Questions as shown to a student: never includes the answer key.
    Options keep their original ``index``, which is what the student submits.
    Order is stable for a given attempt.
    """
    questions = list(test.questions.prefetch_related('options'))
    rng = random.Random(f"{test.pk}:{attempt.pk}") if attempt is not None else random.Random()

    if attempt is not None and attempt.question_order:
        position = {qid: i for i, qid in enumerate(attempt.question_order)}
        questions.sort(key=lambda q: position.get(q.pk, len(position)))
    elif test.shuffle_questions:
        rng.shuffle(questions)

    presented = []
    for number, question in enumerate(questions, start=1):
        options = None
        if question.is_objective:
            options = [{'index': index, 'text': option.text} for index, option in enumerate(question.options.all())]
            if test.shuffle_options:
                rng.shuffle(options)
        presented.append({
            'id': question.pk,
            'order': number,
            'type': question.question_type,
            'question': question.text,
            'marks': question.marks,
            'options': options,
        })
    return presented


# --- Attempts ---

def check_can_take(ctx, test, now):
    school_class = student_class(ctx)
    if not test.is_assigned_to(school_class):
        raise TestNotAvailable("This test is not assigned to your class")
    if not test.is_open:
        raise TestNotAvailable(f"This test is {test.status}")
    if test.available_from > now:
        raise TestNotAvailable("This test is not available yet")


def start_attempt(ctx, test, now=None):
    """
    Returns ``(attempt, created)``. An open attempt is resumed; one that ran
    past its deadline is closed as an empty auto-submission first. The
    student row is locked so concurrent starts share one open attempt.
    """
    now = now or timezone.now()
    check_can_take(ctx, test, now)

    with transaction.atomic():
        get_user_model().objects.select_for_update().filter(pk=ctx.user.pk).first()

        current = open_attempt(ctx.user, test, lock=True)
        if current is not None:
            if now <= submission_cutoff(current):
                return current, False
            logger.info("Expiring abandoned attempt %s for test %s", current.pk, test.pk)
            finalize_submission(current, {}, time_spent=test.duration_seconds, auto_submit=True, now=now)

        # Raised after commit so an expired attempt stays finalised
        retake_blocked = not test.allow_retake and finished_submissions(ctx.user, test).exists()
        if not retake_blocked:
            question_ids = list(test.questions.values_list('pk', flat=True))
            attempt = TestSubmission.objects.create(
                test=test,
                student=ctx.user,
                school_id=test.school_id,
                started_at=now,
                max_score=test.max_score,
            )
            if test.shuffle_questions:
                random.Random(f"{test.pk}:{attempt.pk}").shuffle(question_ids)
            attempt.question_order = question_ids
            attempt.save(update_fields=['question_order'])

    if retake_blocked:
        raise RetakeNotAllowed(redirect=result_url(test))
    return attempt, True


def submit_attempt(ctx, test, answers, time_spent=None, auto_submit=False, now=None):
    now = now or timezone.now()
    with transaction.atomic():
        attempt = open_attempt(ctx.user, test, lock=True)
        if attempt is None:
            if finished_submissions(ctx.user, test).exists():
                raise AlreadySubmitted()
            raise NoActiveAttempt()

        if now > submission_cutoff(attempt):
            logger.warning("Rejected late submission for attempt %s (deadline %s, received %s)",
                           attempt.pk, attempt.deadline.isoformat(), now.isoformat())
            raise SubmissionDeadlinePassed()

        finalize_submission(attempt, answers, time_spent=time_spent, auto_submit=auto_submit, now=now)

    logger.info("%s test %s (attempt %s, status %s)",
                "Auto-submitted" if auto_submit else "Submitted", test.pk, attempt.pk, attempt.status)
    return attempt


def _option_index(raw):
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def finalize_submission(attempt, answers, time_spent=None, auto_submit=False, now=None):
    """Score objective answers, store every answer and close the attempt. Call inside a transaction."""
    now = now or timezone.now()
    test = attempt.test
    answers = {str(key): value for key, value in (answers or {}).items()}

    objective_score = Decimal(0)
    objective_max = 0
    theory_max = 0
    rows = []

    for question in test.questions.prefetch_related('options'):
        raw = answers.get(str(question.pk))
        if question.is_objective:
            objective_max += question.marks
            selected = _option_index(raw)
            is_correct = selected is not None and selected == question.correct_answer
            if is_correct:
                objective_score += question.marks
            rows.append(SubmittedAnswer(
                submission=attempt,
                question=question,
                selected_option=selected,
                is_correct=is_correct,
                awarded_marks=question.marks if is_correct else 0,
            ))
        else:
            theory_max += question.marks
            text = str(raw).strip() if raw is not None else ''
            rows.append(SubmittedAnswer(submission=attempt, question=question, text_answer=text or None))

    SubmittedAnswer.objects.bulk_create(rows)

    if not isinstance(time_spent, int) or isinstance(time_spent, bool) or time_spent < 0:
        time_spent = max(0, int((now - attempt.started_at).total_seconds()))

    needs_manual_grading = theory_max > 0
    attempt.submitted_at = now
    attempt.time_spent_seconds = time_spent
    attempt.auto_submitted = bool(auto_submit)
    attempt.is_late = now > test.due_date
    attempt.objective_score = objective_score
    attempt.objective_max_score = objective_max
    attempt.theory_max_score = theory_max
    attempt.max_score = test.max_score
    if needs_manual_grading:
        attempt.status = TestSubmission.Status.SUBMITTED
        attempt.score = None
    else:
        attempt.status = TestSubmission.Status.GRADED
        attempt.score = objective_score
        attempt.graded_at = now
    attempt.save()

    student = attempt.student
    if not needs_manual_grading:
        record_grade(attempt, teacher=test.teacher, now=now)
        Notification.send(
            student,
            title='Test Submitted',
            content=f"Your {test.title} has been submitted and graded. Score: {objective_score}/{test.max_score}",
            type=Notification.Type.SUCCESS,
            action_url=result_url(test),
            action_text='View Result',
        )

    verb = 'auto-submitted' if auto_submit else 'submitted'
    Notification.send(
        test.teacher,
        title='Test Submitted - Grading Required' if needs_manual_grading else 'Test Completed',
        content=f"{student.full_name} {verb} {test.title}{'. Manual grading required.' if needs_manual_grading else ''}",
        type=Notification.Type.WARNING if needs_manual_grading else Notification.Type.INFO,
        action_url=f"/protected/teacher/subject/online-tests/grade/{test.pk}" if needs_manual_grading else None,
        action_text='Grade Now' if needs_manual_grading else None,
    )
    return attempt


def record_grade(submission, teacher, comments='', now=None):
    now = now or timezone.now()
    test = submission.test
    score = submission.score or Decimal(0)
    percentage = (Decimal(score) / test.max_score * 100) if test.max_score else Decimal(0)
    percentage = percentage.quantize(Decimal('0.01'))
    grade, _ = Grade.objects.update_or_create(
        submission=submission,
        defaults={
            'student': submission.student,
            'subject': test.subject,
            'school_id': submission.school_id,
            'teacher': teacher,
            'assessment_type': test.test_type,
            'assessment_name': test.title,
            'score': score,
            'max_score': test.max_score,
            'percentage': percentage,
            'letter': Grade.letter_for(percentage),
            'academic_year': str(now.year),
            'comments': comments,
        },
    )
    return grade


# --- Grading ---

def submissions_awaiting_grading(ctx, test_id=None):
    queryset = (TestSubmission.objects
                .filter(school_id=ctx.school_id, status=TestSubmission.Status.SUBMITTED)
                .select_related('test', 'student', 'test__subject'))
    if ctx.role == 'teacher':
        queryset = queryset.filter(test__teacher=ctx.user)
    if test_id:
        queryset = queryset.filter(test_id=test_id)
    return queryset.order_by('-submitted_at')


def grade_theory(ctx, submission, theory_grades, feedback=None, now=None):
    """
    Award marks for every theory answer of ``submission``.
    ``theory_grades`` and ``feedback`` are keyed by question id; ``feedback['general']``
    is the overall comment.
    """
    now = now or timezone.now()
    feedback = {str(k): v for k, v in (feedback or {}).items()}
    theory_grades = {str(k): v for k, v in (theory_grades or {}).items()}

    if submission.status != TestSubmission.Status.SUBMITTED:
        raise InvalidGrade("This submission is not awaiting grading")

    with transaction.atomic():
        theory_answers = [a for a in submission.answers.select_related('question').select_for_update()
                          if not a.question.is_objective]
        missing = [str(a.question_id) for a in theory_answers if str(a.question_id) not in theory_grades]
        if missing:
            raise InvalidGrade(f"Missing grades for questions: {', '.join(missing)}")

        theory_total = Decimal(0)
        for answer in theory_answers:
            key = str(answer.question_id)
            try:
                marks = Decimal(str(theory_grades[key]))
            except InvalidOperation:
                raise InvalidGrade(f"Marks for question {key} must be a number")
            if marks < 0 or marks > answer.question.marks:
                raise InvalidGrade(f"Marks for question {key} must be between 0 and {answer.question.marks}")
            answer.awarded_marks = marks
            answer.grader_comment = feedback.get(key, '')
            theory_total += marks
        SubmittedAnswer.objects.bulk_update(theory_answers, ['awarded_marks', 'grader_comment'])

        submission.score = submission.objective_score + theory_total
        submission.status = TestSubmission.Status.GRADED
        submission.feedback = feedback.get('general', '')
        submission.graded_by = ctx.user
        submission.graded_at = now
        submission.save()

        grade = record_grade(submission, teacher=ctx.user, comments=submission.feedback, now=now)

    test = submission.test
    Notification.send(
        submission.student,
        title='Test Graded',
        content=(f'Your {test.test_type} "{test.title}" has been graded. '
                 f'Score: {submission.score}/{test.max_score} ({round(grade.percentage)}%)'),
        type=Notification.Type.SUCCESS,
        action_url=result_url(test),
        action_text='View Result',
    )
    logger.info("Graded submission %s: %s/%s", submission.pk, submission.score, test.max_score)
    return submission, grade


# --- Results ---

def result_statistics(submission):
    answers = list(submission.answers.select_related('question'))
    objective = [a for a in answers if a.question.is_objective]
    correct = sum(1 for a in objective if a.is_correct)
    return {
        'totalQuestions': len(answers),
        'answeredQuestions': sum(1 for a in answers if a.is_answered),
        'correctAnswers': correct,
        'incorrectAnswers': len(objective) - correct,
        'objectiveScore': float(submission.objective_score),
        'objectiveMaxScore': submission.objective_max_score,
        'theoryMaxScore': submission.theory_max_score,
    }


def results_visible(submission):
    return submission.test.show_results_immediately or submission.status == TestSubmission.Status.GRADED
