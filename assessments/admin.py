from django.contrib import admin

from .models import TestSubmission, SubmittedAnswer, Grade


class SubmittedAnswerInline(admin.TabularInline):
    model = SubmittedAnswer
    extra = 0


@admin.register(TestSubmission)
class TestSubmissionAdmin(admin.ModelAdmin):
    list_display = ('student', 'test', 'status', 'score', 'submitted_at', 'auto_submitted')
    list_filter = ('status', 'auto_submitted', 'school')
    inlines = [SubmittedAnswerInline]


admin.site.register(Grade)
