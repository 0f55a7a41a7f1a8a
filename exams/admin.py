from django.contrib import admin

# Register your models here.
from .models import OnlineTest, Question, Option, Subject


class OptionInline(admin.TabularInline):
    model = Option
    extra = 0


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('text', 'question_type', 'marks', 'test')
    list_filter = ('question_type', 'school')
    inlines = [OptionInline]


@admin.register(OnlineTest)
class OnlineTestAdmin(admin.ModelAdmin):
    list_display = ('title', 'subject', 'teacher', 'status', 'due_date')
    list_filter = ('status', 'test_type', 'school')


admin.site.register(Subject)
