from django.contrib import admin

from .models import ExamAttempt, AnswerSubmission


class AnswerSubmissionInline(admin.TabularInline):
    model = AnswerSubmission
    fields = ('question', 'answer_text', 'grading_status', 'awarded_points', 'submitted_at')
    readonly_fields = ('submitted_at',)
    extra = 0


@admin.register(ExamAttempt)
class ExamAttemptAdmin(admin.ModelAdmin):
    list_display = ('student', 'exam', 'attempt_number', 'status', 'score', 'percentage', 'passed', 'timed_out')
    list_filter = ('status', 'timed_out', 'is_graded')
    search_fields = ('student__email', 'exam__title')
    inlines = [AnswerSubmissionInline]


admin.site.register(AnswerSubmission)
