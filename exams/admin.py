from django.contrib import admin

from .models import Exam, Question, ExamCategory


class QuestionInline(admin.TabularInline):
    model = Question
    fields = ('order_number', 'text', 'question_type', 'points', 'correct_answer')
    extra = 0


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ('title', 'is_active', 'duration_minutes', 'available_from', 'available_until', 'max_attempts')
    list_filter = ('is_active', 'category')
    search_fields = ('title',)
    inlines = [QuestionInline]


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'exam', 'order_number', 'question_type', 'difficulty', 'points')
    list_filter = ('question_type', 'difficulty')
    search_fields = ('text', 'category')


admin.site.register(ExamCategory)
