# exams/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Sum

class ExamCategory(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)

    class Meta:
        verbose_name_plural = "exam categories"

    def __str__(self):
        return self.name

def default_max_attempts():
    return settings.EXAM_DEFAULT_MAX_ATTEMPTS

class Exam(models.Model):
    title = models.CharField(max_length=255)
    category = models.ForeignKey(ExamCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='exams')
    description = models.TextField(blank=True)

    duration_minutes = models.PositiveIntegerField()
    # Scheduling window; either bound may be open
    available_from = models.DateTimeField(null=True, blank=True)
    available_until = models.DateTimeField(null=True, blank=True)

    max_attempts = models.PositiveIntegerField(default=default_max_attempts)
    pass_mark_percentage = models.PositiveIntegerField(default=50)
    show_correct_answers = models.BooleanField(default=False)

    is_active = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.title

    @property
    def total_questions(self):
        return self.questions.count()

    @property
    def total_points(self):
        return self.questions.aggregate(total=Sum('points'))['total'] or Decimal('0')

class Question(models.Model):
    class QuestionType(models.TextChoices):
        SINGLE_CHOICE = "single_choice", "Single Choice"
        MULTIPLE_CHOICE = "multiple_choice", "Multiple Choice"
        TRUE_FALSE = "true_false", "True / False"
        FILL_BLANK = "fill_blank", "Fill in the Blank"
        SHORT_ANSWER = "short_answer", "Short Answer"
        ESSAY = "essay", "Essay"

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    # Nullable exam: questions may sit in the bank without being assigned
    exam = models.ForeignKey(Exam, related_name='questions', on_delete=models.SET_NULL, null=True, blank=True)
    order_number = models.PositiveIntegerField(default=0)

    text = models.TextField()
    question_type = models.CharField(max_length=20, choices=QuestionType.choices, default=QuestionType.SINGLE_CHOICE)

    category = models.CharField(max_length=100, blank=True)
    difficulty = models.CharField(max_length=20, choices=Difficulty.choices, default=Difficulty.MEDIUM)
    points = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal('1'))

    # Choice labels/texts shown to the student
    options = models.JSONField(default=list, blank=True)
    # Never exposed on the student read path.
    # Multiple choice: comma separated or JSON list of options.
    correct_answer = models.TextField(blank=True)

    class Meta:
        ordering = ['order_number', 'id']

    def __str__(self):
        return f"{self.text[:50]}..."
