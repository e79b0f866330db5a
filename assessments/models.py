# assessments/models.py
from django.db import models
from django.conf import settings
from exams.models import Exam, Question

class AttemptStatus(models.TextChoices):
    # NOT_STARTED and EXPIRED are derived, never stored (see assessments.state)
    NOT_STARTED = "not_started", "Not Started"
    IN_PROGRESS = "in_progress", "In Progress"
    FINISHED = "finished", "Finished"
    EXPIRED = "expired", "Expired"

class GradingStatus(models.TextChoices):
    CORRECT = "correct", "Correct"
    INCORRECT = "incorrect", "Incorrect"
    PENDING = "pending", "Pending Manual Grading"

class ExamAttempt(models.Model):
    """One student's attempt at one exam."""
    exam = models.ForeignKey(Exam, on_delete=models.PROTECT, related_name='attempts')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='exam_attempts')
    attempt_number = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=20, choices=AttemptStatus.choices, default=AttemptStatus.IN_PROGRESS)
    start_time = models.DateTimeField()
    # min(start + duration, exam.available_until)
    end_time = models.DateTimeField()
    finish_time = models.DateTimeField(null=True, blank=True)

    score = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    passed = models.BooleanField(null=True)
    # Finished by the deadline rather than by the student
    timed_out = models.BooleanField(default=False)
    # False while essay answers await manual review
    is_graded = models.BooleanField(default=False)

    class Meta:
        ordering = ['-start_time']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'exam'],
                condition=models.Q(status=AttemptStatus.IN_PROGRESS),
                name='unique_active_attempt_per_student_exam',
            ),
        ]

    def __str__(self):
        return f"{self.student} - {self.exam.title} (#{self.attempt_number})"

class AnswerSubmission(models.Model):
    attempt = models.ForeignKey(ExamAttempt, related_name='answers', on_delete=models.CASCADE)
    question = models.ForeignKey(Question, on_delete=models.PROTECT)

    answer_text = models.TextField()
    submitted_at = models.DateTimeField()

    grading_status = models.CharField(max_length=20, choices=GradingStatus.choices)
    is_correct = models.BooleanField(null=True)
    # Null until graded
    awarded_points = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['attempt', 'question'], name='unique_answer_per_attempt_question'),
        ]

    def __str__(self):
        return f"Attempt {self.attempt_id} / Question {self.question_id}"
