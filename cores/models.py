from django.db import models
from django.conf import settings


class AuditLog(models.Model):
    class Action(models.TextChoices):
        REGISTER = 'REGISTER', 'Registered'
        PASSWORD_CHANGE = 'PASSWORD_CHANGE', 'Password Changed'
        START_EXAM = 'START_EXAM', 'Exam Started'
        FINISH_EXAM = 'FINISH_EXAM', 'Exam Finished'
        EXPIRE_EXAM = 'EXPIRE_EXAM', 'Exam Expired'

    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=20, choices=Action.choices)
    target_model = models.CharField(max_length=50, help_text="e.g., ExamAttempt, User")
    target_object_id = models.CharField(max_length=100, blank=True, null=True)
    details = models.TextField(blank=True, help_text="Description of changes")
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.actor} - {self.action} - {self.timestamp}"
