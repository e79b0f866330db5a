from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    Platform account, logged in by email.

    Students take exams. Admin accounts manage exams, questions and grading
    statistics; the ``admin`` role always carries ``is_staff`` because that
    is what the admin endpoints check.
    """

    class Role(models.TextChoices):
        STUDENT = "student", "Student"
        TEACHER = "teacher", "Teacher"
        ADMIN = "admin", "Admin"

    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.STUDENT)

    # Profile
    phone_number = models.CharField(max_length=15, blank=True)
    bio = models.TextField(blank=True)
    avatar = models.ImageField(upload_to="avatars/", blank=True, null=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username', 'first_name', 'last_name']

    def save(self, *args, **kwargs):
        if self.role == self.Role.ADMIN:
            self.is_staff = True
            update_fields = kwargs.get('update_fields')
            if update_fields is not None and 'role' in update_fields:
                kwargs['update_fields'] = set(update_fields) | {'is_staff'}
        super().save(*args, **kwargs)

    def __str__(self):
        return self.email
