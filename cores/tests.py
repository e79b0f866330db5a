from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework import exceptions, status
from rest_framework.test import APIClient, APIRequestFactory

from assessments.exceptions import AttemptExpired

from .exceptions import api_exception_handler
from .models import AuditLog

User = get_user_model()


class ExceptionHandlerTestCase(SimpleTestCase):
    def context(self):
        return {'request': APIRequestFactory().get('/api/student/exams/available/')}

    def test_api_errors_carry_kind_and_message(self):
        response = api_exception_handler(AttemptExpired(), self.context())
        self.assertEqual(response.status_code, status.HTTP_410_GONE)
        self.assertEqual(response.data, {'error': AttemptExpired.default_detail, 'kind': 'expired'})

    def test_kind_falls_back_to_status(self):
        response = api_exception_handler(exceptions.NotFound(), self.context())
        self.assertEqual(response.data['kind'], 'not_found')
        response = api_exception_handler(exceptions.MethodNotAllowed('DELETE'), self.context())
        self.assertEqual(response.data['kind'], 'method_not_allowed')

    def test_validation_errors_keep_field_messages(self):
        exc = exceptions.ValidationError({'title': ['This field is required.']})
        response = api_exception_handler(exc, self.context())
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation_error')
        self.assertEqual(response.data['fields'], {'title': ['This field is required.']})

    def test_unexpected_errors_are_left_to_django(self):
        self.assertIsNone(api_exception_handler(RuntimeError('boom'), self.context()))


class AuditLogApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='Str0ngPass!2026', is_staff=True,
        )
        self.student = User.objects.create_user(
            username='student', email='student@example.com', password='Str0ngPass!2026',
        )
        AuditLog.objects.create(actor=self.student, action=AuditLog.Action.REGISTER, target_model='User')
        AuditLog.objects.create(actor=self.student, action=AuditLog.Action.START_EXAM, target_model='ExamAttempt')
        AuditLog.objects.create(actor=self.admin, action=AuditLog.Action.PASSWORD_CHANGE, target_model='User')

    def test_admin_can_filter_by_action_and_actor(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(reverse('audit-logs'), {'action': AuditLog.Action.START_EXAM})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['actor_email'], 'student@example.com')

        response = self.client.get(reverse('audit-logs'), {'actor': self.student.pk})
        self.assertEqual(len(response.data), 2)

    def test_students_cannot_read_the_audit_trail(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get(reverse('audit-logs'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_non_numeric_actor_is_a_validation_error(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('audit-logs'), {'actor': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation_error')
        self.assertIn('actor', response.data['fields'])
