from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from cores.models import AuditLog

User = get_user_model()

PASSWORD = 'Str0ngPass!2026'


class RegistrationTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_register_student(self):
        response = self.client.post(reverse('register'), {
            'email': 'ada@example.com',
            'password': PASSWORD,
            'first_name': 'Ada',
            'last_name': 'Lovelace',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertNotIn('password', response.data)
        user = User.objects.get(email='ada@example.com')
        self.assertEqual(user.role, User.Role.STUDENT)
        self.assertEqual(user.username, 'ada@example.com')
        self.assertTrue(user.check_password(PASSWORD))
        self.assertTrue(AuditLog.objects.filter(actor=user, action=AuditLog.Action.REGISTER).exists())

    def test_admin_role_cannot_be_self_assigned(self):
        response = self.client.post(reverse('register'), {
            'email': 'mallory@example.com', 'password': PASSWORD, 'role': 'admin',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('role', response.data['fields'])

    def test_weak_password_is_rejected(self):
        response = self.client.post(reverse('register'), {'email': 'weak@example.com', 'password': '123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation_error')
        self.assertFalse(User.objects.filter(email='weak@example.com').exists())


class LoginTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='grace', email='grace@example.com', password=PASSWORD)

    def test_login_with_email_returns_tokens_and_user(self):
        response = self.client.post(reverse('login'), {'email': 'Grace@Example.com', 'password': PASSWORD}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['email'], 'grace@example.com')

    def test_login_with_username(self):
        response = self.client.post(reverse('login'), {'email': 'grace', 'password': PASSWORD}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_wrong_password(self):
        response = self.client.post(reverse('login'), {'email': 'grace@example.com', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['kind'], 'unauthenticated')

    def test_access_token_authenticates_requests(self):
        tokens = self.client.post(reverse('login'), {'email': 'grace@example.com', 'password': PASSWORD}, format='json')
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens.data['access']}")
        response = self.client.get(reverse('user-profile'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], self.user.id)


class ProfileTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='alan', email='alan@example.com', password=PASSWORD)
        self.client.force_authenticate(user=self.user)

    def test_update_profile_keeps_email_and_role(self):
        response = self.client.patch(reverse('user-profile'), {
            'bio': 'Codebreaker', 'email': 'other@example.com', 'role': 'admin',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.bio, 'Codebreaker')
        self.assertEqual(self.user.email, 'alan@example.com')
        self.assertEqual(self.user.role, User.Role.STUDENT)

    def test_change_password(self):
        response = self.client.post(reverse('change-password'), {
            'current_password': 'wrong', 'new_password': 'An0therStrong!Pass',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('current_password', response.data['fields'])

        response = self.client.post(reverse('change-password'), {
            'current_password': PASSWORD, 'new_password': 'An0therStrong!Pass',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('An0therStrong!Pass'))
        self.assertTrue(AuditLog.objects.filter(actor=self.user, action=AuditLog.Action.PASSWORD_CHANGE).exists())


class RoleTestCase(TestCase):
    def test_admin_role_grants_staff_access(self):
        user = User.objects.create_user(
            username='root', email='root@example.com', password=PASSWORD, role=User.Role.ADMIN,
        )
        self.assertTrue(user.is_staff)

    def test_promoting_to_admin_persists_staff_flag(self):
        user = User.objects.create_user(username='sam', email='sam@example.com', password=PASSWORD)
        self.assertFalse(user.is_staff)
        user.role = User.Role.ADMIN
        user.save(update_fields=['role'])
        user.refresh_from_db()
        self.assertTrue(user.is_staff)

    def test_students_are_not_staff(self):
        user = User.objects.create_user(username='kim', email='kim@example.com', password=PASSWORD)
        self.assertEqual(user.role, User.Role.STUDENT)
        self.assertFalse(user.is_staff)
