from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from assessments.services import ExamAttemptService

from .models import Exam, ExamCategory, Question

User = get_user_model()


class ExamAdminTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='Str0ngPass!2026',
            is_staff=True, role=User.Role.ADMIN,
        )
        self.student = User.objects.create_user(
            username='student', email='student@example.com', password='Str0ngPass!2026',
        )
        self.client.force_authenticate(user=self.admin)

    def test_create_exam_with_category_name(self):
        response = self.client.post(reverse('exams-list'), {
            'title': 'Chemistry Midterm',
            'category': 'Science',
            'duration_minutes': 45,
            'max_attempts': 2,
            'is_active': True,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category'], 'Science')
        self.assertEqual(response.data['total_questions'], 0)
        self.assertTrue(ExamCategory.objects.filter(name='Science').exists())

    def test_default_max_attempts_comes_from_settings(self):
        with self.settings(EXAM_DEFAULT_MAX_ATTEMPTS=4):
            exam = Exam.objects.create(title='Defaults', duration_minutes=30)
        self.assertEqual(exam.max_attempts, 4)

    def test_window_must_be_ordered(self):
        response = self.client.post(reverse('exams-list'), {
            'title': 'Backwards',
            'duration_minutes': 30,
            'available_from': '2026-05-02T10:00:00Z',
            'available_until': '2026-05-01T10:00:00Z',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('available_until', response.data['fields'])

    def test_zero_duration_is_rejected(self):
        response = self.client.post(reverse('exams-list'), {'title': 'Instant', 'duration_minutes': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_students_cannot_manage_exams(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.post(reverse('exams-list'), {'title': 'Nope', 'duration_minutes': 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['kind'], 'forbidden')

    def test_assign_questions_appends_in_order(self):
        exam = Exam.objects.create(title='Biology', duration_minutes=30)
        Question.objects.create(exam=exam, order_number=1, text='Existing', correct_answer='A')
        bank = [Question.objects.create(text=f"Bank {i}", correct_answer='B') for i in range(2)]

        response = self.client.post(
            reverse('exams-assign-questions', args=[exam.pk]),
            {'question_ids': [q.pk for q in bank]},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(list(exam.questions.values_list('order_number', flat=True)), [1, 2, 3])
        self.assertEqual(exam.total_questions, 3)

    def test_remove_questions_returns_them_to_the_bank(self):
        exam = Exam.objects.create(title='Physics', duration_minutes=30)
        question = Question.objects.create(exam=exam, order_number=1, text='Gravity?', correct_answer='9.8')

        response = self.client.post(
            reverse('exams-remove-questions', args=[exam.pk]), {'question_ids': [question.pk]}, format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        question.refresh_from_db()
        self.assertIsNone(question.exam)

    def test_auto_graded_question_needs_a_correct_answer(self):
        response = self.client.post(reverse('questions-list'), {
            'question_text': 'Pick one',
            'question_type': Question.QuestionType.SINGLE_CHOICE,
            'options': ['A', 'B'],
            'correct_answer': '',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('correct_answer', response.data['fields'])

        response = self.client.post(reverse('questions-list'), {
            'question_text': 'Discuss the causes of the war.',
            'question_type': Question.QuestionType.ESSAY,
            'points': '10.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_question_bank_filtered_by_exam(self):
        exam = Exam.objects.create(title='History', duration_minutes=30)
        Question.objects.create(exam=exam, order_number=2, text='Second', correct_answer='B')
        Question.objects.create(exam=exam, order_number=1, text='First', correct_answer='A')
        Question.objects.create(text='Unassigned', correct_answer='C')

        response = self.client.get(reverse('questions-list'), {'exam_id': exam.pk})

        self.assertEqual([q['question_text'] for q in response.data], ['First', 'Second'])
        self.assertEqual(response.data[0]['correct_answer'], 'A')

    def test_non_numeric_exam_filter_is_a_validation_error(self):
        response = self.client.get(reverse('questions-list'), {'exam_id': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('exam_id', response.data['fields'])


class BulkUploadTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='Str0ngPass!2026', is_staff=True,
        )
        self.client.force_authenticate(user=self.admin)
        self.exam = Exam.objects.create(title='Imported', duration_minutes=20)

    def upload(self, content, **extra):
        csv_file = SimpleUploadedFile('questions.csv', content.encode('utf-8'), content_type='text/csv')
        return self.client.post(reverse('questions-bulk-upload'), {'file': csv_file, **extra}, format='multipart')

    def test_upload_assigns_questions_to_exam(self):
        content = (
            "question_text,question_type,category,difficulty,points,options,correct_answer\n"
            "Capital of France?,single_choice,Geography,easy,2,Paris|Rome|Madrid,Paris\n"
            "Primes below 6?,multiple_choice,Math,medium,3,2|3|4|5,\"2,3,5\"\n"
            "Explain tides.,essay,Science,hard,5,,\n"
        )
        response = self.upload(content, exam_id=self.exam.pk)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        questions = list(self.exam.questions.all())
        self.assertEqual([q.order_number for q in questions], [1, 2, 3])
        self.assertEqual(questions[0].options, ['Paris', 'Rome', 'Madrid'])
        self.assertEqual(questions[1].correct_answer, '2,3,5')
        self.assertEqual(questions[2].question_type, Question.QuestionType.ESSAY)
        self.assertEqual(self.exam.total_points, Decimal('10'))

    def test_unknown_type_rolls_back_the_whole_file(self):
        content = (
            "question_text,question_type,correct_answer\n"
            "Fine,true_false,True\n"
            "Broken,drawing,x\n"
        )
        response = self.upload(content)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Line 3', response.data['error'])
        self.assertFalse(Question.objects.exists())

    def test_missing_columns(self):
        response = self.upload("text,answer\nA,B\n")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('question_text', response.data['error'])

    def test_missing_file(self):
        response = self.client.post(reverse('questions-bulk-upload'), {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_exam(self):
        response = self.upload("question_text,correct_answer\nA,B\n", exam_id=999999)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class DeleteWithAttemptsTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='Str0ngPass!2026', is_staff=True,
        )
        self.student = User.objects.create_user(
            username='student', email='student@example.com', password='Str0ngPass!2026',
        )
        self.exam = Exam.objects.create(title='Taken', duration_minutes=30, is_active=True)
        self.answered = Question.objects.create(exam=self.exam, order_number=1, text='Q1', correct_answer='A')
        self.untouched = Question.objects.create(exam=self.exam, order_number=2, text='Q2', correct_answer='B')

        session = ExamAttemptService.start_attempt(exam_id=self.exam.pk, student_id=self.student.pk)
        ExamAttemptService.submit_answer(
            attempt_id=session.attempt_id, student_id=self.student.pk,
            question_id=self.answered.pk, answer_text='A',
        )
        self.client.force_authenticate(user=self.admin)

    def test_answered_question_cannot_be_deleted(self):
        response = self.client.delete(reverse('questions-detail', args=[self.answered.pk]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'invalid_state')
        self.assertTrue(Question.objects.filter(pk=self.answered.pk).exists())

    def test_unanswered_question_can_be_deleted(self):
        response = self.client.delete(reverse('questions-detail', args=[self.untouched.pk]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_exam_with_attempts_cannot_be_deleted(self):
        response = self.client.delete(reverse('exams-detail', args=[self.exam.pk]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertIn('unpublish', response.data['error'])
        self.assertTrue(Exam.objects.filter(pk=self.exam.pk).exists())
        self.assertEqual(self.exam.questions.count(), 2)

    def test_exam_without_attempts_can_be_deleted(self):
        unused = Exam.objects.create(title='Unused', duration_minutes=10)
        response = self.client.delete(reverse('exams-detail', args=[unused.pk]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
