import csv
import io
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Max, ProtectedError
from rest_framework import viewsets, permissions, status, filters
from rest_framework.decorators import action
from rest_framework.parsers import JSONParser, MultiPartParser, FormParser
from rest_framework.response import Response

from cores.exceptions import ResourceInUse
from cores.params import int_query_param

from .models import Exam, Question, ExamCategory
from .serializers import (
    ExamSerializer, QuestionSerializer, ExamCategorySerializer, QuestionIdsSerializer,
)

logger = logging.getLogger(__name__)

CSV_REQUIRED_COLUMNS = {'question_text', 'correct_answer'}


class ExamViewSet(viewsets.ModelViewSet):
    """Exam management for administrators. Students use the attempt endpoints."""
    queryset = Exam.objects.select_related('category').order_by('-created_at')
    serializer_class = ExamSerializer
    permission_classes = [permissions.IsAdminUser]

    # Enable search on title and category name
    filter_backends = [filters.SearchFilter]
    search_fields = ['title', 'category__name']

    def perform_destroy(self, instance):
        try:
            instance.delete()
        except ProtectedError:
            raise ResourceInUse("This exam has attempts and cannot be deleted; unpublish it instead.")

    @action(detail=True, methods=['post'], url_path='assign-questions')
    def assign_questions(self, request, pk=None):
        """
        Assigns a list of Question IDs to this Exam, appended after the
        exam's current last question.
        Payload: { "question_ids": [1, 2, 3] }
        """
        exam = self.get_object()
        serializer = QuestionIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            last = exam.questions.aggregate(last=Max('order_number'))['last'] or 0
            questions = Question.objects.filter(id__in=serializer.validated_data['question_ids']).order_by('id')
            count = 0
            for offset, question in enumerate(questions, start=1):
                question.exam = exam
                question.order_number = last + offset
                question.save(update_fields=['exam', 'order_number'])
                count += 1

        logger.info("Assigned %s questions to exam %s", count, exam.id)
        return Response({"status": f"Added {count} questions to {exam.title}"})

    @action(detail=True, methods=['post'], url_path='remove-questions')
    def remove_questions(self, request, pk=None):
        """Removes questions from the exam (sets exam=None), returning them to the bank."""
        exam = self.get_object()
        serializer = QuestionIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        count = Question.objects.filter(
            id__in=serializer.validated_data['question_ids'], exam=exam,
        ).update(exam=None, order_number=0)
        return Response({"status": f"Returned {count} questions to bank"})


class QuestionViewSet(viewsets.ModelViewSet):
    queryset = Question.objects.select_related('exam').order_by('-id')
    serializer_class = QuestionSerializer
    permission_classes = [permissions.IsAdminUser]
    parser_classes = (JSONParser, MultiPartParser, FormParser)

    # Search and filtering for the question bank
    filter_backends = [filters.SearchFilter]
    search_fields = ['text', 'category']

    def get_queryset(self):
        queryset = super().get_queryset()
        # Filter by Exam if provided ?exam_id=1
        exam_id = int_query_param(self.request, 'exam_id')
        if exam_id is not None:
            queryset = queryset.filter(exam_id=exam_id).order_by('order_number', 'id')
        return queryset

    def perform_destroy(self, instance):
        try:
            instance.delete()
        except ProtectedError:
            raise ResourceInUse(
                "This question has recorded answers and cannot be deleted; remove it from the exam instead."
            )

    @action(detail=False, methods=['post'], url_path='bulk-upload')
    def bulk_upload(self, request):
        """
        Upload questions via CSV.
        Expected CSV Header: question_text, question_type, category, difficulty, points, options, correct_answer
        Options are separated by '|'. An optional ``exam_id`` form field assigns
        the imported questions to that exam in file order.
        """
        file_obj = request.FILES.get('file')
        if not file_obj:
            return Response({"error": "No file uploaded"}, status=status.HTTP_400_BAD_REQUEST)

        exam = None
        exam_id = request.data.get('exam_id')
        if exam_id:
            exam = Exam.objects.filter(id=exam_id).first()
            if exam is None:
                return Response({"error": "Exam not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            decoded_file = file_obj.read().decode('utf-8')
        except UnicodeDecodeError:
            return Response({"error": "File must be UTF-8 encoded CSV"}, status=status.HTTP_400_BAD_REQUEST)

        reader = csv.DictReader(io.StringIO(decoded_file))
        missing = CSV_REQUIRED_COLUMNS - set(reader.fieldnames or [])
        if missing:
            return Response({"error": f"Missing columns: {', '.join(sorted(missing))}"},
                            status=status.HTTP_400_BAD_REQUEST)

        valid_types = set(Question.QuestionType.values)
        valid_difficulties = set(Question.Difficulty.values)

        with transaction.atomic():
            next_order = 0
            if exam is not None:
                next_order = exam.questions.aggregate(last=Max('order_number'))['last'] or 0

            created_count = 0
            for line_no, row in enumerate(reader, start=2):
                q_type = (row.get('question_type') or Question.QuestionType.SINGLE_CHOICE).strip().lower()
                difficulty = (row.get('difficulty') or Question.Difficulty.MEDIUM).strip().lower()
                if q_type not in valid_types or difficulty not in valid_difficulties:
                    transaction.set_rollback(True)
                    return Response({"error": f"Line {line_no}: unknown question type or difficulty"},
                                    status=status.HTTP_400_BAD_REQUEST)
                try:
                    points = Decimal((row.get('points') or '1').strip())
                except InvalidOperation:
                    transaction.set_rollback(True)
                    return Response({"error": f"Line {line_no}: points must be a number"},
                                    status=status.HTTP_400_BAD_REQUEST)

                options = [opt.strip() for opt in (row.get('options') or '').split('|') if opt.strip()]
                if exam is not None:
                    next_order += 1

                Question.objects.create(
                    exam=exam,
                    order_number=next_order,
                    text=row['question_text'],
                    question_type=q_type,
                    category=(row.get('category') or 'General').strip(),
                    difficulty=difficulty,
                    points=points,
                    options=options,
                    correct_answer=(row.get('correct_answer') or '').strip(),
                )
                created_count += 1

        logger.info("Imported %s questions from CSV", created_count)
        return Response({"status": f"Successfully uploaded {created_count} questions"}, status=status.HTTP_201_CREATED)


class CategoryViewSet(viewsets.ModelViewSet):
    queryset = ExamCategory.objects.all()
    serializer_class = ExamCategorySerializer
    permission_classes = [permissions.IsAdminUser]
