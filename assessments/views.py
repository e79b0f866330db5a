from rest_framework import generics, permissions, status, views
from rest_framework.response import Response

from cores.params import int_query_param
from exams.serializers import ExamListSerializer

from .serializers import (
    AnswerResultSerializer,
    AnswerSubmitSerializer,
    AttemptSessionSerializer,
    BatchAnswerSubmitSerializer,
    ExamAttemptHistorySerializer,
    ExamInfoSerializer,
    ExamResultSerializer,
    ExamStatisticsSerializer,
    PendingGradingAttemptSerializer,
    ProgressSerializer,
    SessionStatusSerializer,
    StudentQuestionSerializer,
)
from .services import ExamAttemptService
from .statistics import ExamStatisticsService


# --- Exams as the student sees them ---

class AvailableExamListView(generics.ListAPIView):
    """Published exams whose scheduling window is open now."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ExamListSerializer

    def get_queryset(self):
        return ExamAttemptService.list_available_exams()


class StudentExamAttemptsView(generics.ListAPIView):
    """All attempts of the logged-in student, newest first."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ExamAttemptHistorySerializer

    def get_queryset(self):
        return ExamAttemptService.get_history(student_id=self.request.user.id)


class ExamInfoView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, exam_id):
        info = ExamAttemptService.get_exam_info(exam_id=exam_id, student_id=request.user.id)
        return Response(ExamInfoSerializer(info).data)


# --- Attempt workflow ---

class StartExamView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, exam_id):
        session = ExamAttemptService.start_attempt(exam_id=exam_id, student_id=request.user.id)
        return Response(AttemptSessionSerializer(session).data, status=status.HTTP_201_CREATED)


class ExamQuestionsView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, exam_id):
        attempt_id = int_query_param(request, 'attempt_id', required=True)
        questions = ExamAttemptService.get_questions(
            exam_id=exam_id, student_id=request.user.id, attempt_id=attempt_id,
        )
        return Response(StudentQuestionSerializer(questions, many=True).data)


class SubmitAnswerView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, attempt_id):
        serializer = AnswerSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = ExamAttemptService.submit_answer(
            attempt_id=attempt_id,
            student_id=request.user.id,
            question_id=serializer.validated_data['question_id'],
            answer_text=serializer.validated_data['answer'],
        )
        return Response(AnswerResultSerializer(result).data)


class SubmitAnswersBatchView(views.APIView):
    """
    Saves several answers in one request.
    Payload: { "answers": [ { "question_id": 1, "answer": "A" }, ... ] }
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, attempt_id):
        serializer = BatchAnswerSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        results = ExamAttemptService.submit_answers(
            attempt_id=attempt_id,
            student_id=request.user.id,
            answers=[(a['question_id'], a['answer']) for a in serializer.validated_data['answers']],
        )
        return Response(AnswerResultSerializer(results, many=True).data)


class FinishExamView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, attempt_id):
        result = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=request.user.id)
        return Response(ExamResultSerializer(result).data)


class ExamResultView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, attempt_id):
        result = ExamAttemptService.get_result(attempt_id=attempt_id, student_id=request.user.id)
        return Response(ExamResultSerializer(result).data)


class ExamProgressView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, attempt_id):
        progress = ExamAttemptService.get_progress(attempt_id=attempt_id, student_id=request.user.id)
        return Response(ProgressSerializer(progress).data)


class SessionStatusView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, attempt_id):
        session = ExamAttemptService.get_session_status(attempt_id=attempt_id, student_id=request.user.id)
        return Response(SessionStatusSerializer(session).data)


# --- Admin: grade statistics ---

class ExamStatisticsView(views.APIView):
    """Scores, pass rate, grade distribution and top scores for one exam."""
    permission_classes = [permissions.IsAdminUser]

    def get(self, request, exam_id):
        top = int_query_param(request, 'top', default=5)
        stats = ExamStatisticsService.exam_statistics(exam_id=exam_id, top=top)
        return Response(ExamStatisticsSerializer(stats).data)


class AttemptsNeedingGradingView(generics.ListAPIView):
    """Finished attempts whose essay answers still wait for a grader. Optional ?exam_id=."""
    permission_classes = [permissions.IsAdminUser]
    serializer_class = PendingGradingAttemptSerializer

    def get_queryset(self):
        return ExamStatisticsService.attempts_needing_grading(
            exam_id=int_query_param(self.request, 'exam_id'),
        )
