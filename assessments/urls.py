from django.urls import path
from .views import (
    AvailableExamListView,
    StudentExamAttemptsView,
    ExamInfoView,
    StartExamView,
    ExamQuestionsView,
    SubmitAnswerView,
    SubmitAnswersBatchView,
    FinishExamView,
    ExamResultView,
    ExamProgressView,
    SessionStatusView,
)

urlpatterns = [
    # --- Exams ---
    path('exams/available/', AvailableExamListView.as_view(), name='available-exams'),
    path('exams/history/', StudentExamAttemptsView.as_view(), name='student-attempts'),
    path('exams/<int:exam_id>/', ExamInfoView.as_view(), name='exam-info'),
    path('exams/<int:exam_id>/start/', StartExamView.as_view(), name='start-exam'),
    path('exams/<int:exam_id>/questions/', ExamQuestionsView.as_view(), name='exam-questions'),

    # --- Attempt ---
    path('attempts/<int:attempt_id>/answers/', SubmitAnswerView.as_view(), name='submit-answer'),
    path('attempts/<int:attempt_id>/answers/batch/', SubmitAnswersBatchView.as_view(), name='submit-answers-batch'),
    path('attempts/<int:attempt_id>/finish/', FinishExamView.as_view(), name='finish-exam'),
    path('attempts/<int:attempt_id>/result/', ExamResultView.as_view(), name='exam-result'),
    path('attempts/<int:attempt_id>/progress/', ExamProgressView.as_view(), name='exam-progress'),
    path('attempts/<int:attempt_id>/status/', SessionStatusView.as_view(), name='session-status'),
]
