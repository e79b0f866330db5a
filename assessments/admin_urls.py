from django.urls import path
from .views import ExamStatisticsView, AttemptsNeedingGradingView

urlpatterns = [
    path('exams/<int:exam_id>/statistics/', ExamStatisticsView.as_view(), name='exam-statistics'),
    path('attempts/needs-grading/', AttemptsNeedingGradingView.as_view(), name='attempts-needing-grading'),
]
