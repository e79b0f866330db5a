from rest_framework import serializers
from exams.serializers import ExamListSerializer
from .models import ExamAttempt

# --- Requests ---

class AnswerSubmitSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    answer = serializers.CharField(trim_whitespace=False)

class BatchAnswerSubmitSerializer(serializers.Serializer):
    answers = AnswerSubmitSerializer(many=True, allow_empty=False)

    def validate_answers(self, value):
        question_ids = [a['question_id'] for a in value]
        if len(question_ids) != len(set(question_ids)):
            raise serializers.ValidationError("Each question may appear only once.")
        return value

# --- Responses (read models from assessments.services) ---

class AttemptSessionSerializer(serializers.Serializer):
    attempt_id = serializers.IntegerField()
    exam_id = serializers.IntegerField()
    exam_title = serializers.CharField()
    attempt_number = serializers.IntegerField()
    status = serializers.CharField()
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    remaining_seconds = serializers.IntegerField()
    total_questions = serializers.IntegerField()

class StudentQuestionSerializer(serializers.Serializer):
    """A question as the student sees it; never includes the correct answer."""
    question_id = serializers.IntegerField()
    order_number = serializers.IntegerField()
    question_type = serializers.CharField()
    text = serializers.CharField()
    options = serializers.ListField(child=serializers.CharField())
    points = serializers.DecimalField(max_digits=6, decimal_places=2)
    answer_text = serializers.CharField(allow_null=True)
    answered = serializers.BooleanField()

class AnswerResultSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    answer_text = serializers.CharField()
    grading_status = serializers.CharField()
    awarded_points = serializers.DecimalField(max_digits=6, decimal_places=2, allow_null=True)
    submitted_at = serializers.DateTimeField()

class QuestionResultSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    order_number = serializers.IntegerField()
    question_type = serializers.CharField()
    text = serializers.CharField()
    points = serializers.DecimalField(max_digits=6, decimal_places=2)
    answer_text = serializers.CharField(allow_null=True)
    grading_status = serializers.CharField()
    awarded_points = serializers.DecimalField(max_digits=6, decimal_places=2, allow_null=True)
    correct_answer = serializers.CharField(allow_null=True)

class ExamResultSerializer(serializers.Serializer):
    attempt_id = serializers.IntegerField()
    exam_id = serializers.IntegerField()
    exam_title = serializers.CharField()
    status = serializers.CharField()
    score = serializers.DecimalField(max_digits=8, decimal_places=2)
    max_score = serializers.DecimalField(max_digits=8, decimal_places=2)
    percentage = serializers.DecimalField(max_digits=5, decimal_places=2)
    pass_mark_percentage = serializers.IntegerField()
    passed = serializers.BooleanField(allow_null=True)
    is_graded = serializers.BooleanField()
    timed_out = serializers.BooleanField()
    start_time = serializers.DateTimeField()
    finish_time = serializers.DateTimeField()
    correct_answers = serializers.IntegerField()
    total_questions = serializers.IntegerField()
    questions = QuestionResultSerializer(many=True)

class ProgressSerializer(serializers.Serializer):
    attempt_id = serializers.IntegerField()
    total_questions = serializers.IntegerField()
    answered_questions = serializers.IntegerField()
    unanswered_questions = serializers.IntegerField()
    progress_percentage = serializers.DecimalField(max_digits=5, decimal_places=2)

class SessionStatusSerializer(serializers.Serializer):
    attempt_id = serializers.IntegerField()
    exam_id = serializers.IntegerField()
    status = serializers.CharField()
    current_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    remaining_seconds = serializers.IntegerField()
    timed_out = serializers.BooleanField()

class ExamInfoSerializer(serializers.Serializer):
    exam = ExamListSerializer()
    availability = serializers.CharField()
    attempts_used = serializers.IntegerField()
    attempts_remaining = serializers.IntegerField()
    active_attempt_id = serializers.IntegerField(allow_null=True)

class ExamAttemptHistorySerializer(serializers.ModelSerializer):
    """Lightweight serializer for the student's attempt history."""
    exam_title = serializers.CharField(source='exam.title', read_only=True)

    class Meta:
        model = ExamAttempt
        fields = [
            'id', 'exam', 'exam_title', 'attempt_number', 'status', 'start_time', 'end_time',
            'finish_time', 'score', 'percentage', 'passed', 'is_graded', 'timed_out',
        ]
        read_only_fields = fields

# --- Admin statistics ---

class TopScoreSerializer(serializers.Serializer):
    attempt_id = serializers.IntegerField()
    student_id = serializers.IntegerField()
    student_email = serializers.EmailField()
    score = serializers.DecimalField(max_digits=8, decimal_places=2)
    percentage = serializers.DecimalField(max_digits=5, decimal_places=2)
    finish_time = serializers.DateTimeField()

class ExamStatisticsSerializer(serializers.Serializer):
    exam_id = serializers.IntegerField()
    exam_title = serializers.CharField()
    total_attempts = serializers.IntegerField()
    in_progress_attempts = serializers.IntegerField()
    finished_attempts = serializers.IntegerField()
    graded_attempts = serializers.IntegerField()
    pending_grading = serializers.IntegerField()
    average_score = serializers.DecimalField(max_digits=8, decimal_places=2, allow_null=True)
    highest_score = serializers.DecimalField(max_digits=8, decimal_places=2, allow_null=True)
    lowest_score = serializers.DecimalField(max_digits=8, decimal_places=2, allow_null=True)
    average_percentage = serializers.DecimalField(max_digits=5, decimal_places=2, allow_null=True)
    passed_attempts = serializers.IntegerField()
    passing_rate = serializers.DecimalField(max_digits=5, decimal_places=2)
    grade_distribution = serializers.DictField(child=serializers.IntegerField())
    top_scores = TopScoreSerializer(many=True)

class PendingGradingAttemptSerializer(ExamAttemptHistorySerializer):
    student_email = serializers.EmailField(source='student.email', read_only=True)
    pending_answers = serializers.IntegerField(read_only=True)

    class Meta(ExamAttemptHistorySerializer.Meta):
        fields = ExamAttemptHistorySerializer.Meta.fields + ['student', 'student_email', 'pending_answers']
        read_only_fields = fields
