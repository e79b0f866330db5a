from rest_framework import status
from rest_framework.exceptions import APIException


class AttemptError(APIException):
    """Base for exam-attempt workflow failures. ``kind`` is stable for clients."""
    kind = "error"


class ExamNotFound(AttemptError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"
    default_detail = "Exam not found."
    default_code = "exam_not_found"


class AttemptNotFound(AttemptError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"
    default_detail = "Exam attempt not found."
    default_code = "attempt_not_found"


class AttemptNotOwnedByStudent(AttemptError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "forbidden"
    default_detail = "This exam attempt belongs to another student."
    default_code = "attempt_not_owned"


class ExamNotEligible(AttemptError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "invalid_state"
    default_detail = "This exam cannot be started right now."
    default_code = "exam_not_eligible"


class AttemptAlreadyActive(AttemptError):
    status_code = status.HTTP_409_CONFLICT
    kind = "invalid_state"
    default_detail = "An attempt at this exam is already in progress."
    default_code = "attempt_already_active"


class AttemptNotActive(AttemptError):
    status_code = status.HTTP_409_CONFLICT
    kind = "invalid_state"
    default_detail = "This exam attempt is no longer in progress."
    default_code = "attempt_not_active"


class AttemptNotFinished(AttemptError):
    status_code = status.HTTP_409_CONFLICT
    kind = "invalid_state"
    default_detail = "This exam attempt has not been finished yet."
    default_code = "attempt_not_finished"


class AttemptExpired(AttemptError):
    status_code = status.HTTP_410_GONE
    kind = "expired"
    default_detail = "Time is up for this exam attempt; no more answers are accepted."
    default_code = "attempt_expired"


class InvalidAnswer(AttemptError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation_error"
    default_detail = "Invalid answer."
    default_code = "invalid_answer"
