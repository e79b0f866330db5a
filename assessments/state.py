"""
Attempt lifecycle.

Only ``in_progress`` and ``finished`` are ever stored. ``not_started`` means
no attempt row exists and ``expired`` is an ``in_progress`` row observed
after its deadline. Every workflow operation asks :func:`effective_status`
instead of reading ``attempt.status`` directly.
"""
from .models import AttemptStatus

# Allowed stored transitions
TRANSITIONS = {
    AttemptStatus.NOT_STARTED: {AttemptStatus.IN_PROGRESS},
    AttemptStatus.IN_PROGRESS: {AttemptStatus.FINISHED, AttemptStatus.EXPIRED},
    AttemptStatus.EXPIRED: {AttemptStatus.FINISHED},
    AttemptStatus.FINISHED: set(),
}


def effective_status(attempt, now):
    if attempt is None:
        return AttemptStatus.NOT_STARTED
    if attempt.status == AttemptStatus.FINISHED:
        return AttemptStatus.FINISHED
    if now > attempt.end_time:
        return AttemptStatus.EXPIRED
    return AttemptStatus.IN_PROGRESS


def can_transition(current, target):
    return target in TRANSITIONS.get(current, set())


def remaining_seconds(attempt, now):
    if effective_status(attempt, now) != AttemptStatus.IN_PROGRESS:
        return 0
    return max(0, int((attempt.end_time - now).total_seconds()))
