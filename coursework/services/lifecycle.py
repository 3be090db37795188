from coursework.core.errors import InvalidState
from coursework.models.submission import Submission, SubmissionStatus

S = SubmissionStatus

# Allowed status moves. GRADED -> GRADED is a re-grade.
TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    S.SUBMITTED: frozenset({S.GRADED, S.RESUBMITTED}),
    S.GRADED: frozenset({S.GRADED, S.RETURNED, S.RESUBMITTED}),
    S.RETURNED: frozenset({S.RESUBMITTED}),
    S.RESUBMITTED: frozenset({S.GRADED, S.RESUBMITTED}),
}


def can_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    return target in TRANSITIONS[SubmissionStatus(current)]


def transition(submission: Submission, target: SubmissionStatus) -> None:
    current = SubmissionStatus(submission.status)
    if not can_transition(current, target):
        raise InvalidState(f"Cannot move submission from {current.value} to {target.value}")
    submission.status = target
