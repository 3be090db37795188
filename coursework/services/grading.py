import logging
import math
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from coursework.core.config import CONFLICT_RETRIES
from coursework.core.current_user import Principal
from coursework.core.errors import Conflict, InvalidState, ValidationError
from coursework.core.permissions import ensure_instructor_owns
from coursework.models.submission import FeedbackEntry, Submission, SubmissionStatus
from coursework.services.lifecycle import transition
from coursework.services.policy import Policy, PolicyResolver
from coursework.services.submission_store import SubmissionStore

logger = logging.getLogger(__name__)


def compute_final_grade(raw_grade: float, is_late: bool, late_penalty_percent: float) -> float:
    """
    Apply the late penalty once, based on whether the *current* version was late.

    80 raw, 20% penalty, late -> 64.0
    """
    final = float(raw_grade)
    if is_late and late_penalty_percent > 0:
        penalty = final * late_penalty_percent / 100
        final = max(0.0, final - penalty)
    return final


def _check_bounds(raw_grade: float, max_points: float) -> None:
    if not math.isfinite(raw_grade) or raw_grade < 0 or raw_grade > max_points:
        raise ValidationError(f"grade must be between 0 and {max_points:g}")


class GradingEngine:
    def __init__(self, db: Session):
        self.db = db
        self.policies = PolicyResolver(db)
        self.store = SubmissionStore(db)

    def grade(
        self,
        submission_id: int,
        grader: Principal,
        raw_grade: float,
        feedback: str | None,
        now: datetime,
    ) -> Submission:
        def apply(sub: Submission, policy: Policy) -> None:
            _check_bounds(raw_grade, policy.max_points)
            final = self._set_grade(sub, policy, grader, raw_grade, now)
            sub.feedback = feedback or ""
            sub.feedback_history.append(
                FeedbackEntry(
                    feedback=sub.feedback,
                    grade=final,
                    graded_at=now,
                    graded_by=grader.id,
                    version=sub.current_version,
                )
            )

        sub = self._update(submission_id, grader, apply)
        logger.info(
            "Submission %s v%s graded %.2f by %s (raw %.2f, late=%s)",
            sub.id,
            sub.current_version,
            sub.grade,
            grader.id,
            raw_grade,
            sub.is_late,
        )
        return sub

    def return_submission(self, submission_id: int, grader: Principal) -> Submission:
        def apply(sub: Submission, policy: Policy) -> None:
            if sub.status != SubmissionStatus.GRADED:
                raise InvalidState("Submission must be graded before returning")
            transition(sub, SubmissionStatus.RETURNED)

        sub = self._update(submission_id, grader, apply)
        logger.info("Submission %s returned to learner %s", sub.id, sub.learner_id)
        return sub

    def add_feedback(
        self,
        submission_id: int,
        grader: Principal,
        feedback: str,
        grade: float | None,
        now: datetime,
    ) -> Submission:
        if not feedback or not feedback.strip():
            raise ValidationError("Feedback is required")

        def apply(sub: Submission, policy: Policy) -> None:
            entry_grade = sub.grade
            if grade is not None:
                _check_bounds(grade, policy.max_points)
                entry_grade = self._set_grade(sub, policy, grader, grade, now)

            sub.feedback = feedback
            sub.feedback_history.append(
                FeedbackEntry(
                    feedback=feedback,
                    grade=entry_grade,
                    graded_at=now,
                    graded_by=grader.id,
                    version=sub.current_version,
                )
            )

        return self._update(submission_id, grader, apply)

    def _set_grade(
        self,
        sub: Submission,
        policy: Policy,
        grader: Principal,
        raw_grade: float,
        now: datetime,
    ) -> float:
        final = compute_final_grade(raw_grade, sub.is_late, policy.late_penalty_percent)
        transition(sub, SubmissionStatus.GRADED)
        sub.grade = final
        sub.graded_at = now
        sub.graded_by = grader.id
        return final

    def _update(
        self,
        submission_id: int,
        grader: Principal,
        apply: Callable[[Submission, Policy], None],
    ) -> Submission:
        """Re-read, authorize, mutate, save; start over if a submit moved the record meanwhile."""
        for attempt in range(1, CONFLICT_RETRIES + 1):
            sub = self.store.get(submission_id)
            policy = self.policies.resolve(sub.assignment_id)
            ensure_instructor_owns(grader, policy)

            apply(sub, policy)
            try:
                return self.store.save(sub)
            except Conflict:
                if attempt == CONFLICT_RETRIES:
                    raise
                logger.info("Retrying update of submission %s (attempt %s)", submission_id, attempt + 1)
                self.store.reset()

        raise Conflict("Submission was modified concurrently, please retry")
