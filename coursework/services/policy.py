from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from coursework.core.errors import NotFound
from coursework.models.assignment import Assignment, SubmissionType


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Policy:
    assignment_id: int
    course_id: int
    instructor_id: int
    is_published: bool

    due_date: datetime
    max_points: float
    allow_late_submission: bool
    late_penalty_percent: float
    submission_type: SubmissionType
    allow_resubmission: bool
    resubmission_deadline: datetime | None
    max_resubmissions: int

    def is_late(self, at: datetime) -> bool:
        # submitting exactly at the due date is on time
        return as_utc(at) > self.due_date


class PolicyResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve(self, assignment_id: int) -> Policy:
        a = self.db.query(Assignment).filter(Assignment.id == assignment_id).first()
        if not a:
            raise NotFound("Assignment not found")

        return Policy(
            assignment_id=a.id,
            course_id=a.course_id,
            instructor_id=a.instructor_id,
            is_published=bool(a.is_published),
            due_date=as_utc(a.due_at),
            max_points=float(a.max_points),
            allow_late_submission=bool(a.allow_late_submission),
            late_penalty_percent=float(a.late_penalty_percent or 0),
            submission_type=SubmissionType(a.submission_type),
            allow_resubmission=bool(a.allow_resubmission),
            resubmission_deadline=as_utc(a.resubmission_deadline),
            max_resubmissions=int(a.max_resubmissions),
        )
