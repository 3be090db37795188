import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from coursework.core.errors import Conflict, NotFound
from coursework.models.submission import Submission

logger = logging.getLogger(__name__)


class SubmissionStore:
    """Persistence for the Submission aggregate (record + version and feedback history)."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, submission_id: int) -> Submission:
        sub = self.db.query(Submission).filter(Submission.id == submission_id).first()
        if not sub:
            raise NotFound("Submission not found")
        return sub

    def find_by_assignment_and_learner(self, assignment_id: int, learner_id: int) -> Submission | None:
        return (
            self.db.query(Submission)
            .filter(
                Submission.assignment_id == assignment_id,
                Submission.learner_id == learner_id,
            )
            .first()
        )

    def find_by_assignment(self, assignment_id: int) -> list[Submission]:
        return (
            self.db.query(Submission)
            .filter(Submission.assignment_id == assignment_id)
            .order_by(Submission.submitted_at.desc(), Submission.id.desc())
            .all()
        )

    def find_by_course(self, course_id: int) -> list[Submission]:
        return (
            self.db.query(Submission)
            .filter(Submission.course_id == course_id)
            .order_by(Submission.submitted_at.desc(), Submission.id.desc())
            .all()
        )

    def find_by_learner(self, learner_id: int, course_id: int | None = None) -> list[Submission]:
        q = self.db.query(Submission).filter(Submission.learner_id == learner_id)
        if course_id is not None:
            q = q.filter(Submission.course_id == course_id)
        return q.order_by(Submission.submitted_at.desc(), Submission.id.desc()).all()

    def save(self, submission: Submission) -> Submission:
        """
        Commit the aggregate.

        Raises Conflict when another writer got there first: either a second
        first-submission for the same (assignment, learner) pair tripped the
        unique constraint, or the row's current_version moved under us.
        """
        self.db.add(submission)
        try:
            self.db.commit()
        except (IntegrityError, StaleDataError) as e:
            self.db.rollback()
            logger.warning(
                "Lost write race on submission assignment=%s learner=%s: %s",
                submission.assignment_id,
                submission.learner_id,
                e.__class__.__name__,
            )
            raise Conflict("Submission was modified concurrently, please retry") from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(submission)
        return submission

    def delete(self, submission: Submission) -> None:
        self.db.delete(submission)
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise Conflict("Submission was modified concurrently, please retry") from e
        except Exception:
            self.db.rollback()
            raise

    def reset(self) -> None:
        """Drop anything the session remembers so the next read hits the database."""
        self.db.rollback()
        self.db.expire_all()
