import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import relationship

from coursework.db.base_class import Base


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    GRADED = "graded"
    RETURNED = "returned"
    RESUBMITTED = "resubmitted"


def _status_column():
    return Enum(
        SubmissionStatus,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        length=20,
    )


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)

    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)

    # Compare-and-swap guard: every UPDATE/DELETE is issued with
    # "WHERE current_version = <value we loaded>".
    current_version = Column(Integer, nullable=False, default=1)

    # Current content
    text_content = Column(Text, nullable=False, default="")
    file_refs = Column(JSON, nullable=False, default=list)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    is_late = Column(Boolean, nullable=False, default=False)

    status = Column(_status_column(), nullable=False, default=SubmissionStatus.SUBMITTED)

    # Grading fields (nullable until graded)
    # limit in force at first submit, kept for display; grading bounds use the live assignment
    max_points = Column(Float, nullable=False)
    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=False, default="")
    graded_at = Column(DateTime(timezone=True), nullable=True)
    graded_by = Column(Integer, nullable=True)

    # Resubmission policy captured at first submit
    allow_resubmission = Column(Boolean, nullable=False, default=True)
    resubmission_deadline = Column(DateTime(timezone=True), nullable=True)
    max_resubmissions = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("assignment_id", "learner_id", name="uq_submission_assignment_learner"),
    )

    __mapper_args__ = {
        "version_id_col": current_version,
        "version_id_generator": False,
    }

    history = relationship(
        "SubmissionVersion",
        order_by="SubmissionVersion.version",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    feedback_history = relationship(
        "FeedbackEntry",
        order_by="FeedbackEntry.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class SubmissionVersion(Base):
    """A superseded version of a submission, frozen at the moment it was replaced."""

    __tablename__ = "submission_versions"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)

    version = Column(Integer, nullable=False)
    text_content = Column(Text, nullable=False, default="")
    file_refs = Column(JSON, nullable=False, default=list)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    is_late = Column(Boolean, nullable=False, default=False)
    student_comment = Column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("submission_id", "version", name="uq_submission_version"),
    )


class FeedbackEntry(Base):
    __tablename__ = "feedback_entries"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)

    feedback = Column(Text, nullable=False, default="")
    grade = Column(Float, nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=False)
    graded_by = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False)  # submission version this feedback is for


# History rows are append-only.
@event.listens_for(SubmissionVersion, "before_update")
@event.listens_for(FeedbackEntry, "before_update")
def _refuse_history_edits(mapper, connection, target):
    raise RuntimeError(f"{type(target).__name__} rows are immutable once written")
