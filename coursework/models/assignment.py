import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from coursework.core.config import DEFAULT_MAX_RESUBMISSIONS
from coursework.db.base_class import Base


class SubmissionType(str, enum.Enum):
    FILE_UPLOAD = "file-upload"
    TEXT = "text"
    BOTH = "both"


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    instructor_id = Column(Integer, nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    due_at = Column(DateTime(timezone=True), nullable=False, index=True)
    max_points = Column(Float, nullable=False, default=100)

    is_published = Column(Boolean, nullable=False, default=False, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)

    # Late policy
    allow_late_submission = Column(Boolean, nullable=False, default=False)
    late_penalty_percent = Column(Float, nullable=False, default=0)  # 0..100

    submission_type = Column(
        Enum(SubmissionType, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        nullable=False,
        default=SubmissionType.BOTH,
    )

    # Resubmission policy
    allow_resubmission = Column(Boolean, nullable=False, default=True)
    resubmission_deadline = Column(DateTime(timezone=True), nullable=True)
    max_resubmissions = Column(Integer, nullable=False, default=DEFAULT_MAX_RESUBMISSIONS)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    course = relationship("Course", back_populates="assignments")
