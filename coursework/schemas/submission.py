from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from coursework.models.submission import SubmissionStatus


class FileRefRead(BaseModel):
    storage_name: str
    original_name: str
    url: str
    size_bytes: int
    mime_type: str
    uploaded_at: datetime


class SubmissionRead(BaseModel):
    id: int
    assignment_id: int
    learner_id: int
    course_id: int

    current_version: int
    text_content: str
    file_refs: list[FileRefRead] = []
    submitted_at: datetime
    is_late: bool
    status: SubmissionStatus

    max_points: float = Field(description="Assignment max points when first submitted; grades are bounded by the current value")
    grade: Optional[float] = None
    feedback: str = ""
    graded_at: Optional[datetime] = None
    graded_by: Optional[int] = None

    allow_resubmission: bool
    resubmission_deadline: Optional[datetime] = None
    max_resubmissions: int

    class Config:
        from_attributes = True


class SubmissionVersionRead(BaseModel):
    version: int
    text_content: str
    file_refs: list[FileRefRead] = []
    submitted_at: datetime
    is_late: bool
    student_comment: str = ""

    class Config:
        from_attributes = True


class FeedbackEntryRead(BaseModel):
    feedback: str
    grade: Optional[float] = None
    graded_at: datetime
    graded_by: int
    version: int

    class Config:
        from_attributes = True


class SubmissionHistoryRead(BaseModel):
    submission: SubmissionRead
    history: list[SubmissionVersionRead]
    feedback_history: list[FeedbackEntryRead]


class SubmissionGradeUpdate(BaseModel):
    grade: float = Field(allow_inf_nan=False)
    feedback: Optional[str] = None


class FeedbackCreate(BaseModel):
    feedback: str = Field(min_length=1)
    grade: Optional[float] = Field(default=None, allow_inf_nan=False)
