from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from coursework.core.config import MAX_UPLOAD_BYTES
from coursework.core.current_user import Principal, get_current_user
from coursework.core.deps import get_blob_store, get_db
from coursework.core.permissions import ensure_can_view, ensure_instructor_owns, require_instructor, require_learner
from coursework.schemas.submission import (
    FeedbackCreate,
    FeedbackEntryRead,
    SubmissionGradeUpdate,
    SubmissionHistoryRead,
    SubmissionRead,
    SubmissionVersionRead,
)
from coursework.services.blob_store import BlobStore, Upload
from coursework.services.deletion import delete_submission
from coursework.services.grading import GradingEngine
from coursework.services.policy import PolicyResolver
from coursework.services.submission_store import SubmissionStore
from coursework.services.versioning import VersioningEngine

router = APIRouter()


def _read_uploads(files: Optional[list[UploadFile]]) -> list[Upload]:
    uploads: list[Upload] = []
    for f in files or []:
        # browsers send an empty part when no file was picked
        if not f.filename:
            continue
        uploads.append(
            Upload(
                filename=f.filename,
                content_type=f.content_type or "application/octet-stream",
                # one byte past the limit is enough to reject oversized parts
                data=f.file.read(MAX_UPLOAD_BYTES + 1),
            )
        )
    return uploads


@router.post(
    "/assignments/{assignment_id}/submissions",
    response_model=SubmissionRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_assignment(
    assignment_id: int,
    text_content: Optional[str] = Form(default=None),
    comment: Optional[str] = Form(default=None),
    files: Optional[list[UploadFile]] = File(default=None),
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    me: Principal = Depends(require_learner),
):
    engine = VersioningEngine(db, blobs)
    return engine.submit(
        assignment_id=assignment_id,
        learner_id=me.id,
        text_content=text_content,
        files=_read_uploads(files),
        comment=comment,
        now=datetime.now(timezone.utc),
    )


@router.get(
    "/assignments/{assignment_id}/submissions",
    response_model=list[SubmissionRead],
)
def list_submissions_for_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    instructor: Principal = Depends(require_instructor),
):
    policy = PolicyResolver(db).resolve(assignment_id)
    ensure_instructor_owns(instructor, policy)
    return SubmissionStore(db).find_by_assignment(assignment_id)


@router.get("/submissions/me", response_model=list[SubmissionRead])
def my_submissions(
    db: Session = Depends(get_db),
    me: Principal = Depends(require_learner),
):
    return SubmissionStore(db).find_by_learner(me.id)


@router.get("/submissions/{submission_id}", response_model=SubmissionRead)
def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    me: Principal = Depends(get_current_user),
):
    sub = SubmissionStore(db).get(submission_id)
    ensure_can_view(me, sub.learner_id, PolicyResolver(db).resolve(sub.assignment_id))
    return sub


@router.get("/submissions/{submission_id}/history", response_model=SubmissionHistoryRead)
def get_submission_history(
    submission_id: int,
    db: Session = Depends(get_db),
    me: Principal = Depends(get_current_user),
):
    sub = SubmissionStore(db).get(submission_id)
    ensure_can_view(me, sub.learner_id, PolicyResolver(db).resolve(sub.assignment_id))
    return SubmissionHistoryRead(
        submission=SubmissionRead.model_validate(sub),
        history=[SubmissionVersionRead.model_validate(v) for v in sub.history],
        feedback_history=[FeedbackEntryRead.model_validate(f) for f in sub.feedback_history],
    )


@router.patch("/submissions/{submission_id}/grade", response_model=SubmissionRead)
def grade_submission(
    submission_id: int,
    payload: SubmissionGradeUpdate,
    db: Session = Depends(get_db),
    instructor: Principal = Depends(require_instructor),
):
    return GradingEngine(db).grade(
        submission_id,
        instructor,
        raw_grade=payload.grade,
        feedback=payload.feedback,
        now=datetime.now(timezone.utc),
    )


@router.put("/submissions/{submission_id}/return", response_model=SubmissionRead)
def return_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    instructor: Principal = Depends(require_instructor),
):
    return GradingEngine(db).return_submission(submission_id, instructor)


@router.post("/submissions/{submission_id}/feedback", response_model=SubmissionRead)
def add_feedback(
    submission_id: int,
    payload: FeedbackCreate,
    db: Session = Depends(get_db),
    instructor: Principal = Depends(require_instructor),
):
    return GradingEngine(db).add_feedback(
        submission_id,
        instructor,
        feedback=payload.feedback,
        grade=payload.grade,
        now=datetime.now(timezone.utc),
    )


@router.delete("/submissions/{submission_id}")
def remove_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    instructor: Principal = Depends(require_instructor),
):
    delete_submission(db, blobs, submission_id, instructor)
    return {"detail": "Submission deleted"}
