"""
Submit / resubmit.

A learner has exactly one Submission per assignment. The first submit creates
it at version 1; every later submit archives the outgoing content as a
SubmissionVersion and advances ``current_version`` by one.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from coursework.core.concurrency import KeyedLock, submission_locks
from coursework.core.config import ALLOWED_MIME_TYPES, CONFLICT_RETRIES, MAX_FILES_PER_SUBMISSION, MAX_UPLOAD_BYTES
from coursework.core.errors import (
    Conflict,
    DeadlineExpired,
    Forbidden,
    LimitExceeded,
    PolicyViolation,
    Rejected,
    ValidationError,
)
from coursework.models.assignment import SubmissionType
from coursework.models.enrollment import Enrollment
from coursework.models.submission import Submission, SubmissionStatus, SubmissionVersion
from coursework.services.blob_store import BlobStore, FileRef, Upload
from coursework.services.lifecycle import transition
from coursework.services.policy import Policy, PolicyResolver, as_utc
from coursework.services.submission_store import SubmissionStore

logger = logging.getLogger(__name__)


def validate_content(submission_type: SubmissionType, text_content: str, files: list[Upload]) -> None:
    has_text = bool(text_content and text_content.strip())
    has_files = len(files) > 0

    if submission_type == SubmissionType.FILE_UPLOAD and not has_files:
        raise ValidationError("File upload is required for this assignment")
    if submission_type == SubmissionType.TEXT and not has_text:
        raise ValidationError("Text submission is required for this assignment")
    if submission_type == SubmissionType.BOTH and not (has_text or has_files):
        raise ValidationError("Submit some text or at least one file")


def validate_uploads(files: list[Upload]) -> None:
    if len(files) > MAX_FILES_PER_SUBMISSION:
        raise ValidationError(f"At most {MAX_FILES_PER_SUBMISSION} files per submission")
    for f in files:
        if f.content_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                f"File type not allowed for {f.filename!r}. "
                "Only PDF, DOC, DOCX, PPT, PPTX, TXT, and image files are allowed."
            )
        if len(f.data) > MAX_UPLOAD_BYTES:
            raise ValidationError(f"File {f.filename!r} exceeds {MAX_UPLOAD_BYTES} bytes")


def check_resubmission_allowed(submission: Submission, now: datetime) -> None:
    """Resubmission rules use the policy captured on the submission, not the live one."""
    if not submission.allow_resubmission:
        raise Forbidden("Resubmission is not allowed for this assignment")

    resubmissions_used = submission.current_version - 1
    if resubmissions_used >= submission.max_resubmissions:
        raise LimitExceeded("Maximum resubmissions reached")

    deadline = as_utc(submission.resubmission_deadline)
    if deadline is not None and as_utc(now) > deadline:
        raise DeadlineExpired("Resubmission deadline has passed")


class VersioningEngine:
    def __init__(self, db: Session, blobs: BlobStore, locks: KeyedLock = submission_locks):
        self.db = db
        self.blobs = blobs
        self.locks = locks
        self.policies = PolicyResolver(db)
        self.store = SubmissionStore(db)

    def submit(
        self,
        assignment_id: int,
        learner_id: int,
        text_content: str | None,
        files: list[Upload],
        comment: str | None,
        now: datetime,
    ) -> Submission:
        policy = self.policies.resolve(assignment_id)
        self._ensure_enrolled(policy.course_id, learner_id)

        if not policy.is_published:
            raise PolicyViolation("Assignment is not yet published")

        is_late = policy.is_late(now)
        if is_late and not policy.allow_late_submission:
            raise Rejected("Assignment deadline has passed")

        text_content = text_content or ""
        validate_content(policy.submission_type, text_content, files)
        validate_uploads(files)

        with self.locks.hold((assignment_id, learner_id)):
            return self._submit_locked(policy, learner_id, text_content, files, comment or "", now, is_late)

    def _submit_locked(
        self,
        policy: Policy,
        learner_id: int,
        text_content: str,
        files: list[Upload],
        comment: str,
        now: datetime,
        is_late: bool,
    ) -> Submission:
        stored: list[FileRef] | None = None
        try:
            for attempt in range(1, CONFLICT_RETRIES + 1):
                existing = self.store.find_by_assignment_and_learner(policy.assignment_id, learner_id)
                if existing is not None:
                    check_resubmission_allowed(existing, now)

                # files go to the blob store before anything touches the record
                if stored is None:
                    stored = self._store_files(files)
                file_refs = [ref.as_dict() for ref in stored]

                if existing is None:
                    sub = self._first_version(policy, learner_id, text_content, file_refs, now, is_late)
                else:
                    sub = self._next_version(existing, text_content, file_refs, now, is_late, comment)

                try:
                    saved = self.store.save(sub)
                except Conflict:
                    if attempt == CONFLICT_RETRIES:
                        raise
                    logger.info(
                        "Retrying submit for assignment=%s learner=%s (attempt %s)",
                        policy.assignment_id,
                        learner_id,
                        attempt + 1,
                    )
                    self.store.reset()
                    continue

                logger.info(
                    "Submission %s for assignment=%s learner=%s now at version %s (late=%s)",
                    saved.id,
                    saved.assignment_id,
                    saved.learner_id,
                    saved.current_version,
                    saved.is_late,
                )
                return saved
        except Exception:
            self._discard(stored or [])
            raise

        raise Conflict("Submission was modified concurrently, please retry")

    def _first_version(
        self,
        policy: Policy,
        learner_id: int,
        text_content: str,
        file_refs: list[dict],
        now: datetime,
        is_late: bool,
    ) -> Submission:
        return Submission(
            assignment_id=policy.assignment_id,
            learner_id=learner_id,
            course_id=policy.course_id,
            current_version=1,
            text_content=text_content,
            file_refs=file_refs,
            submitted_at=now,
            is_late=is_late,
            status=SubmissionStatus.SUBMITTED,
            max_points=policy.max_points,
            feedback="",
            allow_resubmission=policy.allow_resubmission,
            resubmission_deadline=policy.resubmission_deadline,
            max_resubmissions=policy.max_resubmissions,
        )

    def _next_version(
        self,
        sub: Submission,
        text_content: str,
        file_refs: list[dict],
        now: datetime,
        is_late: bool,
        comment: str,
    ) -> Submission:
        sub.history.append(
            SubmissionVersion(
                version=sub.current_version,
                text_content=sub.text_content,
                file_refs=[dict(f) for f in sub.file_refs],
                submitted_at=sub.submitted_at,
                is_late=sub.is_late,
                student_comment=comment,
            )
        )

        sub.text_content = text_content
        sub.file_refs = file_refs
        sub.submitted_at = now
        sub.is_late = is_late
        transition(sub, SubmissionStatus.RESUBMITTED)
        sub.current_version = sub.current_version + 1
        return sub

    def _ensure_enrolled(self, course_id: int, learner_id: int) -> None:
        enrolled = (
            self.db.query(Enrollment)
            .filter(Enrollment.course_id == course_id, Enrollment.learner_id == learner_id)
            .first()
            is not None
        )
        if not enrolled:
            raise Forbidden("Not enrolled in this course")

    def _store_files(self, files: list[Upload]) -> list[FileRef]:
        stored: list[FileRef] = []
        try:
            for f in files:
                stored.append(self.blobs.store(f))
        except Exception:
            self._discard(stored)
            raise
        return stored

    def _discard(self, refs: list[FileRef]) -> None:
        for ref in refs:
            try:
                self.blobs.delete(ref)
            except Exception:
                logger.warning("Could not clean up orphaned upload %s", ref.storage_name, exc_info=True)
