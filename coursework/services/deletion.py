import logging

from sqlalchemy.orm import Session

from coursework.core.current_user import Principal
from coursework.core.permissions import ensure_instructor_owns
from coursework.services.blob_store import BlobStore, FileRef
from coursework.services.policy import PolicyResolver
from coursework.services.submission_store import SubmissionStore

logger = logging.getLogger(__name__)


def all_file_refs(sub) -> list[FileRef]:
    """Every file the submission ever referenced: current version first, then history."""
    refs = [FileRef.from_dict(f) for f in sub.file_refs or []]
    for version in sub.history:
        refs.extend(FileRef.from_dict(f) for f in version.file_refs or [])
    return refs


def delete_submission(db: Session, blobs: BlobStore, submission_id: int, grader: Principal) -> None:
    store = SubmissionStore(db)
    sub = store.get(submission_id)
    policy = PolicyResolver(db).resolve(sub.assignment_id)
    ensure_instructor_owns(grader, policy)

    # Best-effort: a file that cannot be removed must not keep the record alive.
    for ref in all_file_refs(sub):
        try:
            blobs.delete(ref)
        except Exception:
            logger.warning(
                "Could not delete file %s of submission %s", ref.storage_name, submission_id, exc_info=True
            )

    store.delete(sub)
    logger.info("Submission %s deleted by instructor %s", submission_id, grader.id)
