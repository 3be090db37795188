import threading
from datetime import timedelta

import pytest

from coursework.core.errors import (
    Conflict,
    DeadlineExpired,
    Forbidden,
    LimitExceeded,
    Rejected,
    StorageError,
    ValidationError,
)
from coursework.models.assignment import Assignment
from coursework.models.submission import Submission, SubmissionStatus
from coursework.services.blob_store import Upload
from coursework.services.submission_store import SubmissionStore
from coursework.services.versioning import VersioningEngine
from tests.conftest import (
    ASSIGNMENT_ID,
    COURSE_ID,
    LEARNER_ID,
    NOW,
    RecordingBlobStore,
    TestingSessionLocal,
    pdf,
)


def submit(db, blobs, text="answer", files=None, comment=None, now=NOW, assignment_id=ASSIGNMENT_ID, learner_id=LEARNER_ID):
    return VersioningEngine(db, blobs).submit(
        assignment_id=assignment_id,
        learner_id=learner_id,
        text_content=text,
        files=files or [],
        comment=comment,
        now=now,
    )


def count_submissions(assignment_id=ASSIGNMENT_ID, learner_id=LEARNER_ID) -> int:
    db = TestingSessionLocal()
    try:
        return (
            db.query(Submission)
            .filter(Submission.assignment_id == assignment_id, Submission.learner_id == learner_id)
            .count()
        )
    finally:
        db.close()


def test_first_submit_creates_version_one(db, blobs):
    sub = submit(db, blobs, "hello")

    assert sub.current_version == 1
    assert sub.status == SubmissionStatus.SUBMITTED
    assert sub.course_id == COURSE_ID
    assert sub.history == []
    assert sub.max_resubmissions == 3
    assert sub.allow_resubmission is True


def test_version_counter_tracks_accepted_resubmissions(db, blobs, make_assignment):
    aid = make_assignment(max_resubmissions=10)

    for n in range(1, 7):
        sub = submit(db, blobs, f"v{n}", assignment_id=aid, now=NOW + timedelta(minutes=n))
        assert sub.current_version == n
        assert len(sub.history) == n - 1

    assert [v.version for v in sub.history] == [1, 2, 3, 4, 5]
    assert [v.text_content for v in sub.history] == ["v1", "v2", "v3", "v4", "v5"]
    assert sub.text_content == "v6"


def test_resubmission_limit_leaves_version_unchanged(db, blobs):
    # max_resubmissions=3: one initial submit plus three resubmissions
    for n in range(1, 5):
        sub = submit(db, blobs, f"v{n}")
    assert sub.current_version == 4

    with pytest.raises(LimitExceeded):
        submit(db, blobs, "v5")

    db.expire_all()
    sub = SubmissionStore(db).find_by_assignment_and_learner(ASSIGNMENT_ID, LEARNER_ID)
    assert sub.current_version == 4
    assert len(sub.history) == 3
    assert sub.text_content == "v4"


def test_zero_resubmissions_allows_only_first_submit(db, blobs, make_assignment):
    aid = make_assignment(max_resubmissions=0)
    submit(db, blobs, assignment_id=aid)
    with pytest.raises(LimitExceeded):
        submit(db, blobs, assignment_id=aid)


def test_resubmission_forbidden_when_disabled(db, blobs, make_assignment):
    aid = make_assignment(allow_resubmission=False)
    submit(db, blobs, assignment_id=aid)
    with pytest.raises(Forbidden, match="Resubmission is not allowed"):
        submit(db, blobs, assignment_id=aid)


def test_resubmission_deadline_is_inclusive(db, blobs, make_assignment):
    deadline = NOW + timedelta(hours=2)
    aid = make_assignment(resubmission_deadline=deadline)

    submit(db, blobs, "v1", assignment_id=aid)
    sub = submit(db, blobs, "v2", assignment_id=aid, now=deadline)
    assert sub.current_version == 2

    with pytest.raises(DeadlineExpired):
        submit(db, blobs, "v3", assignment_id=aid, now=deadline + timedelta(seconds=1))


def test_submitting_exactly_at_due_date_is_on_time(db, blobs, make_assignment):
    due = NOW + timedelta(hours=1)
    aid = make_assignment(due_at=due)

    sub = submit(db, blobs, assignment_id=aid, now=due)
    assert sub.is_late is False


def test_late_submit_rejected_and_nothing_created(db, blobs, make_assignment):
    due = NOW - timedelta(hours=1)
    aid = make_assignment(due_at=due, allow_late_submission=False)

    with pytest.raises(Rejected, match="deadline has passed"):
        submit(db, blobs, files=[pdf()], assignment_id=aid, now=due + timedelta(seconds=1))

    assert count_submissions(aid) == 0
    assert blobs.stored == []


def test_late_resubmit_rejected_keeps_current_version(db, blobs, make_assignment):
    due = NOW + timedelta(hours=1)
    aid = make_assignment(due_at=due)
    submit(db, blobs, "on time", assignment_id=aid, now=due)

    with pytest.raises(Rejected):
        submit(db, blobs, "too late", assignment_id=aid, now=due + timedelta(minutes=1))

    db.expire_all()
    sub = SubmissionStore(db).find_by_assignment_and_learner(aid, LEARNER_ID)
    assert sub.current_version == 1
    assert sub.text_content == "on time"


def test_resubmission_uses_policy_captured_at_first_submit(db, blobs):
    submit(db, blobs, "v1")

    # instructor tightens the policy afterwards
    a = db.query(Assignment).filter(Assignment.id == ASSIGNMENT_ID).first()
    a.allow_resubmission = False
    a.max_resubmissions = 0
    db.commit()

    sub = submit(db, blobs, "v2")
    assert sub.current_version == 2


def test_is_late_is_frozen_per_version(db, blobs, make_assignment):
    aid = make_assignment(due_at=NOW - timedelta(days=1), allow_late_submission=True)
    first = submit(db, blobs, "late one", assignment_id=aid)
    assert first.is_late is True

    # due date pushed out; the archived version keeps its late flag
    a = db.query(Assignment).filter(Assignment.id == aid).first()
    a.due_at = NOW + timedelta(days=7)
    db.commit()

    sub = submit(db, blobs, "on time now", assignment_id=aid)
    assert sub.is_late is False
    assert sub.history[0].is_late is True


def test_snapshot_keeps_outgoing_files(db, blobs):
    first = submit(db, blobs, "v1", files=[pdf("draft.pdf")])
    old_refs = [dict(f) for f in first.file_refs]

    sub = submit(db, blobs, "v2", files=[pdf("final.pdf")], comment="final version")

    assert sub.history[0].file_refs == old_refs
    assert sub.history[0].student_comment == "final version"
    assert [f["original_name"] for f in sub.file_refs] == ["final.pdf"]


def test_content_rules_are_checked_before_storing(db, blobs):
    with pytest.raises(ValidationError):
        submit(db, blobs, text="", files=[])

    bad = Upload(filename="x.zip", content_type="application/zip", data=b"PK")
    with pytest.raises(ValidationError, match="File type not allowed"):
        submit(db, blobs, files=[bad])

    assert blobs.stored == []
    assert count_submissions() == 0


class FailingBlobStore(RecordingBlobStore):
    """Stores the first file, then the disk "fills up"."""

    def store(self, upload: Upload):
        if self.stored:
            raise StorageError(f"Could not store file {upload.filename!r}")
        return super().store(upload)


def test_storage_failure_aborts_submit(db, tmp_path):
    blobs = FailingBlobStore(tmp_path / "flaky")

    with pytest.raises(StorageError):
        submit(db, blobs, files=[pdf("a.pdf"), pdf("b.pdf")])

    assert count_submissions() == 0
    # the file that did make it is cleaned up again
    assert [r.storage_name for r in blobs.deleted] == [r.storage_name for r in blobs.stored]
    assert not (tmp_path / "flaky" / blobs.stored[0].storage_name).exists()


def test_storage_failure_on_resubmit_keeps_previous_version(db, tmp_path):
    blobs = FailingBlobStore(tmp_path / "flaky")
    submit(db, blobs, files=[pdf("a.pdf")])

    with pytest.raises(StorageError):
        submit(db, blobs, files=[pdf("b.pdf")])

    db.expire_all()
    sub = SubmissionStore(db).find_by_assignment_and_learner(ASSIGNMENT_ID, LEARNER_ID)
    assert sub.current_version == 1
    assert sub.history == []


def test_store_unique_constraint_reports_conflict():
    s1, s2 = TestingSessionLocal(), TestingSessionLocal()
    try:

        def new_row():
            return Submission(
                assignment_id=ASSIGNMENT_ID,
                learner_id=LEARNER_ID,
                course_id=COURSE_ID,
                current_version=1,
                text_content="x",
                file_refs=[],
                submitted_at=NOW,
                is_late=False,
                status=SubmissionStatus.SUBMITTED,
                max_points=100,
                feedback="",
                allow_resubmission=True,
                max_resubmissions=3,
            )

        SubmissionStore(s1).save(new_row())
        with pytest.raises(Conflict):
            SubmissionStore(s2).save(new_row())
    finally:
        s1.close()
        s2.close()

    assert count_submissions() == 1


def test_lost_first_submit_race_retries_as_resubmission(db, blobs, monkeypatch):
    submit(db, blobs, "already here")

    # first lookup is stale: it misses the row that another request just created
    real_find = SubmissionStore.find_by_assignment_and_learner
    calls = []

    def stale_once(self, assignment_id, learner_id):
        calls.append(learner_id)
        if len(calls) == 1:
            return None
        return real_find(self, assignment_id, learner_id)

    monkeypatch.setattr(SubmissionStore, "find_by_assignment_and_learner", stale_once)

    sub = submit(db, blobs, "second writer")

    assert len(calls) == 2
    assert sub.current_version == 2
    assert sub.status == SubmissionStatus.RESUBMITTED
    assert [v.text_content for v in sub.history] == ["already here"]
    assert count_submissions() == 1


def test_conflict_after_retries_discards_uploaded_files(db, blobs, monkeypatch):
    submit(db, blobs, "existing")
    monkeypatch.setattr(SubmissionStore, "find_by_assignment_and_learner", lambda self, a, l: None)

    with pytest.raises(Conflict):
        submit(db, blobs, files=[pdf()])

    assert len(blobs.stored) == 1
    assert blobs.deleted == blobs.stored
    assert count_submissions() == 1


def test_concurrent_first_submits_create_one_record(blobs):
    barrier = threading.Barrier(2)
    results: list = []

    def worker(text):
        session = TestingSessionLocal()
        try:
            barrier.wait()
            sub = submit(session, blobs, text)
            results.append(("ok", sub.current_version))
        except Conflict:
            results.append(("conflict", None))
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(t,)) for t in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(results) == 2
    assert count_submissions() == 1

    successes = [v for kind, v in results if kind == "ok"]
    assert successes, results
    db = TestingSessionLocal()
    try:
        sub = SubmissionStore(db).find_by_assignment_and_learner(ASSIGNMENT_ID, LEARNER_ID)
        assert sub.current_version == len(successes)
        assert len(sub.history) == sub.current_version - 1
    finally:
        db.close()
