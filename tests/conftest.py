import os
import tempfile
from datetime import datetime, timedelta, timezone

TEST_DB_FILE = "test_coursework.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

# must be set before the app's engine is created
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="coursework-uploads-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from coursework.core.deps import get_blob_store, get_db  # noqa: E402
from coursework.db.base import Base  # noqa: E402
from coursework.main import app  # noqa: E402
from coursework.models.assignment import Assignment, SubmissionType  # noqa: E402
from coursework.models.course import Course  # noqa: E402
from coursework.models.enrollment import Enrollment  # noqa: E402
from coursework.models.submission import FeedbackEntry, Submission, SubmissionVersion  # noqa: E402
from coursework.services.blob_store import FileRef, LocalBlobStore, Upload  # noqa: E402

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime.now(timezone.utc).replace(microsecond=0)

INSTRUCTOR_ID = 100
OTHER_INSTRUCTOR_ID = 200
LEARNER_ID = 1
OTHER_LEARNER_ID = 2
OUTSIDER_ID = 3  # not enrolled anywhere

COURSE_ID = 1
ASSIGNMENT_ID = 1


def learner_headers(learner_id: int = LEARNER_ID) -> dict:
    return {"X-User-Id": str(learner_id), "X-User-Role": "learner"}


def instructor_headers(instructor_id: int = INSTRUCTOR_ID) -> dict:
    return {"X-User-Id": str(instructor_id), "X-User-Role": "instructor"}


def pdf(name: str = "essay.pdf", body: bytes = b"%PDF-1.4 test") -> Upload:
    return Upload(filename=name, content_type="application/pdf", data=body)


class RecordingBlobStore(LocalBlobStore):
    """Disk store that remembers what was stored and deleted."""

    def __init__(self, root):
        super().__init__(root, "/uploads/submissions")
        self.stored: list[FileRef] = []
        self.deleted: list[FileRef] = []

    def store(self, upload: Upload) -> FileRef:
        ref = super().store(upload)
        self.stored.append(ref)
        return ref

    def delete(self, ref: FileRef) -> None:
        super().delete(ref)
        self.deleted.append(ref)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed_data():
    """Seed a clean minimal dataset for each test."""
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        db.query(FeedbackEntry).delete()
        db.query(SubmissionVersion).delete()
        db.query(Submission).delete()
        db.query(Enrollment).delete()
        db.query(Assignment).delete()
        db.query(Course).delete()
        db.commit()

        db.add_all(
            [
                Course(id=COURSE_ID, title="CS5004", instructor_id=INSTRUCTOR_ID),
                Course(id=2, title="MATH101", instructor_id=OTHER_INSTRUCTOR_ID),
            ]
        )
        db.commit()

        db.add_all(
            [
                Enrollment(course_id=COURSE_ID, learner_id=LEARNER_ID),
                Enrollment(course_id=COURSE_ID, learner_id=OTHER_LEARNER_ID),
            ]
        )

        # Assignment (future due date so submissions allowed)
        db.add(
            Assignment(
                id=ASSIGNMENT_ID,
                course_id=COURSE_ID,
                instructor_id=INSTRUCTOR_ID,
                title="HW1",
                due_at=NOW + timedelta(days=1),
                max_points=100,
                is_published=True,
                allow_late_submission=False,
                late_penalty_percent=20,
                submission_type=SubmissionType.BOTH,
                allow_resubmission=True,
                max_resubmissions=3,
            )
        )
        db.commit()

        yield
    finally:
        db.close()


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def blobs(tmp_path):
    return RecordingBlobStore(tmp_path / "blobs")


@pytest.fixture()
def make_assignment():
    """Insert an extra assignment in course 1; keyword args override the defaults."""

    def _make(**overrides) -> int:
        fields = dict(
            course_id=COURSE_ID,
            instructor_id=INSTRUCTOR_ID,
            title="Extra",
            due_at=NOW + timedelta(days=1),
            max_points=100,
            is_published=True,
            allow_late_submission=False,
            late_penalty_percent=0,
            submission_type=SubmissionType.BOTH,
            allow_resubmission=True,
            max_resubmissions=3,
        )
        fields.update(overrides)
        session = TestingSessionLocal()
        try:
            a = Assignment(**fields)
            session.add(a)
            session.commit()
            return a.id
        finally:
            session.close()

    return _make


@pytest.fixture()
def client(blobs):
    """Test client that uses the test DB session and a temp blob store."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blobs
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
