from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from coursework.core.current_user import Principal
from coursework.core.deps import get_db
from coursework.core.permissions import require_instructor
from coursework.models.course import Course
from coursework.schemas.analytics import CourseAnalytics
from coursework.schemas.submission import SubmissionRead
from coursework.services.analytics import summarize
from coursework.services.submission_store import SubmissionStore

router = APIRouter()


def _ensure_course_instructor(db: Session, course_id: int, instructor: Principal) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    if course.instructor_id != instructor.id:
        raise HTTPException(status_code=403, detail="Not course instructor")
    return course


@router.get("/{course_id}/analytics", response_model=CourseAnalytics)
def course_analytics(
    course_id: int,
    db: Session = Depends(get_db),
    instructor: Principal = Depends(require_instructor),
):
    _ensure_course_instructor(db, course_id, instructor)
    return CourseAnalytics(
        course_id=course_id,
        **summarize(SubmissionStore(db).find_by_course(course_id)),
    )


@router.get(
    "/{course_id}/learners/{learner_id}/submissions",
    response_model=list[SubmissionRead],
)
def learner_submissions_in_course(
    course_id: int,
    learner_id: int,
    db: Session = Depends(get_db),
    instructor: Principal = Depends(require_instructor),
):
    _ensure_course_instructor(db, course_id, instructor)
    return SubmissionStore(db).find_by_learner(learner_id, course_id=course_id)
