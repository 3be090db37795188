from typing import Optional

from pydantic import BaseModel


class CourseAnalytics(BaseModel):
    course_id: int
    total_submissions: int
    graded_submissions: int
    pending_submissions: int
    late_submissions: int
    by_status: dict[str, int]
    average_grade: Optional[float] = None
    grade_distribution: dict[str, int]
    submission_timeline: dict[str, int]  # "YYYY-MM-DD" -> count
