"""
Read-only course reporting over a set of submissions.

Nothing here touches the database; callers hand in the submissions.
"""

from collections import Counter
from collections.abc import Iterable

from coursework.models.submission import Submission, SubmissionStatus
from coursework.services.policy import as_utc

# (label, lower bound inclusive, upper bound exclusive); top bucket includes 100
GRADE_BUCKETS = (
    ("A (90-100)", 90, None),
    ("B (80-89)", 80, 90),
    ("C (70-79)", 70, 80),
    ("D (60-69)", 60, 70),
    ("F (0-59)", None, 60),
)


def _bucket_for(grade: float) -> str:
    for label, low, high in GRADE_BUCKETS:
        if (low is None or grade >= low) and (high is None or grade < high):
            return label
    raise ValueError(grade)  # unreachable: the buckets cover the real line


def summarize(submissions: Iterable[Submission]) -> dict:
    subs = list(submissions)

    by_status = {s.value: 0 for s in SubmissionStatus}
    for s in subs:
        by_status[SubmissionStatus(s.status).value] += 1

    graded_count = by_status[SubmissionStatus.GRADED.value] + by_status[SubmissionStatus.RETURNED.value]
    grades = [s.grade for s in subs if s.grade is not None]
    average = round(sum(grades) / len(grades), 2) if grades else None

    distribution = {label: 0 for label, _low, _high in GRADE_BUCKETS}
    for g in grades:
        distribution[_bucket_for(g)] += 1

    timeline = Counter(as_utc(s.submitted_at).date().isoformat() for s in subs)

    return {
        "total_submissions": len(subs),
        "graded_submissions": graded_count,
        "pending_submissions": len(subs) - graded_count,
        "late_submissions": sum(1 for s in subs if s.is_late),
        "by_status": by_status,
        "average_grade": average,
        "grade_distribution": distribution,
        "submission_timeline": dict(sorted(timeline.items())),
    }
