from fastapi import Depends, HTTPException, status

from coursework.core.current_user import Principal, get_current_user
from coursework.core.errors import Forbidden
from coursework.services.policy import Policy


def require_instructor(current_user: Principal = Depends(get_current_user)) -> Principal:
    if not current_user.is_instructor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Instructor role required",
        )
    return current_user


def require_learner(current_user: Principal = Depends(get_current_user)) -> Principal:
    if not current_user.is_learner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Learner role required",
        )
    return current_user


def ensure_instructor_owns(principal: Principal, policy: Policy) -> None:
    if not principal.is_instructor or policy.instructor_id != principal.id:
        raise Forbidden("Only the assignment's instructor can do this")


def ensure_can_view(principal: Principal, learner_id: int, policy: Policy) -> None:
    """Learners see their own submission; instructors see submissions of assignments they own."""
    if principal.is_learner:
        if learner_id != principal.id:
            raise Forbidden("Access denied")
        return
    ensure_instructor_owns(principal, policy)
