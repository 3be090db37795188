from dataclasses import dataclass

from fastapi import Header, HTTPException, status

LEARNER = "learner"
INSTRUCTOR = "instructor"
ROLES = (LEARNER, INSTRUCTOR)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as handed to us by the identity gateway."""

    id: int
    role: str

    @property
    def is_learner(self) -> bool:
        return self.role == LEARNER

    @property
    def is_instructor(self) -> bool:
        return self.role == INSTRUCTOR


# The gateway in front of this service authenticates the request and forwards
# the caller's id and role as headers.
def get_current_user(
    x_user_id: int | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Principal:
    if x_user_id is None or x_user_role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    if x_user_role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {x_user_role}",
        )
    return Principal(id=x_user_id, role=x_user_role)
