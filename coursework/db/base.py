from coursework.db.base_class import Base

# import models so SQLAlchemy registers them on Base.metadata
from coursework.models import assignment, course, enrollment, submission  # noqa: F401

__all__ = ["Base"]
