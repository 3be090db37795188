import logging

from fastapi import FastAPI

from coursework.core.errors import SubmissionError, submission_error_handler
from coursework.core.logging_middleware import LoggingMiddleware
from coursework.db.init_db import init_db
from coursework.routers.courses import router as courses_router
from coursework.routers.submissions import router as submissions_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(title="Coursework Submissions")

# Middleware
app.add_middleware(LoggingMiddleware)

# Domain errors -> {"detail", "code"} with the matching status
app.add_exception_handler(SubmissionError, submission_error_handler)


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Startup event
@app.on_event("startup")
def on_startup():
    init_db()


# Include routers
app.include_router(courses_router, prefix="/courses", tags=["courses"])
app.include_router(submissions_router, tags=["submissions"])
