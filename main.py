import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import analytics
import config
import database
import models
from database import get_db
from repository import DuplicateEntryError, InvalidTransitionError, ReportingRepository

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database.init_db()
    except SQLAlchemyError:
        logger.critical("Could not initialise the database", exc_info=True)
        raise
    yield


app = FastAPI(title="LUCT Lecture Reporting API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def get_repository(db: Session = Depends(get_db)) -> ReportingRepository:
    return ReportingRepository(db)


# ========== Error handlers ==========
@app.exception_handler(DuplicateEntryError)
async def duplicate_entry_handler(request: Request, exc: DuplicateEntryError):
    logger.warning("Duplicate entry on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Constraint violation on %s: %s", request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Request violates a data constraint"},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Database error"},
    )


def login_as(role: models.Role, credentials: models.Credentials, repo: ReportingRepository):
    user = repo.authenticate(credentials.email, credentials.password, role)
    if not user:
        logger.warning("Rejected %s login for %s", role.value, credentials.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return {
        "success": True,
        "message": "Login successful!",
        "user": models.UserPublic.model_validate(user),
    }


def require_report(report_id: int, repo: ReportingRepository):
    report = repo.get_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


def require_lecturer(lecturer_id: int, repo: ReportingRepository):
    lecturer = repo.get_user(lecturer_id, role=models.Role.LECTURER)
    if not lecturer:
        raise HTTPException(status_code=404, detail="Lecturer not found")
    return lecturer


# ========== Students Endpoints ==========
@app.post("/api/students/register", status_code=status.HTTP_201_CREATED)
def register_student(data: models.StudentRegister, repo: ReportingRepository = Depends(get_repository)):
    user = repo.register_user(data.email, data.password, data.name, role=models.Role.STUDENT)
    return {
        "success": True,
        "message": "Student registered successfully!",
        "userId": user.id,
        "user": models.UserPublic.model_validate(user),
    }


@app.post("/api/students/login")
def login_student(credentials: models.Credentials, repo: ReportingRepository = Depends(get_repository)):
    return login_as(models.Role.STUDENT, credentials, repo)


@app.get("/api/students/reports", response_model=List[models.Report])
def read_student_reports(repo: ReportingRepository = Depends(get_repository)):
    return repo.list_reports()


@app.get("/api/students/reports/course/{course_code}", response_model=List[models.Report])
def read_student_course_reports(course_code: str, repo: ReportingRepository = Depends(get_repository)):
    return repo.list_reports(course_code=course_code)


@app.post("/api/students/ratings", status_code=status.HTTP_201_CREATED)
def create_rating(rating: models.RatingCreate, repo: ReportingRepository = Depends(get_repository)):
    if rating.rating_value < 1 or rating.rating_value > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")

    require_report(rating.report_id, repo)
    if not repo.get_user(rating.student_id, role=models.Role.STUDENT):
        raise HTTPException(status_code=404, detail="Student not found")

    db_rating = repo.create_rating(rating)
    return {
        "success": True,
        "message": "Rating submitted successfully!",
        "ratingId": db_rating.id,
    }


# ========== Lecturer Endpoints ==========
@app.post("/api/lecturers/login")
def login_lecturer(credentials: models.Credentials, repo: ReportingRepository = Depends(get_repository)):
    return login_as(models.Role.LECTURER, credentials, repo)


@app.get("/api/reports/courses", response_model=List[models.Course])
def read_courses(repo: ReportingRepository = Depends(get_repository)):
    return repo.list_courses()


@app.post("/api/reports", status_code=status.HTTP_201_CREATED)
def create_report(report: models.ReportCreate, repo: ReportingRepository = Depends(get_repository)):
    lecturer = require_lecturer(report.lecturer_id, repo) if report.lecturer_id is not None else None
    db_report = repo.create_report(report, lecturer=lecturer)
    return {
        "success": True,
        "message": "Report submitted successfully!",
        "reportId": db_report.id,
    }


@app.get("/api/reports", response_model=List[models.Report])
def read_reports(repo: ReportingRepository = Depends(get_repository)):
    return repo.list_reports()


@app.get("/api/reports/lecturer/{lecturer_name}", response_model=List[models.Report])
def read_lecturer_reports(lecturer_name: str, repo: ReportingRepository = Depends(get_repository)):
    return repo.list_reports(lecturer_name=lecturer_name)


# ========== PRL Endpoints ==========
@app.post("/api/prl/login")
def login_prl(credentials: models.Credentials, repo: ReportingRepository = Depends(get_repository)):
    return login_as(models.Role.PRL, credentials, repo)


@app.get("/api/prl/courses")
def read_prl_courses(db: Session = Depends(get_db)):
    return analytics.prl_courses(db)


@app.get("/api/prl/courses/{course_code}/lectures", response_model=List[models.ReportDetail])
def read_course_lectures(course_code: str, db: Session = Depends(get_db)):
    return analytics.course_lectures(db, course_code)


@app.get("/api/prl/reports", response_model=List[models.ReportDetail])
def read_prl_reports(report_status: Optional[models.ReportStatus] = Query(None, alias="status"),
                     db: Session = Depends(get_db)):
    criteria = [database.Report.status == report_status.value] if report_status else []
    return analytics.report_details(db, *criteria)


@app.get("/api/prl/reports/status/{report_status}", response_model=List[models.ReportDetail])
def read_prl_reports_by_status(report_status: models.ReportStatus, db: Session = Depends(get_db)):
    return analytics.report_details(db, database.Report.status == report_status.value)


@app.put("/api/prl/reports/{report_id}/feedback")
def submit_feedback(report_id: int, data: models.FeedbackUpdate,
                    repo: ReportingRepository = Depends(get_repository)):
    report = repo.apply_feedback(report_id, data.feedback, data.status or models.ReportStatus.REVIEWED)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return {
        "success": True,
        "message": "Feedback submitted successfully!",
        "reportId": report.id,
        "status": report.status,
    }


@app.get("/api/prl/monitoring")
def read_prl_monitoring(range_: models.MonitoringRange = Query(models.MonitoringRange.ALL, alias="range"),
                        db: Session = Depends(get_db)):
    return analytics.prl_monitoring(db, range_)


@app.get("/api/prl/ratings")
def read_prl_ratings(db: Session = Depends(get_db)):
    return analytics.prl_ratings(db)


@app.get("/api/prl/classes")
def read_prl_classes(db: Session = Depends(get_db)):
    return analytics.class_overview(db)


@app.get("/api/prl/classes/{class_name}")
def read_class_details(class_name: str, db: Session = Depends(get_db)):
    details = analytics.class_details(db, class_name)
    if details is None:
        raise HTTPException(status_code=404, detail="Class not found")
    return details


# ========== PL Endpoints ==========
@app.post("/api/pl/login")
def login_pl(credentials: models.Credentials, repo: ReportingRepository = Depends(get_repository)):
    return login_as(models.Role.PL, credentials, repo)


@app.get("/api/pl/dashboard")
def read_pl_dashboard(db: Session = Depends(get_db)):
    return analytics.pl_dashboard(db)


@app.post("/api/pl/courses", status_code=status.HTTP_201_CREATED)
def create_module(module: models.ModuleCreate, repo: ReportingRepository = Depends(get_repository)):
    if module.lecturer_id is not None:
        require_lecturer(module.lecturer_id, repo)
    db_module = repo.create_module(module)
    return {
        "success": True,
        "message": "Course module added successfully!",
        "moduleId": db_module.id,
    }


@app.get("/api/pl/courses")
def read_pl_courses(db: Session = Depends(get_db)):
    return analytics.pl_modules(db)


@app.put("/api/pl/courses/{module_id}/assign")
def assign_lecturer(module_id: int, data: models.LecturerAssignment,
                    repo: ReportingRepository = Depends(get_repository)):
    if data.lecturer_id is not None:
        require_lecturer(data.lecturer_id, repo)
    module = repo.assign_lecturer(module_id, data.lecturer_id)
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")
    return {"success": True, "message": "Lecturer assigned successfully!"}


@app.get("/api/pl/reports", response_model=List[models.ReportDetail])
def read_pl_reports(db: Session = Depends(get_db)):
    return analytics.report_details(db, database.Report.prl_feedback.isnot(None))


@app.get("/api/pl/monitoring")
def read_pl_monitoring(db: Session = Depends(get_db)):
    return analytics.pl_monitoring(db)


@app.get("/api/pl/classes")
def read_pl_classes(db: Session = Depends(get_db)):
    return analytics.class_overview(db, with_program=True)


@app.get("/api/pl/lectures", response_model=List[models.ReportDetail])
def read_pl_lectures(db: Session = Depends(get_db)):
    return analytics.pl_lectures(db)


@app.get("/api/pl/ratings")
def read_pl_ratings(db: Session = Depends(get_db)):
    return analytics.pl_ratings(db)


@app.get("/api/pl/lecturers", response_model=List[models.Lecturer])
def read_lecturers(repo: ReportingRepository = Depends(get_repository)):
    return repo.list_lecturers()


# ========== Utility Endpoints ==========
@app.get("/api/test")
def api_test():
    return {
        "message": "Backend API is working!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/health")
def health_check(db: Session = Depends(get_db)):
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "unhealthy", "database": "disconnected", "timestamp": timestamp},
        )
    return {"status": "healthy", "database": "connected", "timestamp": timestamp}


def run():
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
