import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import database
from models import ModuleCreate, RatingCreate, ReportCreate, ReportStatus, Role

logger = logging.getLogger(__name__)


class DuplicateEntryError(Exception):
    """A row with the same unique key already exists."""


class InvalidTransitionError(Exception):
    """The requested report status change is not allowed."""


class ReportingRepository:
    """Data access for one request, bound to that request's session.

    Uniqueness (emails, module codes, one rating per student and report) is
    left to the store's constraints: rows are inserted in a single statement
    and a constraint violation is turned into ``DuplicateEntryError``.
    """

    def __init__(self, db: Session):
        self.db = db

    def _insert_unique(self, row, exists, message):
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if exists():
                raise DuplicateEntryError(message)
            raise
        self.db.refresh(row)
        return row

    # ========== Users ==========
    def get_user(self, user_id: int, role: Optional[Role] = None) -> Optional[database.User]:
        query = self.db.query(database.User).filter(database.User.id == user_id)
        if role is not None:
            query = query.filter(database.User.role == role.value)
        return query.first()

    def get_user_by_email(self, email: str) -> Optional[database.User]:
        return self.db.query(database.User).filter(database.User.email == email).first()

    def register_user(self, email: str, password: str, name: str, role: Role = Role.STUDENT) -> database.User:
        user = database.User(email=email, password=password, name=name, role=role.value)
        user = self._insert_unique(
            user,
            lambda: self.get_user_by_email(email) is not None,
            "User with this email already exists",
        )
        logger.info("Registered %s user %s with id %s", role.value, email, user.id)
        return user

    def authenticate(self, email: str, password: str, role: Role) -> Optional[database.User]:
        # Plaintext comparison, as stored
        return self.db.query(database.User).filter(
            database.User.email == email,
            database.User.password == password,
            database.User.role == role.value,
        ).first()

    def list_lecturers(self) -> List[database.User]:
        return (
            self.db.query(database.User)
            .filter(database.User.role == Role.LECTURER.value)
            .order_by(database.User.name)
            .all()
        )

    # ========== Courses ==========
    def list_courses(self) -> List[database.Course]:
        return self.db.query(database.Course).order_by(database.Course.id).all()

    # ========== Reports ==========
    def create_report(self, data: ReportCreate, lecturer: Optional[database.User] = None) -> database.Report:
        values = data.model_dump(exclude={"lecturer_id", "lecturer_name"})
        report = database.Report(
            **values,
            lecturer_id=lecturer.id if lecturer else None,
            lecturer_name=lecturer.name if lecturer else data.lecturer_name,
            status=ReportStatus.SUBMITTED.value,
        )
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)
        logger.info(
            "Report %s saved for %s class %s week %s",
            report.id, report.course_code, report.class_name, report.week_of_reporting,
        )
        return report

    def get_report(self, report_id: int) -> Optional[database.Report]:
        return self.db.query(database.Report).filter(database.Report.id == report_id).first()

    def list_reports(self, course_code: Optional[str] = None, lecturer_name: Optional[str] = None):
        query = self.db.query(database.Report)
        if course_code:
            query = query.filter(database.Report.course_code == course_code)
        if lecturer_name:
            query = query.filter(database.Report.lecturer_name == lecturer_name)
        return query.order_by(database.Report.created_at.desc(), database.Report.id.desc()).all()

    def apply_feedback(self, report_id: int, feedback: str,
                       status: ReportStatus = ReportStatus.REVIEWED) -> Optional[database.Report]:
        """Store PRL feedback; returns None when the report does not exist."""
        report = self.get_report(report_id)
        if not report:
            return None
        if report.status == ReportStatus.REVIEWED.value and status == ReportStatus.SUBMITTED:
            raise InvalidTransitionError("A reviewed report cannot be returned to submitted")

        report.prl_feedback = feedback
        report.status = status.value
        self.db.commit()
        self.db.refresh(report)
        logger.info("Feedback recorded on report %s (status %s)", report.id, report.status)
        return report

    # ========== Ratings ==========
    def create_rating(self, data: RatingCreate) -> database.Rating:
        rating = database.Rating(**data.model_dump())

        def already_rated():
            return self.db.query(database.Rating).filter(
                database.Rating.report_id == data.report_id,
                database.Rating.student_id == data.student_id,
            ).first() is not None

        rating = self._insert_unique(rating, already_rated, "You have already rated this report")
        logger.info("Student %s rated report %s: %s", data.student_id, data.report_id, data.rating_value)
        return rating

    # ========== Program modules ==========
    def get_module(self, module_id: int) -> Optional[database.ProgramModule]:
        return self.db.query(database.ProgramModule).filter(database.ProgramModule.id == module_id).first()

    def create_module(self, data: ModuleCreate) -> database.ProgramModule:
        module = database.ProgramModule(**data.model_dump())

        def code_taken():
            return self.db.query(database.ProgramModule).filter(
                database.ProgramModule.module_code == data.module_code
            ).first() is not None

        module = self._insert_unique(module, code_taken, "Module code already exists")
        logger.info("Program module %s added to %s", module.module_code, module.program)
        return module

    def assign_lecturer(self, module_id: int, lecturer_id: Optional[int]) -> Optional[database.ProgramModule]:
        module = self.get_module(module_id)
        if not module:
            return None
        module.lecturer_id = lecturer_id
        self.db.commit()
        self.db.refresh(module)
        return module
