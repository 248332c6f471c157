import logging
import sqlite3

from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Text,
    UniqueConstraint, create_engine, event, func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

import config

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = config.DATABASE_URL

connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores REFERENCES clauses unless asked per connection
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('student', 'lecturer', 'prl', 'pl')", name="ck_users_role"),
    )
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False)
    name = Column(String, nullable=False)
    faculty = Column(String, default="Faculty of ICT")
    created_at = Column(DateTime, server_default=func.now())


class Course(Base):
    __tablename__ = "courses"
    id = Column(Integer, primary_key=True, index=True)
    course_code = Column(String, unique=True, nullable=False)
    course_name = Column(String, nullable=False)


class ProgramModule(Base):
    __tablename__ = "program_modules"
    id = Column(Integer, primary_key=True, index=True)
    module_code = Column(String, unique=True, nullable=False)
    module_name = Column(String, nullable=False)
    program = Column(String, nullable=False)
    credits = Column(Integer, default=3)
    semester = Column(Integer, default=1)
    lecturer_id = Column(Integer, ForeignKey("users.id"))
    status = Column(String, default="active")
    created_at = Column(DateTime, server_default=func.now())


class CourseClass(Base):
    __tablename__ = "classes"
    __table_args__ = (UniqueConstraint("class_name", "course_code", name="uq_classes_name_course"),)
    id = Column(Integer, primary_key=True, index=True)
    class_name = Column(String, nullable=False)
    course_code = Column(String, ForeignKey("courses.course_code"), nullable=False)
    lecturer_id = Column(Integer, ForeignKey("users.id"))
    schedule_day = Column(String)
    schedule_time = Column(String)
    venue = Column(String)
    created_at = Column(DateTime, server_default=func.now())


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        CheckConstraint("status IN ('submitted', 'reviewed')", name="ck_reports_status"),
    )
    id = Column(Integer, primary_key=True, index=True)
    lecturer_id = Column(Integer, ForeignKey("users.id"))
    lecturer_name = Column(String)
    faculty_name = Column(String, nullable=False)
    class_name = Column(String, nullable=False)
    week_of_reporting = Column(Integer, nullable=False)
    date_of_lecture = Column(Date, nullable=False)
    course_name = Column(String, nullable=False)
    # Either a courses.course_code or a program_modules.module_code
    course_code = Column(String, nullable=False, index=True)
    actual_students_present = Column(Integer, nullable=False)
    total_registered_students = Column(Integer, nullable=False)
    venue = Column(String, nullable=False)
    scheduled_time = Column(String, nullable=False)
    topic_taught = Column(Text, nullable=False)
    learning_outcomes = Column(Text, nullable=False)
    recommendations = Column(Text, nullable=False)
    prl_feedback = Column(Text)
    status = Column(String, nullable=False, default="submitted")
    created_at = Column(DateTime, server_default=func.now())


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (
        CheckConstraint("rating_value BETWEEN 1 AND 5", name="ck_ratings_value"),
        UniqueConstraint("report_id", "student_id", name="uq_ratings_report_student"),
    )
    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating_value = Column(Integer, nullable=False)  # 1-5
    comments = Column(Text)
    created_at = Column(DateTime, server_default=func.now())


SAMPLE_COURSES = [
    ("DIWA2110", "Web Application Development"),
    ("DBS2110", "Database Systems"),
    ("NET2110", "Networking Fundamentals"),
    ("PRO2110", "Programming Fundamentals"),
]

SAMPLE_USERS = [
    ("student@luct.ac.ls", "password123", "student", "Alice Wonder"),
    ("lecturer@luct.ac.ls", "password123", "lecturer", "Dr. John Smith"),
    ("prl@luct.ac.ls", "password123", "prl", "Prof. Mary Johnson"),
    ("pl@luct.ac.ls", "password123", "pl", "Dr. James Wilson"),
]

SAMPLE_LECTURER_EMAIL = "lecturer@luct.ac.ls"

SAMPLE_CLASSES = [
    ("IT2A", "DIWA2110", "Monday", "14:00", "Lab 301"),
    ("IT2B", "DIWA2110", "Tuesday", "10:00", "Lab 302"),
    ("BIT1A", "DBS2110", "Wednesday", "08:00", "Room 201"),
    ("BIT1B", "NET2110", "Thursday", "16:00", "Lab 303"),
]

SAMPLE_MODULES = [
    ("WD101", "Advanced Web Development", "Web Development", 3, 2),
    ("DS201", "Database Design & Implementation", "Database Systems", 3, 1),
    ("NT301", "Network Security", "Networking", 3, 2),
    ("PF401", "Advanced Programming", "Programming", 3, 1),
]


def seed_reference_data(db):
    """Insert the sample courses, users, classes and modules that are missing."""
    for code, name in SAMPLE_COURSES:
        if not db.query(Course).filter(Course.course_code == code).first():
            db.add(Course(course_code=code, course_name=name))

    for email, password, role, name in SAMPLE_USERS:
        if not db.query(User).filter(User.email == email).first():
            db.add(User(email=email, password=password, role=role, name=name))
    db.flush()

    lecturer = db.query(User).filter(User.email == SAMPLE_LECTURER_EMAIL).first()

    for class_name, course_code, day, time, venue in SAMPLE_CLASSES:
        exists = db.query(CourseClass).filter(
            CourseClass.class_name == class_name,
            CourseClass.course_code == course_code,
        ).first()
        if not exists:
            db.add(CourseClass(
                class_name=class_name,
                course_code=course_code,
                lecturer_id=lecturer.id,
                schedule_day=day,
                schedule_time=time,
                venue=venue,
            ))

    for code, name, program, credits, semester in SAMPLE_MODULES:
        if not db.query(ProgramModule).filter(ProgramModule.module_code == code).first():
            db.add(ProgramModule(
                module_code=code,
                module_name=name,
                program=program,
                credits=credits,
                semester=semester,
                lecturer_id=lecturer.id,
            ))

    db.commit()


def init_db(seed=config.SEED_REFERENCE_DATA):
    """Create missing tables and, optionally, the reference rows."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready at %s", engine.url.render_as_string(hide_password=True))
    if seed:
        db = SessionLocal()
        try:
            seed_reference_data(db)
        finally:
            db.close()
        logger.info("Reference data seeded")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
