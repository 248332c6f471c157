from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    STUDENT = "student"
    LECTURER = "lecturer"
    PRL = "prl"
    PL = "pl"


class ReportStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"


class MonitoringRange(str, Enum):
    WEEK = "week"
    MONTH = "month"
    SEMESTER = "semester"
    ALL = "all"


# ========== Users ==========
class Credentials(BaseModel):
    email: EmailStr
    password: str

    @field_validator('email')
    @classmethod
    def email_to_lower(cls, v):
        return v.lower()


class StudentRegister(Credentials):
    name: str

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Name must not be blank')
        return v.strip()


class UserPublic(BaseModel):
    id: int
    email: str
    name: str
    role: Role

    model_config = ConfigDict(from_attributes=True)


class Lecturer(BaseModel):
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


# ========== Courses ==========
class Course(BaseModel):
    id: int
    course_code: str
    course_name: str

    model_config = ConfigDict(from_attributes=True)


class ModuleCreate(BaseModel):
    module_code: str
    module_name: str
    program: str
    credits: int = 3
    semester: int = 1
    lecturer_id: Optional[int] = None


class LecturerAssignment(BaseModel):
    lecturer_id: Optional[int] = None


# ========== Reports ==========
class ReportCreate(BaseModel):
    """Lecture report as posted by the lecturer form (camelCase keys)."""
    faculty_name: str
    class_name: str
    week_of_reporting: int
    date_of_lecture: date
    course_name: str
    course_code: str
    actual_students_present: int
    total_registered_students: int
    venue: str
    scheduled_time: str
    topic_taught: str
    learning_outcomes: str
    recommendations: str
    lecturer_id: Optional[int] = None
    lecturer_name: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Report(BaseModel):
    id: int
    lecturer_id: Optional[int] = None
    lecturer_name: Optional[str] = None
    faculty_name: str
    class_name: str
    week_of_reporting: int
    date_of_lecture: date
    course_name: str
    course_code: str
    actual_students_present: int
    total_registered_students: int
    venue: str
    scheduled_time: str
    topic_taught: str
    learning_outcomes: str
    recommendations: str
    prl_feedback: Optional[str] = None
    status: ReportStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReportDetail(Report):
    attendance_rate: Optional[float] = None
    avg_rating: Optional[float] = None
    total_ratings: int = 0
    program: Optional[str] = None


class FeedbackUpdate(BaseModel):
    feedback: str
    status: Optional[ReportStatus] = None


# ========== Ratings ==========
class RatingCreate(BaseModel):
    report_id: int
    student_id: int
    rating_value: int
    comments: Optional[str] = None
