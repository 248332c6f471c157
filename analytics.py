"""Aggregate queries behind the PRL and PL dashboards.

Every dashboard is composed from the same few builders so that attendance
and rating figures are computed identically everywhere:

* ``attendance_rate`` - ``present * 100 / registered`` for one report. SQL
  division by zero yields NULL, so a report with no registered students
  has no rate rather than a misleading 0.
* ``average_attendance`` - the AVG of that rate over the grouped reports.
* ``rating_average`` - a correlated subquery averaging the ratings of the
  reports matching the given criteria.
* ``report_details`` - report rows with lecturer, attendance and ratings.

Averages over zero rows are NULL and are returned as ``None``.
"""
from datetime import datetime, timedelta, timezone

from sqlalchemy import Float, and_, case, distinct, func, or_, select, true, type_coerce
from sqlalchemy.orm import Session, aliased

import config
from database import Course, CourseClass, ProgramModule, Rating, Report, User
from models import MonitoringRange, ReportStatus, Role

# Separate aliases keep the rating subqueries from correlating against
# reports/modules already present in the enclosing query.
RatedReport = aliased(Report, name="rated_report")
RatedModule = aliased(ProgramModule, name="rated_module")


# ========== Query builders ==========
def attendance_rate(report=Report):
    return type_coerce(
        report.actual_students_present * 100.0 / report.total_registered_students,
        Float,
    )


def average_attendance(report=Report):
    return func.avg(attendance_rate(report), type_=Float)


def rating_average(*criteria, through_modules=False):
    """Average rating of the reports matching ``criteria``.

    Criteria are written against ``RatedReport`` (and ``RatedModule`` when
    ``through_modules`` is set); anything else they mention is taken from
    the enclosing query.
    """
    query = (
        select(func.avg(Rating.rating_value, type_=Float))
        .join(RatedReport, Rating.report_id == RatedReport.id)
    )
    if through_modules:
        query = query.join(RatedModule, RatedModule.module_code == RatedReport.course_code)
    return query.where(*criteria).correlate_except(Rating, RatedReport, RatedModule).scalar_subquery()


def rating_count(report=Report):
    return (
        select(func.count(Rating.id))
        .where(Rating.report_id == report.id)
        .correlate_except(Rating)
        .scalar_subquery()
    )


def authored_by(user, report=Report):
    """Reports filed by ``user``; reports without a lecturer id match on name."""
    return or_(
        report.lecturer_id == user.id,
        and_(report.lecturer_id.is_(None), report.lecturer_name == user.name),
    )


def count_with_status(status):
    return func.count(distinct(case((Report.status == status.value, Report.id))))


def created_since(range_, model=Report):
    days = config.MONITORING_RANGES.get(range_.value)
    if days is None:
        return true()
    cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)
    return model.created_at >= cutoff


def _rows(query):
    return [row._asdict() for row in query.all()]


def report_details(db: Session, *criteria, order_by=None, limit=None, with_program=False):
    """Reports with lecturer name, attendance rate and rating summary."""
    query = (
        db.query(
            Report,
            func.coalesce(User.name, Report.lecturer_name).label("lecturer_name"),
            attendance_rate().label("attendance_rate"),
            rating_average(RatedReport.id == Report.id).label("avg_rating"),
            rating_count().label("total_ratings"),
        )
        .outerjoin(User, Report.lecturer_id == User.id)
    )
    if with_program:
        query = query.add_columns(ProgramModule.program).outerjoin(
            ProgramModule, ProgramModule.module_code == Report.course_code
        )
    query = query.filter(*criteria).order_by(*(order_by or (Report.created_at.desc(), Report.id.desc())))
    if limit:
        query = query.limit(limit)

    details = []
    for row in query.all():
        values = row._asdict()
        report = values.pop("Report")
        data = {column.key: getattr(report, column.key) for column in Report.__table__.columns}
        data.update(values)
        details.append(data)
    return details


def class_overview(db: Session, *criteria, with_program=False):
    columns = [
        *CourseClass.__table__.columns,
        Course.course_name,
        User.name.label("lecturer_name"),
        func.count(Report.id).label("total_reports"),
        average_attendance().label("avg_attendance"),
    ]
    query = (
        db.query(*columns)
        .select_from(CourseClass)
        .join(Course, Course.course_code == CourseClass.course_code)
        .outerjoin(User, CourseClass.lecturer_id == User.id)
        .outerjoin(Report, and_(
            Report.class_name == CourseClass.class_name,
            Report.course_code == CourseClass.course_code,
        ))
    )
    order_by = [CourseClass.class_name]
    if with_program:
        program = func.max(ProgramModule.program)
        query = query.add_columns(program.label("program")).outerjoin(
            ProgramModule, ProgramModule.module_code == Course.course_code
        )
        order_by.insert(0, program)
    query = query.filter(*criteria).group_by(CourseClass.id, Course.course_name, User.name).order_by(*order_by)
    return _rows(query)


# ========== PRL ==========
def prl_courses(db: Session):
    query = (
        db.query(
            *Course.__table__.columns,
            func.count(distinct(Report.id)).label("total_reports"),
            func.count(distinct(CourseClass.id)).label("total_classes"),
            func.max(User.name).label("main_lecturer"),
        )
        .select_from(Course)
        .outerjoin(Report, Report.course_code == Course.course_code)
        .outerjoin(CourseClass, CourseClass.course_code == Course.course_code)
        .outerjoin(User, CourseClass.lecturer_id == User.id)
        .group_by(Course.id)
        .order_by(Course.course_code)
    )
    return _rows(query)


def course_lectures(db: Session, course_code: str):
    return report_details(
        db,
        Report.course_code == course_code,
        order_by=(Report.date_of_lecture.desc(), Report.id.desc()),
    )


def prl_monitoring(db: Session, range_: MonitoringRange = MonitoringRange.ALL):
    in_range = created_since(range_)

    summary = db.query(
        func.count(distinct(Report.id)).label("total_reports"),
        count_with_status(ReportStatus.SUBMITTED).label("pending_reports"),
        count_with_status(ReportStatus.REVIEWED).label("reviewed_reports"),
        func.count(distinct(Report.course_code)).label("active_courses"),
        func.count(distinct(Report.lecturer_name)).label("active_lecturers"),
        average_attendance().label("avg_attendance_rate"),
        rating_average(created_since(range_, RatedReport)).label("avg_system_rating"),
    ).filter(in_range).one()

    course_stats = (
        db.query(
            Course.course_code,
            Course.course_name,
            func.count(Report.id).label("report_count"),
            average_attendance().label("avg_attendance"),
            rating_average(
                RatedReport.course_code == Course.course_code,
                created_since(range_, RatedReport),
            ).label("avg_rating"),
        )
        .select_from(Course)
        .outerjoin(Report, and_(Report.course_code == Course.course_code, in_range))
        .group_by(Course.id)
        .order_by(func.count(Report.id).desc(), Course.course_code)
    )

    return {
        "summary": summary._asdict(),
        "recentReports": report_details(db, in_range, limit=5),
        "courseStats": _rows(course_stats),
    }


def prl_ratings(db: Session):
    rating_stats = (
        db.query(
            Report.course_code,
            Course.course_name,
            func.count(Rating.id).label("total_ratings"),
            func.avg(Rating.rating_value, type_=Float).label("average_rating"),
            func.min(Rating.rating_value).label("min_rating"),
            func.max(Rating.rating_value).label("max_rating"),
            func.count(distinct(Rating.student_id)).label("unique_students"),
        )
        .select_from(Rating)
        .join(Report, Rating.report_id == Report.id)
        .join(Course, Course.course_code == Report.course_code)
        .group_by(Report.course_code, Course.course_name)
        .order_by(func.avg(Rating.rating_value).desc())
    )

    recent_ratings = (
        db.query(
            *Rating.__table__.columns,
            Report.course_code,
            Report.class_name,
            Report.topic_taught,
            User.name.label("student_name"),
        )
        .select_from(Rating)
        .join(Report, Rating.report_id == Report.id)
        .join(User, Rating.student_id == User.id)
        .order_by(Rating.created_at.desc(), Rating.id.desc())
        .limit(10)
    )

    return {
        "ratingStats": _rows(rating_stats),
        "recentRatings": _rows(recent_ratings),
    }


def class_details(db: Session, class_name: str):
    """Class header plus its reports, or None if no such class exists."""
    class_info = (
        db.query(*CourseClass.__table__.columns, Course.course_name, User.name.label("lecturer_name"))
        .select_from(CourseClass)
        .join(Course, Course.course_code == CourseClass.course_code)
        .outerjoin(User, CourseClass.lecturer_id == User.id)
        .filter(CourseClass.class_name == class_name)
        .first()
    )
    if class_info is None:
        return None
    return {
        "classInfo": class_info._asdict(),
        "reports": report_details(
            db,
            Report.class_name == class_name,
            order_by=(Report.date_of_lecture.desc(), Report.id.desc()),
        ),
    }


# ========== PL ==========
def pl_dashboard(db: Session):
    report_summary = db.query(
        func.count(distinct(Report.id)).label("total_reports"),
        func.count(distinct(Report.class_name)).label("total_classes"),
        average_attendance().label("avg_attendance"),
        count_with_status(ReportStatus.SUBMITTED).label("pending_reviews"),
        count_with_status(ReportStatus.REVIEWED).label("reviewed_reports"),
    ).one()._asdict()

    summary = {
        **report_summary,
        "total_courses": db.query(func.count(Course.id)).scalar(),
        "total_lecturers": db.query(func.count(User.id)).filter(User.role == Role.LECTURER.value).scalar(),
        "avg_rating": db.query(func.avg(Rating.rating_value, type_=Float)).scalar(),
    }

    program_stats = []
    for program, prefix in config.PROGRAM_PREFIXES.items():
        pattern = f"{prefix}%"
        row = db.query(
            func.count(Report.id).label("reports_count"),
            average_attendance().label("attendance_rate"),
            rating_average(RatedReport.course_code.like(pattern)).label("avg_rating"),
        ).filter(Report.course_code.like(pattern)).one()
        program_stats.append({"program": program, **row._asdict()})

    return {
        "summary": summary,
        "recentActivity": report_details(db, limit=6),
        "programStats": program_stats,
    }


def pl_modules(db: Session):
    query = (
        db.query(
            *ProgramModule.__table__.columns,
            User.name.label("lecturer_name"),
            func.count(Report.id).label("total_lectures"),
            average_attendance().label("avg_attendance"),
            rating_average(RatedReport.course_code == ProgramModule.module_code).label("avg_rating"),
        )
        .select_from(ProgramModule)
        .outerjoin(User, ProgramModule.lecturer_id == User.id)
        .outerjoin(Report, Report.course_code == ProgramModule.module_code)
        .group_by(ProgramModule.id, User.name)
        .order_by(ProgramModule.program, ProgramModule.semester, ProgramModule.module_code)
    )
    return _rows(query)


def pl_monitoring(db: Session):
    program_performance = (
        db.query(
            ProgramModule.program,
            func.count(distinct(ProgramModule.id)).label("total_modules"),
            func.count(distinct(Report.id)).label("total_reports"),
            average_attendance().label("avg_attendance"),
            rating_average(RatedModule.program == ProgramModule.program, through_modules=True).label("avg_rating"),
            func.count(distinct(User.id)).label("lecturers_count"),
        )
        .select_from(ProgramModule)
        .outerjoin(Report, Report.course_code == ProgramModule.module_code)
        .outerjoin(User, ProgramModule.lecturer_id == User.id)
        .group_by(ProgramModule.program)
        .order_by(ProgramModule.program)
    )

    reports_submitted = func.count(distinct(Report.id))
    lecturer_performance = (
        db.query(
            User.id.label("lecturer_id"),
            User.name.label("lecturer_name"),
            func.count(distinct(ProgramModule.id)).label("modules_assigned"),
            reports_submitted.label("reports_submitted"),
            average_attendance().label("avg_attendance"),
            rating_average(authored_by(User, RatedReport)).label("avg_rating"),
        )
        .select_from(User)
        .outerjoin(ProgramModule, ProgramModule.lecturer_id == User.id)
        .outerjoin(Report, authored_by(User))
        .filter(User.role == Role.LECTURER.value)
        .group_by(User.id, User.name)
        .order_by(reports_submitted.desc(), User.name)
    )

    weekly_progress = (
        db.query(
            Report.week_of_reporting,
            func.count(Report.id).label("reports_count"),
            average_attendance().label("avg_attendance"),
        )
        .group_by(Report.week_of_reporting)
        .order_by(Report.week_of_reporting)
    )

    return {
        "programPerformance": _rows(program_performance),
        "lecturerPerformance": _rows(lecturer_performance),
        "weeklyProgress": _rows(weekly_progress),
    }


def pl_lectures(db: Session):
    return report_details(
        db,
        order_by=(Report.date_of_lecture.desc(), Report.id.desc()),
        with_program=True,
    )


def pl_ratings(db: Session):
    average_rating = func.avg(Rating.rating_value, type_=Float)
    program_ratings = (
        db.query(
            ProgramModule.program,
            func.count(Rating.id).label("total_ratings"),
            average_rating.label("average_rating"),
            func.min(Rating.rating_value).label("min_rating"),
            func.max(Rating.rating_value).label("max_rating"),
            func.count(distinct(Rating.student_id)).label("unique_students"),
            func.count(distinct(Report.course_code)).label("rated_courses"),
        )
        .select_from(Rating)
        .join(Report, Rating.report_id == Report.id)
        .outerjoin(ProgramModule, ProgramModule.module_code == Report.course_code)
        .group_by(ProgramModule.program)
        .order_by(average_rating.desc())
    )

    rating_distribution = (
        db.query(Rating.rating_value, func.count(Rating.id).label("count"))
        .group_by(Rating.rating_value)
        .order_by(Rating.rating_value.desc())
    )

    return {
        "programRatings": _rows(program_ratings),
        "ratingDistribution": _rows(rating_distribution),
    }
