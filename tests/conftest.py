import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Project root on the path so the app modules import without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from main import app
import database
from database import Base

TEST_DB_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Fresh schema and reference data for every test
@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    database.seed_reference_data(db)
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    def override_get_db():
        try:
            yield db
        finally:
            db.rollback()

    app.dependency_overrides[database.get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def lecturer(db):
    return db.query(database.User).filter(database.User.role == "lecturer").one()


@pytest.fixture
def student(db):
    return db.query(database.User).filter(database.User.role == "student").one()


@pytest.fixture
def report_payload(lecturer):
    return {
        "facultyName": "Faculty of ICT",
        "className": "IT2A",
        "weekOfReporting": 3,
        "dateOfLecture": "2025-03-10",
        "courseName": "Web Application Development",
        "courseCode": "DIWA2110",
        "actualStudentsPresent": 30,
        "totalRegisteredStudents": 40,
        "venue": "Lab 301",
        "scheduledTime": "14:00",
        "topicTaught": "REST APIs with Express",
        "learningOutcomes": "Students can design resource URLs",
        "recommendations": "More lab time",
        "lecturerId": lecturer.id,
    }


@pytest.fixture
def submit_report(client, report_payload):
    def submit(**overrides):
        response = client.post("/api/reports", json={**report_payload, **overrides})
        assert response.status_code == 201, response.text
        return response.json()["reportId"]

    return submit
