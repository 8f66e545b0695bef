import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid
from datetime import datetime, timezone

sys.path.append(str(Path(__file__).resolve().parents[2]))

from app import models, notify
from app.auth import AuthContext, create_access_token
from app.main import app
from app.database import Base, get_db

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

OPEN_WINDOW = {"enrollment_start": "2000-01-01T00:00:00+00:00", "enrollment_end": "2100-01-01T00:00:00+00:00"}

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def clean_tables():
    session = TestingSessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    finally:
        session.close()
    notify.EMAIL_OUTBOX.clear()
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_department(db, code: str = "CS", name: str | None = None) -> models.Department:
    department = db.get(models.Department, code)
    if department is None:
        department = models.Department(code=code, name=name or f"Department {code}")
        db.add(department)
        db.commit()
    return department


def make_user(
    db,
    *,
    user_type: str = "faculty",
    department_code: str | None = "CS",
    hod: bool = False,
    degree_id=None,
    first_name: str = "Test",
    last_name: str | None = None,
    email: str | None = None,
) -> models.User:
    if department_code:
        make_department(db, department_code)
    user = models.User(
        email=email or f"{user_type}-{uuid.uuid4().hex[:8]}@example.edu",
        first_name=first_name,
        last_name=last_name or user_type.title(),
        user_type=user_type,
        department_code=department_code,
        is_head_of_department=hod,
        degree_id=degree_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_for(user: models.User) -> AuthContext:
    return AuthContext.from_user(user)


def auth_headers(user: models.User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}


def make_degree(
    db,
    creator: models.User,
    *,
    code: str = "CS-BSC",
    status: str = "draft",
    courses_per_semester: dict | None = None,
    department_code: str = "CS",
) -> models.Degree:
    make_department(db, department_code)
    degree = models.Degree(
        code=code,
        name=f"Degree {code}",
        department_code=department_code,
        created_by=creator.id,
        status=status,
        version=1,
        is_latest_version=True,
        courses_per_semester=courses_per_semester or {},
    )
    db.add(degree)
    db.commit()
    db.refresh(degree)
    return degree


def make_course(
    db,
    creator: models.User,
    *,
    code: str,
    degree_code: str = "CS-BSC",
    semester: int = 3,
    status: str = "active",
    department_code: str = "CS",
    faculty_details: dict | None = None,
) -> models.Course:
    course = models.Course(
        code=code,
        name=f"Course {code}",
        department_code=department_code,
        degree_code=degree_code,
        semester=semester,
        credits=3,
        created_by=creator.id,
        status=status,
        version=1,
        is_latest_version=True,
        faculty_details=faculty_details or {},
    )
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
