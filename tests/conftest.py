import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL_OVERRIDE", os.getenv("TEST_DATABASE_URL") or "sqlite:///./test.db")

import pytest
import uuid
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.constants import RoleEnum
from app.core.database import Base, get_db
from app.crud.student import student as crud_student
from app.crud.test import test as crud_test
from app.models import attempt, enrollment, order, student, test  # noqa: F401
from app.schemas.student import StudentCreate
from app.utils import deps as deps_utils
from tests.helpers.exam_data import build_test_payload
import main

test_db_url = settings.TEST_DATABASE_URL or "sqlite:///./test.db"

@pytest.fixture(scope="session")
def database_engine():
    if test_db_url.startswith("sqlite"):
        engine = create_engine(test_db_url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(test_db_url)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()
    if test_db_url.startswith("sqlite") and os.path.exists("./test.db"):
        os.remove("./test.db")

@pytest.fixture(scope="function")
def session_factory(database_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=database_engine)

@pytest.fixture(scope="function")
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.close()

@pytest.fixture(scope="function")
def client(db_session):
    # Re-initialize the app for each test function to ensure a clean state
    from importlib import reload
    reload(main)
    main.app.dependency_overrides[get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_transactional_db] = lambda: db_session
    with TestClient(main.app) as test_client:
        yield test_client

@pytest.fixture
def student_factory(db_session):
    def _student_factory(role: RoleEnum = RoleEnum.STUDENT, password: str = "testpass123", is_active: bool = True):
        student_in = StudentCreate(
            name=f"Test {role.value}",
            email=f"{role.value}-{uuid.uuid4()}@test.com",
            password=password,
        )
        new_student = crud_student.create_student(db_session, obj_in=student_in, role=role)
        new_student.is_active = is_active
        db_session.commit()
        db_session.refresh(new_student)
        return new_student
    return _student_factory

def _login(client: TestClient, email: str, password: str = "testpass123") -> str:
    response = client.post("/auth/login", json={"email": email, "password": password})
    body = response.json()
    token = (body.get("data") or {}).get("token", {}).get("access_token")
    assert token, f"Login failed or token missing: {body}"
    return token

@pytest.fixture
def student_token(client, student_factory):
    """Returns (student, token) for a freshly logged-in student."""
    new_student = student_factory()
    return new_student, _login(client, new_student.email)

@pytest.fixture
def admin_token(client, student_factory):
    admin = student_factory(role=RoleEnum.ADMIN)
    return admin, _login(client, admin.email)

@pytest.fixture
def login():
    return _login

@pytest.fixture
def exam_factory(db_session):
    from app.schemas.test import TestCreate

    def _exam_factory(**overrides):
        new_test = crud_test.create_with_questions(db_session, obj_in=TestCreate(**build_test_payload(**overrides)))
        db_session.commit()
        db_session.refresh(new_test)
        return new_test
    return _exam_factory
