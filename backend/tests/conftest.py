import os

# Configure before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["FIRST_PLACE_BONUS"] = "10"
os.environ["SECOND_PLACE_BONUS"] = "5"
os.environ["MINIMUM_VOTES_THRESHOLD"] = "10"
os.environ["BONUS_TIE_STRATEGY"] = "split"
os.environ["BONUS_CURRENCY"] = "usd"

from datetime import date
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ratemyteacher import models  # noqa: F401
from ratemyteacher.db import Base, get_db
from ratemyteacher.main import app
from ratemyteacher.models import Rating, Semester, Student, Teacher, User, UserRole
from ratemyteacher.routers.auth import issue_token


@pytest.fixture
def engine():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	Base.metadata.create_all(bind=engine)
	yield engine
	Base.metadata.drop_all(bind=engine)
	engine.dispose()


@pytest.fixture
def db(engine):
	session = sessionmaker(bind=engine, autoflush=False, future=True)()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def client(db):
	def override_get_db():
		yield db

	app.dependency_overrides[get_db] = override_get_db
	yield TestClient(app)
	app.dependency_overrides.clear()


@pytest.fixture
def semester(db):
	row = Semester(
		name="Fall 2025",
		academic_year="2025/2026",
		start_date=date(2025, 8, 1),
		end_date=date(2025, 12, 20),
		is_current=True,
	)
	db.add(row)
	db.commit()
	return row


_counter = {"n": 0}


def make_user(db, role: UserRole, first: str, last: str = "", *, department: Optional[str] = None, password_hash: str = "not-a-real-hash") -> User:
	_counter["n"] += 1
	user = User(
		email=f"{first.lower()}.{_counter['n']}@school.test",
		first_name=first,
		last_name=last,
		role=role,
		password_hash=password_hash,
	)
	db.add(user)
	db.flush()
	if role is UserRole.TEACHER:
		db.add(Teacher(user_id=user.id, department=department))
	elif role is UserRole.STUDENT:
		db.add(Student(user_id=user.id, grade_level=10))
	db.commit()
	db.refresh(user)
	return user


def add_ratings(db, semester: Semester, teacher: User, stars_list, students=None):
	"""Give ``teacher`` one rating per star value, each from a distinct student."""
	students = students or [make_user(db, UserRole.STUDENT, f"Pupil{i}") for i in range(len(stars_list))]
	for student, stars in zip(students, stars_list):
		db.add(Rating(
			student_id=student.student_profile.id,
			teacher_id=teacher.teacher_profile.id,
			semester_id=semester.id,
			stars=stars,
		))
	db.commit()
	return students


def auth_headers(db, user: User) -> dict:
	return {"Authorization": f"Bearer {issue_token(db, user)}"}


@pytest.fixture
def admin(db):
	return make_user(db, UserRole.ADMIN, "Sam", "Administrator")


@pytest.fixture
def admin_headers(db, admin):
	return auth_headers(db, admin)
