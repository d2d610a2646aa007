from __future__ import annotations
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .models import Rating, Semester, Student, Teacher, User, UserRole
from .routers.auth import hash_password
from .services import ai_usage
from .settings import settings

logger = logging.getLogger(__name__)


def _ensure_semester(db: Session) -> Semester:
	semester = db.query(Semester).filter(Semester.is_current.is_(True)).first()
	if semester is not None:
		return semester
	today = date.today()
	start = date(today.year, 1, 1) if today.month < 7 else date(today.year, 7, 1)
	end = date(today.year, 6, 30) if today.month < 7 else date(today.year, 12, 31)
	academic_year = f"{today.year - 1}/{today.year}" if today.month < 7 else f"{today.year}/{today.year + 1}"
	semester = Semester(
		name=f"{'Spring' if today.month < 7 else 'Fall'} {today.year}",
		academic_year=academic_year,
		start_date=start,
		end_date=end,
		is_current=True,
	)
	db.add(semester)
	db.flush()
	return semester


def _ensure_user(db: Session, email: str, first_name: str, last_name: str, role: UserRole) -> User:
	user = db.query(User).filter(User.email == email).first()
	if user is None:
		user = User(
			email=email,
			first_name=first_name,
			last_name=last_name,
			role=role,
			password_hash=hash_password(settings.seed_password_plain),
		)
		db.add(user)
		db.flush()
	return user


def _ensure_teacher(db: Session, user: User, department: Optional[str]) -> Teacher:
	teacher = db.query(Teacher).filter(Teacher.user_id == user.id).first()
	if teacher is None:
		teacher = Teacher(user_id=user.id, department=department, hire_date=date.today() - timedelta(days=365 * 3))
		db.add(teacher)
		db.flush()
	return teacher


def _ensure_student(db: Session, user: User, grade_level: int) -> Student:
	student = db.query(Student).filter(Student.user_id == user.id).first()
	if student is None:
		student = Student(user_id=user.id, grade_level=grade_level, enrollment_date=date.today() - timedelta(days=365))
		db.add(student)
		db.flush()
	return student


def seed(db: Session) -> None:
	"""Idempotently create a current semester, one user per role and a sample rating."""
	semester = _ensure_semester(db)
	_ensure_user(db, "admin@school.com", "Sam", "Administrator", UserRole.ADMIN)
	teacher_user = _ensure_user(db, "teacher.one@school.com", "Jordan", "Lee", UserRole.TEACHER)
	student_user = _ensure_user(db, "student.one@school.com", "Casey", "Morgan", UserRole.STUDENT)
	teacher = _ensure_teacher(db, teacher_user, department="Mathematics")
	student = _ensure_student(db, student_user, grade_level=10)

	if db.query(Rating.id).first() is None:
		db.add(Rating(
			student_id=student.id,
			teacher_id=teacher.id,
			semester_id=semester.id,
			stars=5,
			comment="Explains complex topics clearly and keeps lessons engaging.",
			created_at=datetime.utcnow() - timedelta(days=2),
		))
	db.commit()
	ai_usage.ensure_default_settings(db)
	logger.info("Seed data ensured for semester %s.", semester.name)
