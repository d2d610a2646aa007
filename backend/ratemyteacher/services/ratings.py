from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, aliased

from ..errors import NoSemestersConfiguredError, NotFoundError, RatingValidationError, SemesterNotFoundError
from ..models import Rating, Semester, Student, Teacher, User, visible
from ..ranking import LeaderboardResult, RatingRow, SemesterSummary, rank_teachers, validate_threshold

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 500


@dataclass(frozen=True)
class TeacherListing:
	teacher_id: int
	name: str
	department: Optional[str]
	average_rating: Optional[float]
	total_ratings: int


def get_active_semester(db: Session) -> Semester:
	semester = (
		db.query(Semester)
		.order_by(Semester.is_current.desc(), Semester.start_date.desc())
		.first()
	)
	if semester is None:
		raise NoSemestersConfiguredError(
			"No semesters configured. Please seed at least one semester before using the rating system."
		)
	return semester


def resolve_semester(db: Session, semester_id: Optional[int]) -> Semester:
	"""Look up a semester by id; ``None`` means the active semester."""
	if semester_id is None:
		return get_active_semester(db)
	semester = db.get(Semester, semester_id)
	if semester is None:
		raise SemesterNotFoundError(f"Semester with id {semester_id} was not found.")
	return semester


def list_semesters(db: Session) -> List[Semester]:
	return db.query(Semester).order_by(Semester.is_current.desc(), Semester.start_date.desc()).all()


def to_summary(semester: Semester) -> SemesterSummary:
	return SemesterSummary(
		id=semester.id,
		name=semester.name,
		academic_year=semester.academic_year,
		is_current=bool(semester.is_current),
	)


def _get_visible_student(db: Session, user_id: int) -> Optional[Student]:
	return (
		db.query(Student)
		.join(Student.user)
		.filter(Student.user_id == user_id, visible(User))
		.first()
	)


def _get_visible_teacher(db: Session, teacher_id: int) -> Optional[Teacher]:
	return (
		db.query(Teacher)
		.join(Teacher.user)
		.filter(Teacher.id == teacher_id, visible(User))
		.first()
	)


def get_teacher(db: Session, teacher_id: int) -> Teacher:
	teacher = _get_visible_teacher(db, teacher_id)
	if teacher is None:
		raise NotFoundError("Teacher not found.")
	return teacher


def get_student_rating(db: Session, student_user_id: int, teacher_id: int) -> Optional[Rating]:
	student = _get_visible_student(db, student_user_id)
	if student is None:
		return None
	semester = get_active_semester(db)
	return (
		db.query(Rating)
		.filter(
			Rating.student_id == student.id,
			Rating.teacher_id == teacher_id,
			Rating.semester_id == semester.id,
		)
		.first()
	)


def submit_rating(
	db: Session,
	student_user_id: int,
	teacher_id: int,
	stars: int,
	comment: Optional[str] = None,
) -> Tuple[Rating, bool]:
	"""Create or update the student's rating of a teacher for the active semester.

	Returns the rating row and whether it was newly created.
	"""
	if stars < 1 or stars > 5:
		raise RatingValidationError("Rating must be between 1 and 5 stars.")
	comment = comment.strip() if comment is not None else None
	if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
		raise RatingValidationError(f"Comments must be {MAX_COMMENT_LENGTH} characters or fewer.")

	student = _get_visible_student(db, student_user_id)
	if student is None:
		raise NotFoundError("Student profile not found.")
	teacher = _get_visible_teacher(db, teacher_id)
	if teacher is None:
		raise NotFoundError("Teacher not found.")
	if teacher.user_id == student.user_id:
		raise RatingValidationError("You cannot rate yourself.")

	semester = get_active_semester(db)

	# One rating per (student, teacher, semester); resubmitting edits it
	rating = (
		db.query(Rating)
		.filter(
			Rating.student_id == student.id,
			Rating.teacher_id == teacher.id,
			Rating.semester_id == semester.id,
		)
		.first()
	)
	created = rating is None
	if created:
		rating = Rating(
			student_id=student.id,
			teacher_id=teacher.id,
			semester_id=semester.id,
			stars=stars,
			comment=comment,
			created_at=datetime.utcnow(),
		)
		db.add(rating)
	else:
		rating.stars = stars
		rating.comment = comment
		rating.updated_at = datetime.utcnow()
	db.commit()
	db.refresh(rating)

	logger.info(
		"Student %s %s rating %s for teacher %s in semester %s.",
		student.id,
		"created" if created else "updated",
		rating.id,
		teacher.id,
		semester.id,
	)
	return rating, created


def fetch_rating_rows(db: Session, semester_id: int) -> List[RatingRow]:
	"""Rating rows for a semester, restricted to visible teachers and students."""
	teacher_user = aliased(User)
	student_user = aliased(User)
	rows = (
		db.query(Rating.teacher_id, teacher_user.first_name, teacher_user.last_name, Teacher.department, Rating.stars)
		.join(Teacher, Rating.teacher_id == Teacher.id)
		.join(teacher_user, Teacher.user_id == teacher_user.id)
		.join(Student, Rating.student_id == Student.id)
		.join(student_user, Student.user_id == student_user.id)
		.filter(Rating.semester_id == semester_id, visible(teacher_user), visible(student_user))
		.all()
	)
	return [
		RatingRow(
			teacher_id=teacher_id,
			teacher_name=f"{first or ''} {last or ''}",
			department=department,
			stars=stars,
		)
		for teacher_id, first, last, department, stars in rows
	]


def get_leaderboard(db: Session, semester_id: Optional[int], minimum_ratings: int) -> LeaderboardResult:
	validate_threshold(minimum_ratings)
	semester = resolve_semester(db, semester_id)
	entries = rank_teachers(fetch_rating_rows(db, semester.id), minimum_ratings)
	return LeaderboardResult(semester=to_summary(semester), entries=entries)


def get_teacher_listing(db: Session, teacher_id: int) -> TeacherListing:
	"""One visible teacher with the active semester's aggregate; no semester counts as no ratings."""
	teacher = get_teacher(db, teacher_id)
	avg, count = None, 0
	semester = db.query(Semester).order_by(Semester.is_current.desc(), Semester.start_date.desc()).first()
	if semester is not None:
		student_user = aliased(User)
		avg, count = (
			db.query(func.avg(Rating.stars), func.count(Rating.id))
			.join(Student, Rating.student_id == Student.id)
			.join(student_user, Student.user_id == student_user.id)
			.filter(Rating.teacher_id == teacher.id, Rating.semester_id == semester.id, visible(student_user))
			.one()
		)
	return TeacherListing(
		teacher_id=teacher.id,
		name=teacher.user.full_name,
		department=teacher.department,
		average_rating=round(float(avg), 2) if avg is not None else None,
		total_ratings=count,
	)


def list_teachers(db: Session, department: Optional[str] = None) -> List[TeacherListing]:
	"""Visible teachers with their rating aggregate for the active semester."""
	semester = get_active_semester(db)
	student_user = aliased(User)
	stats = {
		teacher_id: (avg, count)
		for teacher_id, avg, count in (
			db.query(Rating.teacher_id, func.avg(Rating.stars), func.count(Rating.id))
			.join(Student, Rating.student_id == Student.id)
			.join(student_user, Student.user_id == student_user.id)
			.filter(Rating.semester_id == semester.id, visible(student_user))
			.group_by(Rating.teacher_id)
			.all()
		)
	}
	query = db.query(Teacher).join(Teacher.user).filter(visible(User))
	if department:
		query = query.filter(Teacher.department == department)
	listings: List[TeacherListing] = []
	for teacher in query.order_by(User.last_name, User.first_name).all():
		avg, count = stats.get(teacher.id, (None, 0))
		listings.append(
			TeacherListing(
				teacher_id=teacher.id,
				name=teacher.user.full_name,
				department=teacher.department,
				average_rating=round(float(avg), 2) if avg is not None else None,
				total_ratings=count,
			)
		)
	return listings
