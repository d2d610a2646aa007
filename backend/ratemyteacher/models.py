from __future__ import annotations
import enum
from datetime import datetime
from sqlalchemy import (
	Boolean,
	CheckConstraint,
	Column,
	Date,
	DateTime,
	Enum,
	ForeignKey,
	Integer,
	Numeric,
	String,
	Text,
	UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base


class UserRole(str, enum.Enum):
	ADMIN = "admin"
	TEACHER = "teacher"
	STUDENT = "student"


class AiInteractionMode(str, enum.Enum):
	EXPLAIN = "explain"
	GUIDE = "guide"
	SHOW_ANSWER = "show_answer"


class AiControlScope(str, enum.Enum):
	GLOBAL = "global"
	DEPARTMENT = "department"
	CLASS = "class"


class TeacherAiMode(str, enum.Enum):
	UNRESTRICTED = "unrestricted"
	GUIDED = "guided"
	OFF = "off"


class User(Base):
	__tablename__ = "users"
	id = Column(Integer, primary_key=True)
	email = Column(String(256), nullable=False, unique=True, index=True)
	password_hash = Column(String(256), nullable=False)
	first_name = Column(String(100), nullable=False, default="")
	last_name = Column(String(100), nullable=False, default="")
	role = Column(Enum(UserRole, native_enum=False, length=16), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	# Soft delete; read paths filter with visible() explicitly
	is_deleted = Column(Boolean, default=False, nullable=False, index=True)
	deleted_at = Column(DateTime, nullable=True)
	deleted_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

	teacher_profile = relationship("Teacher", back_populates="user", uselist=False)
	student_profile = relationship("Student", back_populates="user", uselist=False)

	@property
	def full_name(self) -> str:
		return f"{self.first_name or ''} {self.last_name or ''}".strip()


def visible(user_entity=User):
	"""Visibility predicate for soft-deleted users.

	Accepts the mapped class or an alias of it so ratings can filter both the
	teacher-side and the student-side user in one query.
	"""
	return user_entity.is_deleted.is_(False)


class Teacher(Base):
	__tablename__ = "teachers"
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
	department = Column(String(100), nullable=True)
	bio = Column(Text, nullable=True)
	hire_date = Column(Date, nullable=True)

	user = relationship("User", back_populates="teacher_profile")


class Student(Base):
	__tablename__ = "students"
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
	grade_level = Column(Integer, nullable=False, default=0)
	enrollment_date = Column(Date, nullable=True)

	user = relationship("User", back_populates="student_profile")


class Semester(Base):
	__tablename__ = "semesters"
	id = Column(Integer, primary_key=True)
	name = Column(String(100), nullable=False, unique=True)
	academic_year = Column(String(20), nullable=False, default="")
	start_date = Column(Date, nullable=False)
	end_date = Column(Date, nullable=False)
	is_current = Column(Boolean, default=False, nullable=False)


class Rating(Base):
	__tablename__ = "ratings"
	__table_args__ = (
		UniqueConstraint("student_id", "teacher_id", "semester_id", name="uq_ratings_student_teacher_semester"),
		CheckConstraint("stars BETWEEN 1 AND 5", name="ck_ratings_stars"),
	)
	id = Column(Integer, primary_key=True)
	student_id = Column(Integer, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False)
	teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="RESTRICT"), nullable=False)
	semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="RESTRICT"), nullable=False)
	stars = Column(Integer, nullable=False)
	comment = Column(String(500), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, nullable=True)

	student = relationship("Student")
	teacher = relationship("Teacher")
	semester = relationship("Semester")


class BonusConfig(Base):
	__tablename__ = "bonus_configs"
	id = Column(Integer, primary_key=True)
	minimum_ratings_threshold = Column(Integer, nullable=False, default=20)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	modified_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	modified_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

	tiers = relationship("BonusTier", back_populates="config", cascade="all, delete-orphan")


class BonusTier(Base):
	__tablename__ = "bonus_tiers"
	__table_args__ = (
		CheckConstraint(
			"(position IS NOT NULL) OR (range_start IS NOT NULL AND range_end IS NOT NULL)",
			name="ck_bonus_tiers_position_or_range",
		),
	)
	id = Column(Integer, primary_key=True)
	config_id = Column(Integer, ForeignKey("bonus_configs.id", ondelete="CASCADE"), nullable=False)
	position = Column(Integer, nullable=True)
	range_start = Column(Integer, nullable=True)
	range_end = Column(Integer, nullable=True)
	amount = Column(Numeric(10, 2), nullable=False)

	config = relationship("BonusConfig", back_populates="tiers")


class Bonus(Base):
	__tablename__ = "bonuses"
	id = Column(Integer, primary_key=True)
	batch_id = Column(String(32), nullable=False, index=True)
	teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
	semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False, index=True)
	rank = Column(Integer, nullable=False)
	awarded_amount = Column(Numeric(10, 2), nullable=False)
	base_amount = Column(Numeric(10, 2), nullable=False)
	tier_label = Column(String(128), nullable=False, default="")
	split_across_ties = Column(Boolean, default=False, nullable=False)
	awarded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	awarded_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

	teacher = relationship("Teacher")


class TeacherRanking(Base):
	__tablename__ = "teacher_rankings"
	__table_args__ = (UniqueConstraint("teacher_id", "semester_id", name="uq_teacher_rankings_teacher_semester"),)
	id = Column(Integer, primary_key=True)
	teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
	semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False)
	rank = Column(Integer, nullable=False)
	average_rating = Column(Numeric(4, 2), nullable=False)
	total_ratings = Column(Integer, nullable=False)
	bonus_amount = Column(Numeric(10, 2), nullable=False, default=0)
	calculated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SystemSetting(Base):
	__tablename__ = "system_settings"
	id = Column(Integer, primary_key=True)
	key = Column(String(128), nullable=False, unique=True)
	value = Column(String(256), nullable=False, default="")
	description = Column(String(256), nullable=True)
	modified_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AIControlSetting(Base):
	__tablename__ = "ai_control_settings"
	__table_args__ = (UniqueConstraint("scope", "scope_id", name="uq_ai_control_settings_scope"),)
	id = Column(Integer, primary_key=True)
	scope = Column(Enum(AiControlScope, native_enum=False, length=16), nullable=False)
	# Null when scope is global
	scope_id = Column(Integer, nullable=True)
	is_enabled = Column(Boolean, default=True, nullable=False)
	mode = Column(Enum(AiInteractionMode, native_enum=False, length=16), nullable=False, default=AiInteractionMode.EXPLAIN)
	notes = Column(String(250), nullable=True)
	modified_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	modified_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class AIUsageLog(Base):
	__tablename__ = "ai_usage_logs"
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
	class_id = Column(Integer, nullable=True)
	query = Column(Text, nullable=False, default="")
	response = Column(Text, nullable=False, default="")
	mode = Column(Enum(AiInteractionMode, native_enum=False, length=16), nullable=False, default=AiInteractionMode.EXPLAIN)
	timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
	viewed_at = Column(DateTime, nullable=True)

	user = relationship("User")


class AISummary(Base):
	__tablename__ = "ai_summaries"
	id = Column(Integer, primary_key=True)
	teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
	lesson_notes = Column(Text, nullable=False)
	summary = Column(Text, nullable=False)  # JSON string of sections
	generated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	model = Column(String(64), nullable=False, default="gemini-2.5-flash")


class LessonPlan(Base):
	__tablename__ = "lesson_plans"
	id = Column(Integer, primary_key=True)
	teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
	subject = Column(String(100), nullable=False)
	grade_level = Column(String(50), nullable=False)
	topic_focus = Column(String(500), nullable=False)
	student_needs = Column(String(500), nullable=True)
	duration_minutes = Column(Integer, nullable=True)
	sections_json = Column(Text, nullable=False)
	resources_json = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# Primary key is the JWT id (jti)
	session_id = Column(String(64), primary_key=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)
