from datetime import date
from decimal import Decimal

import pytest

from conftest import add_ratings, make_user
from ratemyteacher.bonus import TierSetting, TieStrategy, calculate_payouts
from ratemyteacher.errors import (
	InvalidThresholdError,
	InvalidTierError,
	NoSemestersConfiguredError,
	NotFoundError,
	RatingValidationError,
	SemesterNotFoundError,
)
from ratemyteacher.models import Bonus, BonusConfig, Rating, Semester, Student, TeacherRanking, UserRole
from ratemyteacher.services import bonuses as bonus_service
from ratemyteacher.services import ratings as rating_service


@pytest.fixture
def teacher(db):
	return make_user(db, UserRole.TEACHER, "Jordan", "Lee", department="Mathematics")


@pytest.fixture
def student(db):
	return make_user(db, UserRole.STUDENT, "Casey", "Morgan")


def test_submit_rating_creates_then_updates(db, semester, teacher, student):
	rating, created = rating_service.submit_rating(db, student.id, teacher.teacher_profile.id, 4, "  Clear lessons ")
	assert created is True
	assert rating.comment == "Clear lessons"
	assert rating.semester_id == semester.id

	again, created = rating_service.submit_rating(db, student.id, teacher.teacher_profile.id, 2)
	assert created is False
	assert again.id == rating.id
	assert again.stars == 2
	assert again.updated_at is not None
	assert db.query(Rating).count() == 1


@pytest.mark.parametrize("stars", [0, 6])
def test_submit_rating_rejects_out_of_range_stars(db, semester, teacher, student, stars):
	with pytest.raises(RatingValidationError):
		rating_service.submit_rating(db, student.id, teacher.teacher_profile.id, stars)


def test_submit_rating_rejects_long_comment(db, semester, teacher, student):
	with pytest.raises(RatingValidationError):
		rating_service.submit_rating(db, student.id, teacher.teacher_profile.id, 3, "x" * 501)


def test_teacher_cannot_rate_themselves(db, semester, teacher):
	db.add(Student(user_id=teacher.id, grade_level=12))
	db.commit()
	with pytest.raises(RatingValidationError):
		rating_service.submit_rating(db, teacher.id, teacher.teacher_profile.id, 5)


def test_deleted_teacher_cannot_be_rated(db, semester, teacher, student):
	teacher.is_deleted = True
	db.commit()
	with pytest.raises(NotFoundError):
		rating_service.submit_rating(db, student.id, teacher.teacher_profile.id, 5)


def test_active_semester_prefers_current_flag(db):
	db.add_all([
		Semester(name="Spring 2026", academic_year="2025/2026", start_date=date(2026, 1, 10), end_date=date(2026, 5, 30), is_current=False),
		Semester(name="Fall 2025", academic_year="2025/2026", start_date=date(2025, 8, 1), end_date=date(2025, 12, 20), is_current=True),
	])
	db.commit()
	assert rating_service.get_active_semester(db).name == "Fall 2025"


def test_active_semester_falls_back_to_latest_start(db):
	db.add_all([
		Semester(name="Spring 2026", academic_year="2025/2026", start_date=date(2026, 1, 10), end_date=date(2026, 5, 30)),
		Semester(name="Fall 2025", academic_year="2025/2026", start_date=date(2025, 8, 1), end_date=date(2025, 12, 20)),
	])
	db.commit()
	assert rating_service.get_active_semester(db).name == "Spring 2026"


def test_leaderboard_without_semesters(db):
	with pytest.raises(NoSemestersConfiguredError):
		rating_service.get_leaderboard(db, None, 1)


def test_leaderboard_unknown_semester(db, semester):
	with pytest.raises(SemesterNotFoundError):
		rating_service.get_leaderboard(db, semester.id + 100, 1)


def test_leaderboard_checks_threshold_before_semester(db):
	with pytest.raises(InvalidThresholdError):
		rating_service.get_leaderboard(db, 999, 0)


def test_leaderboard_from_database(db, semester):
	alice = make_user(db, UserRole.TEACHER, "Alice", "Adams")
	bob = make_user(db, UserRole.TEACHER, "Bob", "Brown")
	carol = make_user(db, UserRole.TEACHER, "Carol", "Clark")
	add_ratings(db, semester, alice, [5, 5, 4])
	add_ratings(db, semester, bob, [5, 4, 5])
	add_ratings(db, semester, carol, [4, 4, 4, 4, 4])

	result = rating_service.get_leaderboard(db, semester.id, 1)

	assert result.semester.id == semester.id
	assert result.semester.is_current is True
	assert [(e.teacher_name, e.rank, e.is_tie) for e in result.entries] == [
		("Alice Adams", 1, True),
		("Bob Brown", 1, True),
		("Carol Clark", 3, False),
	]


def test_leaderboard_ignores_deleted_users(db, semester):
	alice = make_user(db, UserRole.TEACHER, "Alice", "Adams")
	gone = make_user(db, UserRole.TEACHER, "Gone", "Teacher")
	students = add_ratings(db, semester, alice, [5, 1])
	add_ratings(db, semester, gone, [5, 5])

	# A deleted student's rating no longer counts and a deleted teacher drops off
	students[1].is_deleted = True
	gone.is_deleted = True
	db.commit()

	entries = rating_service.get_leaderboard(db, None, 1).entries
	assert [(e.teacher_name, e.total_ratings, e.average_rating) for e in entries] == [("Alice Adams", 1, 5.0)]


def test_list_teachers_includes_unrated(db, semester, teacher):
	other = make_user(db, UserRole.TEACHER, "Ada", "Byron", department="Science")
	add_ratings(db, semester, other, [4, 5])

	listings = rating_service.list_teachers(db)
	assert [(t.name, t.average_rating, t.total_ratings) for t in listings] == [
		("Ada Byron", 4.5, 2),
		("Jordan Lee", None, 0),
	]
	assert [t.name for t in rating_service.list_teachers(db, department="Mathematics")] == ["Jordan Lee"]


def test_default_bonus_settings_created_from_environment(db):
	settings = bonus_service.get_bonus_settings(db)

	assert settings.minimum_ratings_threshold == 10
	assert [(t.position, t.amount) for t in settings.tiers] == [(1, Decimal("10")), (2, Decimal("5"))]
	assert settings.currency_code == "USD"
	assert settings.tie_strategy is TieStrategy.SPLIT
	assert db.query(BonusConfig).count() == 1

	bonus_service.get_bonus_settings(db)
	assert db.query(BonusConfig).count() == 1


def test_update_bonus_settings_replaces_tiers(db, admin):
	bonus_service.get_bonus_settings(db)
	updated = bonus_service.update_bonus_settings(
		db,
		3,
		[TierSetting(amount=Decimal("2"), range_start=3, range_end=5), TierSetting(amount=Decimal("20"), position=1)],
		modified_by_id=admin.id,
	)

	assert updated.minimum_ratings_threshold == 3
	assert [t.label for t in updated.tiers] == ["Rank 1", "Ranks 3-5"]
	assert db.query(BonusConfig).one().modified_by_id == admin.id


def test_update_bonus_settings_rejects_bad_threshold(db):
	with pytest.raises(InvalidThresholdError):
		bonus_service.update_bonus_settings(db, 0, [TierSetting(amount=Decimal("1"), position=1)])


def test_award_bonuses_writes_one_batch(db, semester, admin):
	alice = make_user(db, UserRole.TEACHER, "Alice", "Adams")
	bob = make_user(db, UserRole.TEACHER, "Bob", "Brown")
	carol = make_user(db, UserRole.TEACHER, "Carol", "Clark")
	add_ratings(db, semester, alice, [5, 5, 4])
	add_ratings(db, semester, bob, [5, 4, 5])
	add_ratings(db, semester, carol, [4, 4, 4, 4, 4])

	board = rating_service.get_leaderboard(db, semester.id, 1)
	payouts = calculate_payouts(board.entries, [TierSetting(amount=Decimal("10"), position=1)])
	result = bonus_service.award_bonuses(db, board, payouts, awarded_by_id=admin.id)

	assert result.awarded_count == 2
	assert result.batch_id
	rows = db.query(Bonus).all()
	assert {b.batch_id for b in rows} == {result.batch_id}
	assert all(Decimal(b.awarded_amount) == Decimal("5.00") and b.split_across_ties for b in rows)
	snapshot = db.query(TeacherRanking).filter_by(teacher_id=alice.teacher_profile.id).one()
	assert snapshot.rank == 1
	assert Decimal(snapshot.average_rating) == Decimal("4.67")

	# A second run adds a new batch but keeps one snapshot per teacher
	second = bonus_service.award_bonuses(db, board, payouts, awarded_by_id=admin.id)
	assert second.batch_id != result.batch_id
	assert db.query(Bonus).count() == 4
	assert db.query(TeacherRanking).count() == 2
	assert len(bonus_service.list_awards(db, semester.id, second.batch_id)) == 2


def test_award_bonuses_with_no_payouts(db, semester):
	board = rating_service.get_leaderboard(db, semester.id, 1)
	result = bonus_service.award_bonuses(db, board, [])

	assert result.batch_id is None
	assert result.awarded_count == 0
	assert db.query(Bonus).count() == 0


def test_update_bonus_settings_requires_a_tier(db):
	bonus_service.update_bonus_settings(db, 3, [TierSetting(amount=Decimal("10"), position=1)])

	with pytest.raises(InvalidTierError):
		bonus_service.update_bonus_settings(db, 4, [])

	kept = bonus_service.get_bonus_settings(db)
	assert kept.minimum_ratings_threshold == 3
	assert [t.label for t in kept.tiers] == ["Rank 1"]
	assert db.query(BonusConfig).count() == 1


def test_award_bonuses_rolls_back_failed_batch(db, semester, monkeypatch):
	alice = make_user(db, UserRole.TEACHER, "Alice", "Adams")
	add_ratings(db, semester, alice, [5, 4])
	board = rating_service.get_leaderboard(db, semester.id, 1)
	payouts = calculate_payouts(board.entries, [TierSetting(amount=Decimal("10"), position=1)])

	def failing_commit():
		raise RuntimeError("database is locked")

	monkeypatch.setattr(db, "commit", failing_commit)
	with pytest.raises(RuntimeError, match="database is locked"):
		bonus_service.award_bonuses(db, board, payouts)
	monkeypatch.undo()

	assert db.query(Bonus).count() == 0
	assert db.query(TeacherRanking).count() == 0


def test_teacher_listing_for_one_teacher(db, semester, teacher):
	add_ratings(db, semester, teacher, [5, 4])
	make_user(db, UserRole.TEACHER, "Other", "Person")

	listing = rating_service.get_teacher_listing(db, teacher.teacher_profile.id)
	assert (listing.name, listing.department, listing.average_rating, listing.total_ratings) == (
		"Jordan Lee",
		"Mathematics",
		4.5,
		2,
	)


def test_teacher_listing_without_semesters(db, teacher):
	listing = rating_service.get_teacher_listing(db, teacher.teacher_profile.id)

	assert listing.average_rating is None
	assert listing.total_ratings == 0


def test_teacher_listing_hides_deleted_teacher(db, teacher):
	teacher.is_deleted = True
	db.commit()
	with pytest.raises(NotFoundError):
		rating_service.get_teacher_listing(db, teacher.teacher_profile.id)
