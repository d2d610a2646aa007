import random

import pytest

from ratemyteacher.errors import InvalidThresholdError, ValidationError
from ratemyteacher.ranking import RatingRow, rank_teachers


def rows_for(teacher_id, name, stars_list, department="Science"):
	return [RatingRow(teacher_id, name, department, s) for s in stars_list]


@pytest.fixture
def sample_rows():
	# Alice and Bob average 14/3, Carol averages 4.0 over five ratings
	return (
		rows_for(1, "Alice", [5, 5, 4])
		+ rows_for(2, "Bob", [5, 4, 5])
		+ rows_for(3, "Carol", [4, 4, 4, 4, 4])
	)


def test_tied_teachers_share_rank_and_next_rank_skips(sample_rows):
	entries = rank_teachers(sample_rows, minimum_ratings=1)

	assert [e.teacher_name for e in entries] == ["Alice", "Bob", "Carol"]
	assert [e.rank for e in entries] == [1, 1, 3]
	assert [e.is_tie for e in entries] == [True, True, False]
	assert entries[0].average_rating == 4.667
	assert entries[2].average_rating == 4.0
	assert [e.total_ratings for e in entries] == [3, 3, 5]


def test_threshold_filters_teachers(sample_rows):
	entries = rank_teachers(sample_rows, minimum_ratings=5)

	assert len(entries) == 1
	assert entries[0].teacher_name == "Carol"
	assert entries[0].rank == 1
	assert entries[0].is_tie is False


def test_threshold_above_every_count_gives_empty_board(sample_rows):
	assert rank_teachers(sample_rows, minimum_ratings=6) == []


def test_empty_input():
	assert rank_teachers([], minimum_ratings=1) == []


@pytest.mark.parametrize("threshold", [0, -3])
def test_threshold_below_one_rejected(sample_rows, threshold):
	with pytest.raises(InvalidThresholdError):
		rank_teachers(sample_rows, minimum_ratings=threshold)


def test_threshold_error_is_a_validation_error():
	with pytest.raises(ValidationError):
		rank_teachers([], minimum_ratings=0)


def test_equal_average_orders_by_rating_count_then_name():
	rows = (
		rows_for(1, "Zed", [4, 4])
		+ rows_for(2, "Amy", [4, 4])
		+ rows_for(3, "Max", [4, 4, 4, 4])
	)
	entries = rank_teachers(rows, minimum_ratings=1)

	assert [e.teacher_name for e in entries] == ["Max", "Amy", "Zed"]
	assert {e.rank for e in entries} == {1}
	assert all(e.is_tie for e in entries)


def test_three_way_tie_followed_by_rank_four():
	rows = (
		rows_for(1, "A", [5])
		+ rows_for(2, "B", [5])
		+ rows_for(3, "C", [5])
		+ rows_for(4, "D", [3])
		+ rows_for(5, "E", [2])
	)
	entries = rank_teachers(rows, minimum_ratings=1)

	assert [e.rank for e in entries] == [1, 1, 1, 4, 5]
	assert [e.is_tie for e in entries] == [True, True, True, False, False]


def test_names_are_trimmed_and_department_kept():
	entries = rank_teachers(rows_for(7, "  Jordan Lee ", [4], department=None), minimum_ratings=1)

	assert entries[0].teacher_name == "Jordan Lee"
	assert entries[0].department is None


def test_ranking_is_idempotent(sample_rows):
	assert rank_teachers(sample_rows, 1) == rank_teachers(list(sample_rows), 1)


def test_ranks_are_monotonic_on_random_data():
	rng = random.Random(42)
	rows = []
	for teacher_id in range(1, 30):
		rows += rows_for(teacher_id, f"T{teacher_id:02d}", [rng.randint(1, 5) for _ in range(rng.randint(1, 12))])

	entries = rank_teachers(rows, minimum_ratings=3)

	assert all(e.total_ratings >= 3 for e in entries)
	assert entries[0].rank == 1
	for previous, current in zip(entries, entries[1:]):
		assert previous.average_rating >= current.average_rating
		assert previous.rank <= current.rank
	for position, entry in enumerate(entries, start=1):
		assert entry.rank <= position
