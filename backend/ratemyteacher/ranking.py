"""Semester leaderboard ranking.

Ratings are grouped per teacher, filtered by a minimum-ratings threshold and
ranked by average stars. Ties (averages within ``TIE_EPSILON``) share a rank
and the next distinct average takes its 1-based position, so two teachers
tied for first are followed by rank 3.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import InvalidThresholdError

TIE_EPSILON = 0.0001


@dataclass(frozen=True)
class RatingRow:
	teacher_id: int
	teacher_name: str
	department: Optional[str]
	stars: int


@dataclass(frozen=True)
class LeaderboardEntry:
	teacher_id: int
	teacher_name: str
	department: Optional[str]
	average_rating: float
	total_ratings: int
	rank: int
	is_tie: bool


@dataclass(frozen=True)
class SemesterSummary:
	id: int
	name: str
	academic_year: str
	is_current: bool


@dataclass(frozen=True)
class LeaderboardResult:
	semester: SemesterSummary
	entries: List[LeaderboardEntry]


@dataclass
class _Aggregate:
	teacher_id: int
	teacher_name: str
	department: Optional[str]
	star_total: int = 0
	count: int = 0

	@property
	def average(self) -> float:
		return self.star_total / self.count


def validate_threshold(minimum_ratings: int) -> None:
	if minimum_ratings < 1:
		raise InvalidThresholdError("Minimum ratings threshold must be at least 1.")


def rank_teachers(rows: Iterable[RatingRow], minimum_ratings: int) -> List[LeaderboardEntry]:
	validate_threshold(minimum_ratings)

	groups: Dict[int, _Aggregate] = {}
	for row in rows:
		agg = groups.get(row.teacher_id)
		if agg is None:
			agg = groups[row.teacher_id] = _Aggregate(row.teacher_id, row.teacher_name, row.department)
		agg.star_total += row.stars
		agg.count += 1

	qualified = [agg for agg in groups.values() if agg.count >= minimum_ratings]
	qualified.sort(key=lambda agg: (-agg.average, -agg.count, agg.teacher_name))

	ranks: List[int] = []
	previous_average: Optional[float] = None
	for position, agg in enumerate(qualified, start=1):
		average = agg.average
		if previous_average is not None and abs(average - previous_average) < TIE_EPSILON:
			ranks.append(ranks[-1])
		else:
			ranks.append(position)
		previous_average = average

	occupants = Counter(ranks)
	return [
		LeaderboardEntry(
			teacher_id=agg.teacher_id,
			teacher_name=agg.teacher_name.strip(),
			department=agg.department,
			average_rating=round(agg.average, 3),
			total_ratings=agg.count,
			rank=rank,
			is_tie=occupants[rank] > 1,
		)
		for agg, rank in zip(qualified, ranks)
	]
