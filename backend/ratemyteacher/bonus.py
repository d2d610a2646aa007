"""Bonus payout calculation over a ranked leaderboard.

Position tiers are paid before range tiers and each teacher is paid at most
once per run. When several teachers share a position tier and the strategy
is ``split``, the amount is divided evenly and each share is rounded to the
cent; the leftover fraction is not redistributed.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, List, Optional, Sequence, Set

from .errors import InvalidTierError
from .ranking import LeaderboardEntry

CENT = Decimal("0.01")


class TieStrategy(str, enum.Enum):
	SPLIT = "split"
	DUPLICATE = "duplicate"

	@classmethod
	def parse(cls, raw: Optional[str]) -> "TieStrategy":
		value = (raw or "").strip().lower()
		return cls.SPLIT if value in ("", cls.SPLIT.value) else cls.DUPLICATE


@dataclass(frozen=True)
class TierSetting:
	amount: Decimal
	position: Optional[int] = None
	range_start: Optional[int] = None
	range_end: Optional[int] = None

	def __post_init__(self) -> None:
		has_position = self.position is not None
		has_range = self.range_start is not None or self.range_end is not None
		if has_position == has_range:
			raise InvalidTierError("A bonus tier needs either a position or a rank range, not both.")
		if has_position and self.position < 1:
			raise InvalidTierError("Tier position must be at least 1.")
		if has_range:
			if self.range_start is None or self.range_end is None:
				raise InvalidTierError("A rank range needs both a start and an end.")
			if self.range_start < 1 or self.range_end < self.range_start:
				raise InvalidTierError("Rank range must start at 1 or later and end at or after its start.")
		amount = self.amount if isinstance(self.amount, Decimal) else Decimal(str(self.amount))
		if amount < 0:
			raise InvalidTierError("Tier amount cannot be negative.")
		object.__setattr__(self, "amount", amount)

	@property
	def is_position(self) -> bool:
		return self.position is not None

	def matches(self, rank: int) -> bool:
		if self.is_position:
			return rank == self.position
		return self.range_start <= rank <= self.range_end

	@property
	def label(self) -> str:
		if self.is_position:
			return f"Rank {self.position}"
		if self.range_start == self.range_end:
			return f"Rank {self.range_start}"
		return f"Ranks {self.range_start}-{self.range_end}"


@dataclass(frozen=True)
class Payout:
	entry: LeaderboardEntry
	awarded_amount: Decimal
	base_amount: Decimal
	tier_label: str
	split_across_ties: bool


def order_tiers(tiers: Iterable[TierSetting]) -> List[TierSetting]:
	"""Position tiers by position, then range tiers by range start."""
	tiers = list(tiers)
	position_tiers = sorted((t for t in tiers if t.is_position), key=lambda t: t.position)
	range_tiers = sorted((t for t in tiers if not t.is_position), key=lambda t: t.range_start)
	return position_tiers + range_tiers


def calculate_payouts(
	leaderboard: Sequence[LeaderboardEntry],
	tiers: Iterable[TierSetting],
	tie_strategy: TieStrategy = TieStrategy.SPLIT,
) -> List[Payout]:
	ordered = order_tiers(tiers)
	if not leaderboard or not ordered:
		return []

	payouts: List[Payout] = []
	awarded: Set[int] = set()
	for tier in ordered:
		matches = [e for e in leaderboard if e.teacher_id not in awarded and tier.matches(e.rank)]
		if not matches:
			continue
		split = len(matches) > 1 and tier.is_position and tie_strategy is TieStrategy.SPLIT
		share = tier.amount / len(matches) if split else tier.amount
		share = share.quantize(CENT, rounding=ROUND_HALF_EVEN)
		for entry in matches:
			awarded.add(entry.teacher_id)
			payouts.append(
				Payout(
					entry=entry,
					awarded_amount=share,
					base_amount=tier.amount,
					tier_label=tier.label,
					split_across_ties=split,
				)
			)
	return payouts
