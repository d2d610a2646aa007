from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..bonus import Payout, TierSetting, TieStrategy, order_tiers
from ..errors import InvalidThresholdError, InvalidTierError
from ..models import Bonus, BonusConfig, BonusTier, TeacherRanking
from ..ranking import LeaderboardResult
from ..settings import settings as app_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BonusSettings:
	minimum_ratings_threshold: int
	tiers: List[TierSetting]
	currency_code: str
	tie_strategy: TieStrategy


@dataclass(frozen=True)
class AwardResult:
	semester_id: int
	batch_id: Optional[str]
	awarded_count: int


def _latest_config(db: Session) -> Optional[BonusConfig]:
	return (
		db.query(BonusConfig)
		.order_by(BonusConfig.modified_at.desc(), BonusConfig.created_at.desc(), BonusConfig.id.desc())
		.first()
	)


def _ensure_default_config(db: Session) -> BonusConfig:
	config = BonusConfig(
		minimum_ratings_threshold=app_settings.minimum_votes_threshold,
		tiers=[
			BonusTier(position=1, amount=app_settings.first_place_bonus),
			BonusTier(position=2, amount=app_settings.second_place_bonus),
		],
	)
	db.add(config)
	db.commit()
	db.refresh(config)
	logger.info("Created default bonus configuration using environment fallbacks.")
	return config


def _to_setting(tier: BonusTier) -> TierSetting:
	return TierSetting(
		amount=Decimal(tier.amount),
		position=tier.position,
		range_start=None if tier.position is not None else tier.range_start,
		range_end=None if tier.position is not None else tier.range_end,
	)


def get_bonus_settings(db: Session) -> BonusSettings:
	config = _latest_config(db)
	if config is None or not config.tiers:
		config = _ensure_default_config(db)
	return BonusSettings(
		minimum_ratings_threshold=config.minimum_ratings_threshold,
		tiers=order_tiers(_to_setting(t) for t in config.tiers),
		currency_code=app_settings.bonus_currency or "USD",
		tie_strategy=TieStrategy.parse(app_settings.bonus_tie_strategy),
	)


def update_bonus_settings(
	db: Session,
	minimum_ratings_threshold: int,
	tiers: Iterable[TierSetting],
	modified_by_id: Optional[int] = None,
) -> BonusSettings:
	if minimum_ratings_threshold < 1:
		raise InvalidThresholdError("Minimum ratings threshold must be at least 1.")
	tiers = list(tiers)
	if not tiers:
		raise InvalidTierError("At least one bonus tier is required.")
	config = _latest_config(db)
	if config is None:
		config = BonusConfig()
		db.add(config)
	config.minimum_ratings_threshold = minimum_ratings_threshold
	config.modified_at = datetime.utcnow()
	config.modified_by_id = modified_by_id
	config.tiers = [
		BonusTier(position=t.position, range_start=t.range_start, range_end=t.range_end, amount=t.amount)
		for t in tiers
	]
	db.commit()
	logger.info("Bonus configuration %s updated with %d tiers.", config.id, len(tiers))
	return get_bonus_settings(db)


def award_bonuses(
	db: Session,
	leaderboard: LeaderboardResult,
	payouts: List[Payout],
	awarded_by_id: Optional[int] = None,
) -> AwardResult:
	"""Persist one award batch: a bonus row per payout plus the ranking snapshot."""
	semester_id = leaderboard.semester.id
	if not payouts:
		return AwardResult(semester_id=semester_id, batch_id=None, awarded_count=0)

	batch_id = uuid.uuid4().hex
	now = datetime.utcnow()
	rankings = {
		r.teacher_id: r
		for r in db.query(TeacherRanking).filter(TeacherRanking.semester_id == semester_id).all()
	}
	try:
		for payout in payouts:
			entry = payout.entry
			average = Decimal(str(entry.average_rating)).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)
			ranking = rankings.get(entry.teacher_id)
			if ranking is None:
				ranking = TeacherRanking(teacher_id=entry.teacher_id, semester_id=semester_id)
				db.add(ranking)
				rankings[entry.teacher_id] = ranking
			ranking.rank = entry.rank
			ranking.average_rating = average
			ranking.total_ratings = entry.total_ratings
			ranking.bonus_amount = payout.awarded_amount
			ranking.calculated_at = now

			db.add(Bonus(
				batch_id=batch_id,
				teacher_id=entry.teacher_id,
				semester_id=semester_id,
				rank=entry.rank,
				awarded_amount=payout.awarded_amount,
				base_amount=payout.base_amount,
				tier_label=payout.tier_label,
				split_across_ties=payout.split_across_ties,
				awarded_at=now,
				awarded_by_id=awarded_by_id,
			))
		db.commit()
	except Exception:
		db.rollback()
		raise

	logger.info(
		"Awarded %d bonuses for semester %s with batch %s.",
		len(payouts),
		semester_id,
		batch_id,
	)
	return AwardResult(semester_id=semester_id, batch_id=batch_id, awarded_count=len(payouts))


def list_awards(db: Session, semester_id: int, batch_id: Optional[str] = None) -> List[Bonus]:
	query = db.query(Bonus).filter(Bonus.semester_id == semester_id)
	if batch_id:
		query = query.filter(Bonus.batch_id == batch_id)
	return query.order_by(Bonus.awarded_at.desc(), Bonus.rank, Bonus.id).all()
