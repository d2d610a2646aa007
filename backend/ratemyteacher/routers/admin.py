from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..bonus import Payout, TierSetting, calculate_payouts
from ..db import get_db
from ..models import UserRole
from ..ranking import LeaderboardEntry, SemesterSummary
from ..services import bonuses as bonus_service
from ..services import ratings as rating_service
from .auth import CurrentUser, require_role

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_role(UserRole.ADMIN)


class TierModel(BaseModel):
	position: Optional[int] = None
	range_start: Optional[int] = None
	range_end: Optional[int] = None
	amount: Decimal = Field(ge=0)
	label: Optional[str] = None


class BonusSettingsModel(BaseModel):
	minimum_ratings_threshold: int
	currency_code: str
	tie_strategy: str
	tiers: List[TierModel]


class BonusSettingsUpdate(BaseModel):
	minimum_ratings_threshold: int
	tiers: List[TierModel]


class SemesterModel(BaseModel):
	id: int
	name: str
	academic_year: str
	is_current: bool
	start_date: Optional[date] = None
	end_date: Optional[date] = None


class EntryModel(BaseModel):
	teacher_id: int
	teacher_name: str
	department: Optional[str] = None
	average_rating: float
	total_ratings: int
	rank: int
	is_tie: bool


class PayoutModel(BaseModel):
	teacher_id: int
	teacher_name: str
	rank: int
	awarded_amount: Decimal
	base_amount: Decimal
	tier_label: str
	split_across_ties: bool


class LeaderboardPage(BaseModel):
	semester: SemesterModel
	settings: BonusSettingsModel
	entries: List[EntryModel]
	payouts: List[PayoutModel]
	message: Optional[str] = None


class AwardRequest(BaseModel):
	semester_id: Optional[int] = None


class AwardResponse(BaseModel):
	semester_id: int
	batch_id: Optional[str] = None
	awarded_count: int
	message: str


class AwardRow(BaseModel):
	batch_id: str
	teacher_id: int
	rank: int
	awarded_amount: Decimal
	base_amount: Decimal
	tier_label: str
	split_across_ties: bool
	awarded_at: datetime
	awarded_by_id: Optional[int] = None


NO_QUALIFIED_MESSAGE = "No teachers met the minimum ratings threshold for that semester."
NO_MATCH_MESSAGE = "Bonus tiers did not match any teachers. Adjust the configuration and try again."


def _settings_model(settings: bonus_service.BonusSettings) -> BonusSettingsModel:
	return BonusSettingsModel(
		minimum_ratings_threshold=settings.minimum_ratings_threshold,
		currency_code=settings.currency_code,
		tie_strategy=settings.tie_strategy.value,
		tiers=[
			TierModel(position=t.position, range_start=t.range_start, range_end=t.range_end, amount=t.amount, label=t.label)
			for t in settings.tiers
		],
	)


def _entry_model(entry: LeaderboardEntry) -> EntryModel:
	return EntryModel(**vars(entry))


def _payout_model(payout: Payout) -> PayoutModel:
	return PayoutModel(
		teacher_id=payout.entry.teacher_id,
		teacher_name=payout.entry.teacher_name,
		rank=payout.entry.rank,
		awarded_amount=payout.awarded_amount,
		base_amount=payout.base_amount,
		tier_label=payout.tier_label,
		split_across_ties=payout.split_across_ties,
	)


def _semester_model(summary: SemesterSummary) -> SemesterModel:
	return SemesterModel(id=summary.id, name=summary.name, academic_year=summary.academic_year, is_current=summary.is_current)


@router.get("/semesters", response_model=List[SemesterModel])
def semesters(user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	return [
		SemesterModel(
			id=s.id,
			name=s.name,
			academic_year=s.academic_year,
			is_current=bool(s.is_current),
			start_date=s.start_date,
			end_date=s.end_date,
		)
		for s in rating_service.list_semesters(db)
	]


@router.get("/leaderboard", response_model=LeaderboardPage)
def leaderboard(semester_id: Optional[int] = None, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	settings = bonus_service.get_bonus_settings(db)
	result = rating_service.get_leaderboard(db, semester_id, settings.minimum_ratings_threshold)
	payouts = calculate_payouts(result.entries, settings.tiers, settings.tie_strategy)
	return LeaderboardPage(
		semester=_semester_model(result.semester),
		settings=_settings_model(settings),
		entries=[_entry_model(e) for e in result.entries],
		payouts=[_payout_model(p) for p in payouts],
		message=None if result.entries else NO_QUALIFIED_MESSAGE,
	)


@router.post("/leaderboard/award", response_model=AwardResponse)
def award(req: AwardRequest, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	settings = bonus_service.get_bonus_settings(db)
	result = rating_service.get_leaderboard(db, req.semester_id, settings.minimum_ratings_threshold)
	if not result.entries:
		return AwardResponse(semester_id=result.semester.id, awarded_count=0, message=NO_QUALIFIED_MESSAGE)
	payouts = calculate_payouts(result.entries, settings.tiers, settings.tie_strategy)
	if not payouts:
		return AwardResponse(semester_id=result.semester.id, awarded_count=0, message=NO_MATCH_MESSAGE)
	outcome = bonus_service.award_bonuses(db, result, payouts, awarded_by_id=user.id)
	return AwardResponse(
		semester_id=outcome.semester_id,
		batch_id=outcome.batch_id,
		awarded_count=outcome.awarded_count,
		message=f"Awarded {outcome.awarded_count} bonuses (batch {outcome.batch_id}).",
	)


@router.get("/bonuses", response_model=List[AwardRow])
def awards(
	semester_id: Optional[int] = None,
	batch_id: Optional[str] = None,
	user: CurrentUser = Depends(admin_only),
	db: Session = Depends(get_db),
):
	semester = rating_service.resolve_semester(db, semester_id)
	return [
		AwardRow(
			batch_id=b.batch_id,
			teacher_id=b.teacher_id,
			rank=b.rank,
			awarded_amount=b.awarded_amount,
			base_amount=b.base_amount,
			tier_label=b.tier_label,
			split_across_ties=b.split_across_ties,
			awarded_at=b.awarded_at,
			awarded_by_id=b.awarded_by_id,
		)
		for b in bonus_service.list_awards(db, semester.id, batch_id)
	]


@router.get("/bonus-settings", response_model=BonusSettingsModel)
def get_settings(user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	return _settings_model(bonus_service.get_bonus_settings(db))


@router.put("/bonus-settings", response_model=BonusSettingsModel)
def put_settings(req: BonusSettingsUpdate, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	tiers = [
		TierSetting(amount=t.amount, position=t.position, range_start=t.range_start, range_end=t.range_end)
		for t in req.tiers
	]
	updated = bonus_service.update_bonus_settings(db, req.minimum_ratings_threshold, tiers, modified_by_id=user.id)
	return _settings_model(updated)
