from __future__ import annotations
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Rating, UserRole
from ..services import ratings as rating_service
from .auth import CurrentUser, require_role

router = APIRouter(prefix="/ratings", tags=["ratings"])


class RatingSubmission(BaseModel):
	teacher_id: int
	stars: int
	comment: Optional[str] = None


class RatingOut(BaseModel):
	rating_id: int
	teacher_id: int
	semester_id: int
	stars: int
	comment: Optional[str] = None
	created_at: datetime
	updated_at: Optional[datetime] = None


class RatingResult(BaseModel):
	created: bool
	rating: RatingOut


def _to_out(rating: Rating) -> RatingOut:
	return RatingOut(
		rating_id=rating.id,
		teacher_id=rating.teacher_id,
		semester_id=rating.semester_id,
		stars=rating.stars,
		comment=rating.comment,
		created_at=rating.created_at,
		updated_at=rating.updated_at,
	)


@router.post("", response_model=RatingResult)
def submit(
	req: RatingSubmission,
	user: CurrentUser = Depends(require_role(UserRole.STUDENT)),
	db: Session = Depends(get_db),
):
	rating, created = rating_service.submit_rating(db, user.id, req.teacher_id, req.stars, req.comment)
	return RatingResult(created=created, rating=_to_out(rating))


@router.get("/teachers/{teacher_id}", response_model=Optional[RatingOut])
def my_rating(
	teacher_id: int,
	user: CurrentUser = Depends(require_role(UserRole.STUDENT)),
	db: Session = Depends(get_db),
):
	rating = rating_service.get_student_rating(db, user.id, teacher_id)
	return _to_out(rating) if rating else None
