from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..services import ratings as rating_service
from .auth import CurrentUser, get_current_user

router = APIRouter(prefix="/teachers", tags=["teachers"])


class TeacherOut(BaseModel):
	teacher_id: int
	name: str
	department: Optional[str] = None
	average_rating: Optional[float] = None
	total_ratings: int = 0


@router.get("", response_model=List[TeacherOut])
def list_teachers(
	department: Optional[str] = None,
	user: CurrentUser = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	return [TeacherOut(**vars(t)) for t in rating_service.list_teachers(db, department=department)]


@router.get("/{teacher_id}", response_model=TeacherOut)
def get_teacher(teacher_id: int, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
	return TeacherOut(**vars(rating_service.get_teacher_listing(db, teacher_id)))
