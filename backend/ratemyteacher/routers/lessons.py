from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import UserRole
from ..services import lessons as lesson_service
from .auth import CurrentUser, require_role

router = APIRouter(prefix="/lessons", tags=["lessons"])

teacher_or_admin = require_role(UserRole.TEACHER, UserRole.ADMIN)


class SectionModel(BaseModel):
	title: str
	points: List[str]


class SummaryRequest(BaseModel):
	lesson_notes: str
	teacher_id: Optional[int] = None


class SummaryModel(BaseModel):
	id: int
	generated_at: datetime
	model: str
	lesson_notes: str
	sections: List[SectionModel]


class PlanRequest(BaseModel):
	subject: str
	grade_level: str
	topic_focus: str
	student_needs: Optional[str] = None
	duration_minutes: Optional[int] = None
	teacher_id: Optional[int] = None


class PlanModel(BaseModel):
	id: int
	created_at: datetime
	subject: str
	grade_level: str
	topic_focus: str
	student_needs: Optional[str] = None
	duration_minutes: Optional[int] = None
	sections: List[SectionModel]
	resources: List[str]


def _resolve_teacher_id(user: CurrentUser, requested: Optional[int]) -> int:
	# Teachers always act on their own profile; admins must pick one
	if user.role is UserRole.TEACHER:
		if user.teacher_id is None:
			raise HTTPException(status_code=404, detail="Teacher profile not found")
		return user.teacher_id
	if requested is None:
		raise HTTPException(status_code=400, detail="teacher_id is required")
	return requested


def _sections(sections: List[lesson_service.Section]) -> List[SectionModel]:
	return [SectionModel(title=s.title, points=list(s.points)) for s in sections]


def _summary_model(summary: lesson_service.LessonSummary) -> SummaryModel:
	return SummaryModel(
		id=summary.id,
		generated_at=summary.generated_at,
		model=summary.model,
		lesson_notes=summary.lesson_notes,
		sections=_sections(summary.sections),
	)


def _plan_model(plan: lesson_service.LessonPlanView) -> PlanModel:
	return PlanModel(
		id=plan.id,
		created_at=plan.created_at,
		subject=plan.subject,
		grade_level=plan.grade_level,
		topic_focus=plan.topic_focus,
		student_needs=plan.student_needs,
		duration_minutes=plan.duration_minutes,
		sections=_sections(plan.sections),
		resources=list(plan.resources),
	)


@router.post("/summaries", response_model=SummaryModel)
async def create_summary(req: SummaryRequest, user: CurrentUser = Depends(teacher_or_admin), db: Session = Depends(get_db)):
	teacher_id = _resolve_teacher_id(user, req.teacher_id)
	summary = await lesson_service.generate_summary(db, teacher_id, user.id, req.lesson_notes)
	return _summary_model(summary)


@router.get("/summaries", response_model=List[SummaryModel])
def list_summaries(
	teacher_id: Optional[int] = None,
	take: int = 10,
	user: CurrentUser = Depends(teacher_or_admin),
	db: Session = Depends(get_db),
):
	resolved = _resolve_teacher_id(user, teacher_id)
	return [_summary_model(s) for s in lesson_service.summary_history(db, resolved, take)]


@router.post("/plans", response_model=PlanModel)
async def create_plan(req: PlanRequest, user: CurrentUser = Depends(teacher_or_admin), db: Session = Depends(get_db)):
	teacher_id = _resolve_teacher_id(user, req.teacher_id)
	plan = await lesson_service.generate_lesson_plan(
		db,
		lesson_service.LessonPlanRequest(
			teacher_id=teacher_id,
			requested_by_user_id=user.id,
			subject=req.subject,
			grade_level=req.grade_level,
			topic_focus=req.topic_focus,
			student_needs=req.student_needs,
			duration_minutes=req.duration_minutes,
		),
	)
	return _plan_model(plan)


@router.get("/plans", response_model=List[PlanModel])
def list_plans(
	teacher_id: Optional[int] = None,
	take: int = 10,
	user: CurrentUser = Depends(teacher_or_admin),
	db: Session = Depends(get_db),
):
	resolved = _resolve_teacher_id(user, teacher_id)
	return [_plan_model(p) for p in lesson_service.lesson_plan_history(db, resolved, take)]
