from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import AIControlSetting, AiControlScope, AiInteractionMode, TeacherAiMode, UserRole
from ..services import ai_usage
from .auth import CurrentUser, require_role

router = APIRouter(prefix="/settings/ai", tags=["ai_controls"])

admin_only = require_role(UserRole.ADMIN)


class GlobalSettingsModel(BaseModel):
	is_enabled: bool = True
	global_mode: AiInteractionMode = AiInteractionMode.EXPLAIN
	department_mode: AiInteractionMode = AiInteractionMode.EXPLAIN
	class_mode: AiInteractionMode = AiInteractionMode.EXPLAIN
	teacher_mode: TeacherAiMode = TeacherAiMode.GUIDED


class ScopeForm(BaseModel):
	id: Optional[int] = None
	scope: AiControlScope
	scope_id: Optional[int] = None
	is_enabled: bool = True
	mode: AiInteractionMode = AiInteractionMode.EXPLAIN
	notes: Optional[str] = Field(default=None, max_length=250)


class ScopeModel(BaseModel):
	id: int
	scope: AiControlScope
	scope_id: Optional[int] = None
	is_enabled: bool
	mode: AiInteractionMode
	notes: Optional[str] = None
	modified_at: datetime
	modified_by_id: Optional[int] = None


class UsageLogModel(BaseModel):
	id: int
	user_id: int
	user_name: str
	user_role: UserRole
	class_id: Optional[int] = None
	mode: AiInteractionMode
	timestamp: datetime
	viewed_at: Optional[datetime] = None
	query: str
	response: str


def _scope_model(row: AIControlSetting) -> ScopeModel:
	return ScopeModel(
		id=row.id,
		scope=row.scope,
		scope_id=row.scope_id,
		is_enabled=row.is_enabled,
		mode=row.mode,
		notes=row.notes,
		modified_at=row.modified_at,
		modified_by_id=row.modified_by_id,
	)


@router.get("", response_model=GlobalSettingsModel)
def get_global(user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	return GlobalSettingsModel(**vars(ai_usage.get_global_settings(db)))


@router.put("", response_model=GlobalSettingsModel)
def put_global(form: GlobalSettingsModel, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	updated = ai_usage.update_global_settings(db, ai_usage.AiGlobalSettings(**form.model_dump()), modified_by_id=user.id)
	return GlobalSettingsModel(**vars(updated))


@router.get("/scopes", response_model=List[ScopeModel])
def list_scopes(user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	return [_scope_model(row) for row in ai_usage.list_scopes(db)]


@router.post("/scopes", response_model=ScopeModel)
def upsert_scope(form: ScopeForm, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	row = ai_usage.upsert_scope(
		db,
		scope=form.scope,
		scope_id=form.scope_id,
		is_enabled=form.is_enabled,
		mode=form.mode,
		notes=form.notes,
		entry_id=form.id,
		modified_by_id=user.id,
	)
	return _scope_model(row)


@router.delete("/scopes/{entry_id}", status_code=204)
def delete_scope(entry_id: int, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	ai_usage.delete_scope(db, entry_id)


@router.get("/logs", response_model=List[UsageLogModel])
def usage_logs(
	user_id: Optional[int] = None,
	class_id: Optional[int] = None,
	mode: Optional[AiInteractionMode] = None,
	start: Optional[datetime] = Query(default=None, alias="from"),
	end: Optional[datetime] = Query(default=None, alias="to"),
	take: int = 50,
	user: CurrentUser = Depends(admin_only),
	db: Session = Depends(get_db),
):
	rows = ai_usage.get_usage_logs(db, user_id=user_id, class_id=class_id, mode=mode, start=start, end=end, take=take)
	return [
		UsageLogModel(
			id=row.id,
			user_id=row.user_id,
			user_name=row.user.full_name,
			user_role=row.user.role,
			class_id=row.class_id,
			mode=row.mode,
			timestamp=row.timestamp,
			viewed_at=row.viewed_at,
			query=row.query,
			response=row.response,
		)
		for row in rows
	]


@router.post("/logs/{log_id}/viewed", status_code=204)
def mark_viewed(log_id: int, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	ai_usage.mark_viewed(db, log_id)
