from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..errors import AiDisabledError, NotFoundError, ValidationError
from ..models import (
	AIControlSetting,
	AIUsageLog,
	AiControlScope,
	AiInteractionMode,
	SystemSetting,
	TeacherAiMode,
	User,
	visible,
)

logger = logging.getLogger(__name__)

KEY_GLOBAL_ENABLED = "ai.global_enabled"
KEY_GLOBAL_MODE = "ai.global_mode"
KEY_DEPARTMENT_MODE = "ai.department_mode"
KEY_CLASS_MODE = "ai.class_mode"
KEY_TEACHER_MODE = "ai.teacher_mode"

DEFAULTS: Dict[str, str] = {
	KEY_GLOBAL_ENABLED: "true",
	KEY_GLOBAL_MODE: AiInteractionMode.EXPLAIN.value,
	KEY_DEPARTMENT_MODE: AiInteractionMode.EXPLAIN.value,
	KEY_CLASS_MODE: AiInteractionMode.EXPLAIN.value,
	KEY_TEACHER_MODE: TeacherAiMode.GUIDED.value,
}

DESCRIPTIONS: Dict[str, str] = {
	KEY_GLOBAL_ENABLED: "Enables or disables AI features globally.",
	KEY_GLOBAL_MODE: "Default interaction mode when no override applies.",
	KEY_DEPARTMENT_MODE: "Fallback interaction mode for department overrides.",
	KEY_CLASS_MODE: "Fallback interaction mode for class overrides.",
	KEY_TEACHER_MODE: "Choose unrestricted, guided, or off for teachers.",
}


@dataclass(frozen=True)
class AiGlobalSettings:
	is_enabled: bool
	global_mode: AiInteractionMode
	department_mode: AiInteractionMode
	class_mode: AiInteractionMode
	teacher_mode: TeacherAiMode


def _parse_bool(raw: Optional[str], default: bool) -> bool:
	if raw is None:
		return default
	value = raw.strip().lower()
	if value in ("true", "1", "yes", "on"):
		return True
	if value in ("false", "0", "no", "off"):
		return False
	return default


def _parse_mode(raw: Optional[str]) -> AiInteractionMode:
	try:
		return AiInteractionMode((raw or "").strip().lower())
	except ValueError:
		return AiInteractionMode.EXPLAIN


def _parse_teacher_mode(raw: Optional[str]) -> TeacherAiMode:
	try:
		return TeacherAiMode((raw or "").strip().lower())
	except ValueError:
		return TeacherAiMode.GUIDED


def _load_values(db: Session) -> Dict[str, str]:
	rows = db.query(SystemSetting).filter(SystemSetting.key.in_(list(DEFAULTS))).all()
	return {row.key: row.value for row in rows}


def ensure_default_settings(db: Session) -> None:
	existing = _load_values(db)
	for key, value in DEFAULTS.items():
		if key not in existing:
			db.add(SystemSetting(key=key, value=value, description=DESCRIPTIONS.get(key)))
	db.commit()


def get_global_settings(db: Session) -> AiGlobalSettings:
	values = _load_values(db)
	return AiGlobalSettings(
		is_enabled=_parse_bool(values.get(KEY_GLOBAL_ENABLED), default=True),
		global_mode=_parse_mode(values.get(KEY_GLOBAL_MODE)),
		department_mode=_parse_mode(values.get(KEY_DEPARTMENT_MODE)),
		class_mode=_parse_mode(values.get(KEY_CLASS_MODE)),
		teacher_mode=_parse_teacher_mode(values.get(KEY_TEACHER_MODE)),
	)


def update_global_settings(db: Session, form: AiGlobalSettings, modified_by_id: Optional[int] = None) -> AiGlobalSettings:
	upserts = {
		KEY_GLOBAL_ENABLED: "true" if form.is_enabled else "false",
		KEY_GLOBAL_MODE: form.global_mode.value,
		KEY_DEPARTMENT_MODE: form.department_mode.value,
		KEY_CLASS_MODE: form.class_mode.value,
		KEY_TEACHER_MODE: form.teacher_mode.value,
	}
	existing = {row.key: row for row in db.query(SystemSetting).filter(SystemSetting.key.in_(list(upserts))).all()}
	now = datetime.utcnow()
	for key, value in upserts.items():
		row = existing.get(key)
		if row is None:
			db.add(SystemSetting(key=key, value=value, description=DESCRIPTIONS.get(key), modified_at=now))
		else:
			row.value = value
			row.modified_at = now

	# The global scope row mirrors the global switch
	global_row = db.query(AIControlSetting).filter(AIControlSetting.scope == AiControlScope.GLOBAL).first()
	if global_row is None:
		global_row = AIControlSetting(scope=AiControlScope.GLOBAL)
		db.add(global_row)
	global_row.is_enabled = form.is_enabled
	global_row.mode = form.global_mode
	global_row.modified_at = now
	global_row.modified_by_id = modified_by_id
	db.commit()
	return get_global_settings(db)


def require_teacher_ai(db: Session) -> TeacherAiMode:
	"""Return the teacher AI mode, raising when AI is off for teachers."""
	state = get_global_settings(db)
	if not state.is_enabled or state.teacher_mode is TeacherAiMode.OFF:
		raise AiDisabledError("AI features are currently disabled for teachers.")
	return state.teacher_mode


def interaction_mode_for(teacher_mode: TeacherAiMode) -> AiInteractionMode:
	if teacher_mode is TeacherAiMode.UNRESTRICTED:
		return AiInteractionMode.SHOW_ANSWER
	if teacher_mode is TeacherAiMode.GUIDED:
		return AiInteractionMode.GUIDE
	return AiInteractionMode.EXPLAIN


def list_scopes(db: Session) -> List[AIControlSetting]:
	rows = db.query(AIControlSetting).all()
	order = list(AiControlScope)
	return sorted(rows, key=lambda r: (order.index(r.scope), r.scope_id or 0))


def upsert_scope(
	db: Session,
	scope: AiControlScope,
	scope_id: Optional[int],
	is_enabled: bool,
	mode: AiInteractionMode,
	notes: Optional[str] = None,
	entry_id: Optional[int] = None,
	modified_by_id: Optional[int] = None,
) -> AIControlSetting:
	if scope is not AiControlScope.GLOBAL and scope_id is None:
		raise ValidationError("Scope identifier is required for department or class overrides.")
	if scope is AiControlScope.GLOBAL:
		scope_id = None
	if notes is not None and len(notes) > 250:
		raise ValidationError("Notes must be 250 characters or fewer.")

	row: Optional[AIControlSetting] = None
	if entry_id is not None:
		row = db.get(AIControlSetting, entry_id)
		if row is None:
			logger.warning("Scope entry %s not found for update.", entry_id)
	else:
		query = db.query(AIControlSetting).filter(AIControlSetting.scope == scope)
		query = query.filter(AIControlSetting.scope_id.is_(None)) if scope_id is None else query.filter(AIControlSetting.scope_id == scope_id)
		row = query.first()
	if row is None:
		row = AIControlSetting()
		db.add(row)

	row.scope = scope
	row.scope_id = scope_id
	row.is_enabled = is_enabled
	row.mode = mode
	row.notes = notes
	row.modified_at = datetime.utcnow()
	row.modified_by_id = modified_by_id
	db.commit()
	db.refresh(row)
	return row


def delete_scope(db: Session, entry_id: int) -> None:
	row = db.get(AIControlSetting, entry_id)
	if row is None:
		raise NotFoundError("Scope entry no longer exists.")
	if row.scope is AiControlScope.GLOBAL:
		raise ValidationError("Global scope cannot be deleted.")
	db.delete(row)
	db.commit()


def log_usage(
	db: Session,
	user_id: int,
	query: Optional[str],
	response: Optional[str],
	mode: AiInteractionMode,
	class_id: Optional[int] = None,
	timestamp: Optional[datetime] = None,
) -> int:
	logger.debug("Recording AI usage entry for user %s in mode %s.", user_id, mode.value)
	entry = AIUsageLog(
		user_id=user_id,
		class_id=class_id,
		query=(query or "").strip(),
		response=(response or "").strip(),
		mode=mode,
		timestamp=timestamp or datetime.utcnow(),
	)
	db.add(entry)
	db.commit()
	return entry.id


def mark_viewed(db: Session, log_id: int) -> None:
	entry = db.get(AIUsageLog, log_id)
	if entry is None:
		logger.warning("AI usage log %s not found when marking viewed.", log_id)
		return
	if entry.viewed_at is not None:
		return
	entry.viewed_at = datetime.utcnow()
	db.commit()


def get_usage_logs(
	db: Session,
	user_id: Optional[int] = None,
	class_id: Optional[int] = None,
	mode: Optional[AiInteractionMode] = None,
	start: Optional[datetime] = None,
	end: Optional[datetime] = None,
	take: int = 50,
) -> List[AIUsageLog]:
	take = max(1, min(take, 200))
	query = db.query(AIUsageLog).join(AIUsageLog.user).filter(visible(User))
	if user_id is not None:
		query = query.filter(AIUsageLog.user_id == user_id)
	if class_id is not None:
		query = query.filter(AIUsageLog.class_id == class_id)
	if mode is not None:
		query = query.filter(AIUsageLog.mode == mode)
	if start is not None:
		query = query.filter(AIUsageLog.timestamp >= start)
	if end is not None:
		query = query.filter(AIUsageLog.timestamp <= end)
	return query.order_by(AIUsageLog.timestamp.desc(), AIUsageLog.id.desc()).limit(take).all()
