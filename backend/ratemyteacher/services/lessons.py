"""AI lesson summaries and lesson plans.

Content is requested from Gemini as JSON. When Gemini is not configured,
fails, or replies with something unusable, the sections are assembled from
templates driven by keywords pulled out of the teacher's own text, so the
feature keeps working offline.
"""
from __future__ import annotations
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence

from sqlalchemy.orm import Session

from .. import lesson_text
from ..errors import NotFoundError, ValidationError
from ..gemini_client import GeminiClient
from ..models import AISummary, LessonPlan, Teacher, TeacherAiMode, User, visible
from ..settings import settings
from . import ai_usage

logger = logging.getLogger(__name__)

SUMMARY_WORD_LIMIT = 300
SUMMARY_TITLES = ("Main Topics", "Key Concepts", "Important Takeaways", "Study Tips")
PLAN_TITLES = ("Engage", "Explore", "Apply", "Reflect")


@dataclass(frozen=True)
class Section:
	title: str
	points: List[str]


@dataclass(frozen=True)
class LessonSummary:
	id: int
	generated_at: datetime
	model: str
	lesson_notes: str
	sections: List[Section]


@dataclass(frozen=True)
class LessonPlanRequest:
	teacher_id: int
	requested_by_user_id: int
	subject: str
	grade_level: str
	topic_focus: str
	student_needs: Optional[str] = None
	duration_minutes: Optional[int] = None


@dataclass(frozen=True)
class LessonPlanView:
	id: int
	created_at: datetime
	subject: str
	grade_level: str
	topic_focus: str
	student_needs: Optional[str]
	duration_minutes: Optional[int]
	sections: List[Section]
	resources: List[str]


def _ensure_teacher(db: Session, teacher_id: int) -> None:
	exists = (
		db.query(Teacher.id)
		.join(Teacher.user)
		.filter(Teacher.id == teacher_id, visible(User))
		.first()
	)
	if exists is None:
		raise NotFoundError("Teacher not found.")


async def _ask_gemini(prompt: str) -> Optional[Any]:
	try:
		client = GeminiClient()
	except ValueError:
		return None
	try:
		return await client.generate_json(prompt)
	except (RuntimeError, ValueError) as err:
		logger.warning("Gemini generation failed, using template fallback: %s", err)
		return None
	finally:
		await client.aclose()


def _coerce_sections(data: Any, titles: Sequence[str]) -> Optional[List[Section]]:
	if isinstance(data, dict):
		data = data.get("sections")
	if not isinstance(data, list):
		return None
	sections: List[Section] = []
	for item in data:
		if not isinstance(item, dict):
			return None
		title = str(item.get("title", "")).strip()
		points = item.get("points")
		if not title or not isinstance(points, list):
			return None
		cleaned = [lesson_text.normalize_whitespace(str(p)) for p in points if str(p).strip()]
		if cleaned:
			sections.append(Section(title, cleaned))
	if {s.title for s in sections} != set(titles):
		return None
	return sections


def enforce_word_limit(sections: Sequence[Section], word_limit: int) -> List[Section]:
	result: List[Section] = []
	running = 0
	for section in sections:
		accepted: List[str] = []
		for point in section.points:
			words = lesson_text.count_words(point)
			if running + words > word_limit:
				if not accepted and running < word_limit:
					trimmed = lesson_text.trim_to_word_budget(point, word_limit - running)
					if trimmed.strip():
						accepted.append(trimmed)
						running = word_limit
				break
			accepted.append(point)
			running += words
		if accepted:
			result.append(Section(section.title, accepted))
		if running >= word_limit:
			break
	if not result:
		return [Section("Summary", ["Summary trimmed due to word limit."])]
	return result


def _serialize(sections: Sequence[Section]) -> str:
	return json.dumps([asdict(s) for s in sections])


def _deserialize(payload: str) -> List[Section]:
	if not payload or not payload.strip():
		return [Section("Summary", ["No details were captured."])]
	try:
		data = json.loads(payload)
	except ValueError:
		data = None
	if isinstance(data, list):
		sections = [
			Section(str(d.get("title", "")), [str(p) for p in d.get("points", [])])
			for d in data
			if isinstance(d, dict)
		]
		if sections:
			return sections
	lines = [line.strip() for line in payload.splitlines() if line.strip()]
	return [Section("Summary", lines)]


def _format_for_log(sections: Sequence[Section]) -> str:
	return " | ".join(f"{s.title}:{';'.join(s.points)}" for s in sections)


# --- summaries ---

def _summary_prompt(notes: str, mode: TeacherAiMode) -> str:
	return (
		"You are a teaching assistant. Summarize the lesson notes below for students.\n"
		f"Tone: {'give complete worked answers' if mode is TeacherAiMode.UNRESTRICTED else 'guide students toward answers without giving them away'}.\n"
		f"Use exactly these section titles in order: {', '.join(SUMMARY_TITLES)}.\n"
		f"Keep the whole summary under {SUMMARY_WORD_LIMIT} words.\n\n"
		'Return ONLY a JSON object: {"sections": [{"title": string, "points": [string, ...]}, ...]}.\n\n'
		f"Lesson notes:\n{notes}"
	)


def _study_tips(focus: str, mode: TeacherAiMode) -> List[str]:
	if mode is TeacherAiMode.UNRESTRICTED:
		return [
			f"Review the worked examples on {focus} and attempt a fresh practice problem without the answer key.",
			f"Summarize the process for {focus} in three sentences, then teach it to a partner or family member.",
			"Check any remaining questions and bring them to the next lesson so we can unblock you quickly.",
		]
	if mode is TeacherAiMode.GUIDED:
		return [
			f"Use a think-pair-share reflection: what was clear about {focus}? what still feels fuzzy?",
			f"Create a two-column note (Steps vs. Why) for {focus} and add one example in each column.",
			"Plan a short review checkpoint tomorrow to verify retention.",
		]
	return [
		f"Skim today's notebook section on {focus} and highlight anything worth revisiting during independent study.",
		"Spend five minutes setting a goal for the next lesson and list a single question you want answered.",
	]


def build_summary_sections(notes: str, mode: TeacherAiMode) -> List[Section]:
	sentences = lesson_text.split_sentences(notes)
	keywords = lesson_text.extract_keywords(notes, 6) or ["core ideas"]

	topics = [f"Explored {k} with concrete examples and quick check-ins." for k in keywords[:3]]
	if not topics and sentences:
		topics = [f"Reviewed: {sentences[0]}"]

	concepts = sentences[:3]
	for k in keywords[len(concepts):3]:
		concepts.append(f"Connected {k} to prior knowledge and real-world contexts.")

	takeaways = [f"Students articulated why {k} matters and how to demonstrate mastery." for k in keywords[:3]]

	return enforce_word_limit(
		[
			Section("Main Topics", topics),
			Section("Key Concepts", concepts),
			Section("Important Takeaways", takeaways),
			Section("Study Tips", _study_tips(keywords[0], mode)),
		],
		SUMMARY_WORD_LIMIT,
	)


async def generate_summary(db: Session, teacher_id: int, requested_by_user_id: int, lesson_notes: str) -> LessonSummary:
	if not lesson_notes or not lesson_notes.strip():
		raise ValidationError("Lesson notes are required.")
	_ensure_teacher(db, teacher_id)
	mode = ai_usage.require_teacher_ai(db)

	notes = lesson_notes.strip()
	sections = _coerce_sections(await _ask_gemini(_summary_prompt(notes, mode)), SUMMARY_TITLES)
	sections = enforce_word_limit(sections, SUMMARY_WORD_LIMIT) if sections else build_summary_sections(notes, mode)

	entity = AISummary(
		teacher_id=teacher_id,
		lesson_notes=notes,
		summary=_serialize(sections),
		generated_at=datetime.utcnow(),
		model=settings.gemini_model,
	)
	db.add(entity)
	db.commit()
	db.refresh(entity)

	ai_usage.log_usage(
		db,
		user_id=requested_by_user_id,
		query=notes,
		response=_format_for_log(sections),
		mode=ai_usage.interaction_mode_for(mode),
	)
	return LessonSummary(entity.id, entity.generated_at, entity.model, entity.lesson_notes, sections)


def summary_history(db: Session, teacher_id: int, take: int = 10) -> List[LessonSummary]:
	_ensure_teacher(db, teacher_id)
	rows = (
		db.query(AISummary)
		.filter(AISummary.teacher_id == teacher_id)
		.order_by(AISummary.generated_at.desc(), AISummary.id.desc())
		.limit(max(1, min(take, 25)))
		.all()
	)
	return [LessonSummary(r.id, r.generated_at, r.model, r.lesson_notes, _deserialize(r.summary)) for r in rows]


# --- lesson plans ---

def _validate_plan(request: LessonPlanRequest) -> None:
	if not request.subject.strip() or len(request.subject.strip()) > 100:
		raise ValidationError("Subject is required and must be 100 characters or fewer.")
	if not request.grade_level.strip() or len(request.grade_level.strip()) > 50:
		raise ValidationError("Grade level is required and must be 50 characters or fewer.")
	if not 10 <= len(request.topic_focus.strip()) <= 500:
		raise ValidationError("Topic focus must be between 10 and 500 characters.")
	if request.student_needs is not None and len(request.student_needs) > 500:
		raise ValidationError("Learner needs must be 500 characters or fewer.")
	if request.duration_minutes is not None and not 10 <= request.duration_minutes <= 180:
		raise ValidationError("Duration must be between 10 and 180 minutes.")


def _plan_prompt(request: LessonPlanRequest, mode: TeacherAiMode) -> str:
	return (
		"You are an instructional coach. Draft a lesson plan.\n"
		f"Subject: {request.subject}\nGrade level: {request.grade_level}\nTopic: {request.topic_focus}\n"
		f"Learner needs: {request.student_needs or 'none noted'}\n"
		f"Minutes available: {request.duration_minutes or 'not specified'}\n"
		f"Feedback style: {mode.value}.\n"
		f"Use exactly these section titles in order: {', '.join(PLAN_TITLES)}.\n\n"
		'Return ONLY a JSON object: {"sections": [{"title": string, "points": [string, ...]}, ...], "resources": [string, ...]}.'
	)


def build_plan_sections(request: LessonPlanRequest, mode: TeacherAiMode) -> List[Section]:
	keywords = lesson_text.extract_keywords(request.topic_focus, 4)
	focus = keywords[0] if keywords else lesson_text.normalize_whitespace(request.topic_focus)
	short_block = request.duration_minutes is not None and request.duration_minutes < 45
	return [
		Section("Engage", [
			f"Quick entry ticket: ask students to jot down what they already know about {focus}.",
			f"Facilitate a short discussion to surface misconceptions around {focus}."
			if mode is TeacherAiMode.GUIDED
			else f"Show a real-world photo or prompt connected to {focus} and invite rapid observations.",
		]),
		Section("Explore", [
			f"Model a worked example that spotlights the critical steps for {focus}.",
			"Provide a guided practice problem, then release pairs to attempt a similar task.",
			"Keep this block tight: aim for two concise cycles of modeling and student tries."
			if short_block
			else "Include one extension question for early finishers who need extra challenge.",
		]),
		Section("Apply", [
			f"Students create a quick artifact (exit ticket, mini-poster, or audio note) demonstrating their grasp of {focus}.",
			"Offer immediate feedback with exemplar answers accessible in the LMS."
			if mode is TeacherAiMode.UNRESTRICTED
			else "Use guiding questions to prompt deeper explanations before revealing solutions.",
		]),
		Section("Reflect", [
			"Capture lingering questions in a shared doc so tomorrow's warm-up can target them.",
			f"Address the noted learner needs ({request.student_needs}) by planning a specific follow-up action."
			if request.student_needs and request.student_needs.strip()
			else "Invite students to self-assess confidence with a thumbs rating or quick poll.",
		]),
	]


def build_plan_resources(request: LessonPlanRequest) -> List[str]:
	keywords = lesson_text.extract_keywords(request.topic_focus, 3)
	top = keywords[0] if keywords else request.topic_focus
	return [
		f"One-page reference sheet summarizing the process for {top}.",
		f"Short video or simulation introducing {request.subject} at the {request.grade_level} level.",
		"Three differentiated practice questions (core, stretch, and challenge) ready for independent work.",
		"Exit ticket template in Google Forms or Microsoft Forms to capture evidence quickly.",
	]


def _to_plan_view(entity: LessonPlan, sections: List[Section], resources: List[str]) -> LessonPlanView:
	return LessonPlanView(
		id=entity.id,
		created_at=entity.created_at,
		subject=entity.subject,
		grade_level=entity.grade_level,
		topic_focus=entity.topic_focus,
		student_needs=entity.student_needs,
		duration_minutes=entity.duration_minutes,
		sections=sections,
		resources=resources,
	)


async def generate_lesson_plan(db: Session, request: LessonPlanRequest) -> LessonPlanView:
	_validate_plan(request)
	_ensure_teacher(db, request.teacher_id)
	mode = ai_usage.require_teacher_ai(db)

	reply = await _ask_gemini(_plan_prompt(request, mode))
	sections = _coerce_sections(reply, PLAN_TITLES)
	resources: List[str] = []
	if sections and isinstance(reply, dict) and isinstance(reply.get("resources"), list):
		resources = [str(r).strip() for r in reply["resources"] if str(r).strip()]
	if not sections:
		sections = build_plan_sections(request, mode)
	if not resources:
		resources = build_plan_resources(request)

	needs = request.student_needs.strip() if request.student_needs and request.student_needs.strip() else None
	entity = LessonPlan(
		teacher_id=request.teacher_id,
		subject=request.subject.strip(),
		grade_level=request.grade_level.strip(),
		topic_focus=request.topic_focus.strip(),
		student_needs=needs,
		duration_minutes=request.duration_minutes,
		sections_json=_serialize(sections),
		resources_json=json.dumps(resources),
		created_at=datetime.utcnow(),
	)
	db.add(entity)
	db.commit()
	db.refresh(entity)

	ai_usage.log_usage(
		db,
		user_id=request.requested_by_user_id,
		query=f"Subject:{request.subject}; Grade:{request.grade_level}; Topic:{request.topic_focus}; Needs:{request.student_needs or ''}",
		response=_format_for_log(sections) + " | Resources:" + ";".join(resources),
		mode=ai_usage.interaction_mode_for(mode),
	)
	return _to_plan_view(entity, sections, resources)


def lesson_plan_history(db: Session, teacher_id: int, take: int = 10) -> List[LessonPlanView]:
	_ensure_teacher(db, teacher_id)
	rows = (
		db.query(LessonPlan)
		.filter(LessonPlan.teacher_id == teacher_id)
		.order_by(LessonPlan.created_at.desc(), LessonPlan.id.desc())
		.limit(max(1, min(take, 25)))
		.all()
	)
	return [_to_plan_view(r, _deserialize(r.sections_json), json.loads(r.resources_json or "[]")) for r in rows]
