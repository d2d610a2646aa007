import asyncio

import pytest

from conftest import auth_headers, make_user
from ratemyteacher import lesson_text
from ratemyteacher.errors import AiDisabledError, ValidationError
from ratemyteacher.gemini_client import parse_json_reply
from ratemyteacher.models import AIUsageLog, AiInteractionMode, AISummary, TeacherAiMode, UserRole
from ratemyteacher.services import ai_usage
from ratemyteacher.services import lessons

NOTES = (
	"Today we studied photosynthesis and chlorophyll. "
	"Photosynthesis converts light energy into chemical energy! "
	"Students measured chlorophyll in leaves and discussed glucose."
)


class FakeGemini:
	reply = None

	def __init__(self, *args, **kwargs):
		pass

	async def generate_json(self, prompt):
		if isinstance(self.reply, Exception):
			raise self.reply
		return self.reply

	async def aclose(self):
		pass


@pytest.fixture
def teacher(db):
	return make_user(db, UserRole.TEACHER, "Jordan", "Lee", department="Science")


@pytest.fixture
def fake_gemini(monkeypatch):
	monkeypatch.setattr(lessons, "GeminiClient", FakeGemini)
	FakeGemini.reply = None
	yield FakeGemini
	FakeGemini.reply = None


def test_extract_keywords_orders_by_frequency():
	assert lesson_text.extract_keywords(NOTES, 3) == ["chlorophyll", "energy", "photosynthesis"]
	assert lesson_text.extract_keywords("   ", 3) == []


def test_split_sentences_and_trim():
	assert lesson_text.split_sentences("One. Two!\nThree?") == ["One", "Two", "Three"]
	assert lesson_text.trim_to_word_budget("a b c d", 2) == "a b …"
	assert lesson_text.trim_to_word_budget("a b", 5) == "a b"


def test_parse_json_reply_strips_fences():
	assert parse_json_reply('```json\n{"sections": []}\n```') == {"sections": []}


def test_enforce_word_limit_caps_total_words():
	sections = [lessons.Section("Main Topics", ["word " * 200]), lessons.Section("Key Concepts", ["more " * 200])]
	limited = lessons.enforce_word_limit(sections, 300)

	total = sum(lesson_text.count_words(p.replace("…", "")) for s in limited for p in s.points)
	assert total <= 300
	assert limited[0].title == "Main Topics"


def test_template_summary_without_gemini(db, teacher):
	summary = asyncio.run(lessons.generate_summary(db, teacher.teacher_profile.id, teacher.id, NOTES))

	assert [s.title for s in summary.sections] == list(lessons.SUMMARY_TITLES)
	assert any("photosynthesis" in p or "chlorophyll" in p for p in summary.sections[0].points)
	assert db.query(AISummary).count() == 1

	log = db.query(AIUsageLog).one()
	assert log.user_id == teacher.id
	assert log.mode is AiInteractionMode.GUIDE

	history = lessons.summary_history(db, teacher.teacher_profile.id)
	assert [s.title for s in history[0].sections] == list(lessons.SUMMARY_TITLES)


def test_summary_uses_gemini_sections(db, teacher, fake_gemini):
	fake_gemini.reply = {"sections": [{"title": t, "points": [f"{t} point"]} for t in lessons.SUMMARY_TITLES]}

	summary = asyncio.run(lessons.generate_summary(db, teacher.teacher_profile.id, teacher.id, NOTES))

	assert [s.points for s in summary.sections] == [[f"{t} point"] for t in lessons.SUMMARY_TITLES]


@pytest.mark.parametrize(
	"reply",
	[
		{"sections": [{"title": "Wrong", "points": ["x"]}]},
		"not json",
		RuntimeError("Gemini call failed"),
	],
)
def test_summary_falls_back_on_unusable_reply(db, teacher, fake_gemini, reply):
	fake_gemini.reply = reply

	summary = asyncio.run(lessons.generate_summary(db, teacher.teacher_profile.id, teacher.id, NOTES))

	assert [s.title for s in summary.sections] == list(lessons.SUMMARY_TITLES)
	assert "think-pair-share" in summary.sections[-1].points[0]


def test_summary_requires_notes(db, teacher):
	with pytest.raises(ValidationError):
		asyncio.run(lessons.generate_summary(db, teacher.teacher_profile.id, teacher.id, "   "))


def test_summary_blocked_when_teacher_ai_off(db, teacher):
	state = ai_usage.get_global_settings(db)
	ai_usage.update_global_settings(db, ai_usage.AiGlobalSettings(
		is_enabled=True,
		global_mode=state.global_mode,
		department_mode=state.department_mode,
		class_mode=state.class_mode,
		teacher_mode=TeacherAiMode.OFF,
	))
	with pytest.raises(AiDisabledError):
		asyncio.run(lessons.generate_summary(db, teacher.teacher_profile.id, teacher.id, NOTES))
	assert db.query(AISummary).count() == 0


def test_lesson_plan_template(db, teacher):
	request = lessons.LessonPlanRequest(
		teacher_id=teacher.teacher_profile.id,
		requested_by_user_id=teacher.id,
		subject="Biology",
		grade_level="Grade 9",
		topic_focus="Photosynthesis and the role of chlorophyll",
		student_needs="Two English learners",
		duration_minutes=40,
	)
	plan = asyncio.run(lessons.generate_lesson_plan(db, request))

	assert [s.title for s in plan.sections] == list(lessons.PLAN_TITLES)
	assert "Two English learners" in plan.sections[-1].points[-1]
	assert len(plan.resources) == 4

	history = lessons.lesson_plan_history(db, teacher.teacher_profile.id)
	assert history[0].resources == plan.resources


@pytest.mark.parametrize(
	"changes",
	[
		{"subject": " "},
		{"topic_focus": "short"},
		{"duration_minutes": 5},
		{"grade_level": "x" * 51},
	],
)
def test_lesson_plan_validation(db, teacher, changes):
	fields = dict(
		teacher_id=teacher.teacher_profile.id,
		requested_by_user_id=teacher.id,
		subject="Biology",
		grade_level="Grade 9",
		topic_focus="Photosynthesis and the role of chlorophyll",
	)
	fields.update(changes)
	with pytest.raises(ValidationError):
		asyncio.run(lessons.generate_lesson_plan(db, lessons.LessonPlanRequest(**fields)))


def test_summary_endpoint_for_teacher(client, db, teacher):
	headers = auth_headers(db, teacher)

	r = client.post("/lessons/summaries", headers=headers, json={"lesson_notes": NOTES})
	assert r.status_code == 200, r.text
	assert [s["title"] for s in r.json()["sections"]] == list(lessons.SUMMARY_TITLES)

	history = client.get("/lessons/summaries", headers=headers).json()
	assert len(history) == 1


def test_summary_endpoint_admin_needs_teacher_id(client, db, teacher, admin_headers):
	assert client.post("/lessons/summaries", headers=admin_headers, json={"lesson_notes": NOTES}).status_code == 400

	r = client.post(
		"/lessons/summaries",
		headers=admin_headers,
		json={"lesson_notes": NOTES, "teacher_id": teacher.teacher_profile.id},
	)
	assert r.status_code == 200


def test_summary_endpoint_forbidden_when_ai_disabled(client, db, teacher, admin_headers):
	r = client.put("/settings/ai", headers=admin_headers, json={"is_enabled": False})
	assert r.status_code == 200
	assert r.json()["is_enabled"] is False

	r = client.post("/lessons/summaries", headers=auth_headers(db, teacher), json={"lesson_notes": NOTES})
	assert r.status_code == 403
