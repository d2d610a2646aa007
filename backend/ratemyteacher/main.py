import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import SessionLocal, init_db
from .errors import (
	AiDisabledError,
	NoSemestersConfiguredError,
	NotFoundError,
	RateMyTeacherError,
	ValidationError,
)
from .seed import seed
from .settings import settings
from .routers import auth
from .routers import teachers
from .routers import ratings
from .routers import admin
from .routers import ai_controls
from .routers import lessons

logging.basicConfig(
	level=getattr(logging, settings.log_level, logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="RateMyTeacher API")
app.include_router(auth.router)
app.include_router(teachers.router)
app.include_router(ratings.router)
app.include_router(admin.router)
app.include_router(ai_controls.router)
app.include_router(lessons.router)


def status_for(exc: RateMyTeacherError) -> int:
	if isinstance(exc, ValidationError):
		return 400
	if isinstance(exc, AiDisabledError):
		return 403
	if isinstance(exc, NotFoundError):
		return 404
	if isinstance(exc, NoSemestersConfiguredError):
		return 503
	return 500


@app.exception_handler(RateMyTeacherError)
async def domain_error_handler(request: Request, exc: RateMyTeacherError):
	status_code = status_for(exc)
	if status_code >= 500:
		logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
	return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	init_db()
	if settings.seed_on_startup:
		db = SessionLocal()
		try:
			seed(db)
		except Exception:
			logger.exception("An error occurred while seeding the database")
			raise
		finally:
			db.close()
