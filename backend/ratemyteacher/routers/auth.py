from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import AuthSession, User, UserRole, visible

router = APIRouter(prefix="/auth", tags=["auth"])

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class CurrentUser(BaseModel):
	id: int
	email: str
	name: str
	role: UserRole
	teacher_id: Optional[int] = None
	student_id: Optional[int] = None


def _bcrypt_safe(password: str) -> str:
	# Truncate password to 72 bytes for bcrypt compatibility
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
	user = (
		db.query(User)
		.filter(User.email == email.strip().lower(), visible(User))
		.first()
	)
	if user and verify_password(password, user.password_hash):
		return user
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	return datetime.now(timezone.utc) + delta


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def issue_token(db: Session, user: User) -> str:
	# Each login gets its own server-side session id (jti)
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, user_id=user.id))
	db.commit()
	return create_access_token({"sub": str(user.id), "role": user.role.value, "jti": session_id})


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	return Token(access_token=issue_token(db, user))


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> CurrentUser:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		subject: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if subject is None or jti is None:
			raise credentials_exception
		user_id = int(subject)
		UserRole(payload.get("role"))
	except (JWTError, ValueError):
		raise credentials_exception
	# The session row must still exist so revoked sessions are rejected
	row = db.get(AuthSession, jti)
	if not row or row.user_id != user_id:
		raise credentials_exception
	user = db.query(User).filter(User.id == user_id, visible(User)).first()
	if user is None:
		raise credentials_exception
	row.last_activity_at = datetime.utcnow()
	db.commit()
	return CurrentUser(
		id=user.id,
		email=user.email,
		name=user.full_name,
		role=user.role,
		teacher_id=user.teacher_profile.id if user.teacher_profile else None,
		student_id=user.student_profile.id if user.student_profile else None,
	)


def require_role(*roles: UserRole):
	def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
		if user.role not in roles:
			raise HTTPException(status_code=403, detail="Not permitted for this role")
		return user
	return dependency


@router.get("/me", response_model=CurrentUser)
async def me(user: CurrentUser = Depends(get_current_user)):
	return user
