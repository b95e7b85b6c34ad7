import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..iep import UserRole
from ..models import AuthUser, AuthSession
from ..preferences import load_preferences
from ..state import AppState, Screen, app_states

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class AuthError(Exception):
	pass


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	username: str
	session_id: str
	demo: bool = False


class UserInfo(BaseModel):
	username: str
	role: Optional[UserRole] = None
	demo: bool = False


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


class DbAuthBackend:
	"""Account store behind AppState.sign_up / AppState.sign_in."""

	def __init__(self, db: Session) -> None:
		self.db = db

	async def sign_up(self, email: str, password: str, full_name: str, role: UserRole) -> None:
		email = (email or "").strip().lower()
		full_name = (full_name or "").strip()
		if not email or "@" not in email:
			raise AuthError("Please enter a valid email address")
		if len(password or "") < 8:
			raise AuthError("Password must be at least 8 characters")
		if not full_name:
			raise AuthError("Full name is required")
		if self.db.get(AuthUser, email) is not None:
			raise AuthError("An account with this email already exists")
		# bcrypt blocks for tens of milliseconds per call
		password_hash = await asyncio.to_thread(hash_password, password)
		self.db.add(AuthUser(email=email, password_hash=password_hash, full_name=full_name, role=role.value))
		self.db.commit()

	async def sign_in(self, email: str, password: str) -> UserRole:
		row = self.db.get(AuthUser, (email or "").strip().lower())
		if row is None or not await asyncio.to_thread(verify_password, password, row.password_hash):
			raise AuthError("Invalid email or password")
		try:
			return UserRole(row.role)
		except ValueError:
			return UserRole.PARENT


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = getattr(settings, "access_token_expire_minutes", None)
		if isinstance(minutes, int) and minutes > 0:
			delta = timedelta(minutes=minutes)
		else:
			delta = timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = _resolve_expiry(expires_delta)
	to_encode.update({"exp": expire})
	encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return encoded_jwt


def _open_session(db: Session, username: str, state: AppState, *, demo: bool = False) -> Token:
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, username=username, demo=demo))
	db.commit()
	if not demo:
		state.language_preferences, state.tts_settings = load_preferences(db, username)
	# The request-scoped DB session must not outlive this request
	state.auth = None
	app_states.put(session_id, state)
	return Token(access_token=create_access_token({"sub": username, "jti": session_id}))


class SignUpRequest(BaseModel):
	email: str
	password: str
	full_name: str
	role: UserRole


@router.post("/signup", response_model=Token, status_code=201)
async def sign_up(req: SignUpRequest, db: Session = Depends(get_db)):
	state = AppState(auth=DbAuthBackend(db))
	state.proceed_to_login(req.role)
	if not await state.sign_up(req.email, req.password, req.full_name):
		status = 409 if "already exists" in (state.error_message or "") else 400
		raise HTTPException(status_code=status, detail=state.error_message)
	return _open_session(db, req.email.strip().lower(), state)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	state = AppState(auth=DbAuthBackend(db))
	if not await state.sign_in(form_data.username, form_data.password):
		raise HTTPException(status_code=401, detail=state.error_message or "Incorrect email or password")
	return _open_session(db, form_data.username.strip().lower(), state)


class DemoRequest(BaseModel):
	role: UserRole


@router.post("/demo", response_model=Token)
async def demo_login(req: DemoRequest, db: Session = Depends(get_db)):
	state = AppState()
	state.login_demo(req.role)
	return _open_session(db, "guest", state, demo=True)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		username: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if username is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# The session row must still exist; logout and the cleanup loop delete it
	try:
		row = db.get(AuthSession, jti)
		if not row or row.username != username:
			raise credentials_exception
		row.last_activity_at = datetime.utcnow()
		db.add(row)
		db.commit()
	except HTTPException:
		raise
	except Exception:
		# On DB errors, fail closed
		raise credentials_exception
	return User(username=username, session_id=jti, demo=bool(row.demo))


def get_app_state(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> AppState:
	state = app_states.get(user.session_id)
	if state is None:
		# Process restarted since sign-in: rebuild an empty signed-in state
		state = AppState()
		if user.demo:
			state.login_demo(UserRole.PARENT)
		else:
			row = db.get(AuthUser, user.username)
			state.user_role = UserRole(row.role) if row else None
			state.user_email = user.username
			state.is_logged_in = True
			state.language_preferences, state.tts_settings = load_preferences(db, user.username)
			state.navigate(Screen.DASHBOARD)
		app_states.put(user.session_id, state)
	state.touch()
	return state


@router.get("/me", response_model=UserInfo)
async def me(user: User = Depends(get_current_user), state: AppState = Depends(get_app_state)):
	return UserInfo(username=user.username, role=state.user_role, demo=user.demo)


@router.post("/logout")
async def logout(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	state = app_states.drop(user.session_id)
	if state is not None:
		state.logout()
	try:
		row = db.get(AuthSession, user.session_id)
		if row is not None:
			db.delete(row)
			db.commit()
	except Exception:
		db.rollback()
		logger.exception("Failed to revoke session %s", user.session_id)
	return {"ok": True}
