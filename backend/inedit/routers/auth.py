from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..settings import settings
from ..db import get_db
from ..models import AuthSession, Role, User

router = APIRouter(prefix="/auth", tags=["auth"])

logging.getLogger('passlib').setLevel(logging.ERROR)
logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class Me(BaseModel):
	id: str
	username: str
	email: Optional[str] = None
	role: Role


def hash_password(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	return pwd_context.hash(password.encode("utf-8")[:72].decode("utf-8", errors="ignore"))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(plain_password.encode("utf-8")[:72].decode("utf-8", errors="ignore"), hashed_password)


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
	row = db.query(User).filter(User.username == username).first()
	if row and verify_password(password, row.password_hash):
		return row
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


def open_session(db: Session, user: User) -> str:
	"""Persist a server-side session and return a bearer token bound to it."""
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, user_id=user.id))
	db.commit()
	return create_access_token({"sub": user.id, "jti": session_id})


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	return Token(access_token=open_session(db, user))


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		user_id: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if user_id is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# The session row must still exist so revoked sessions stop working
	try:
		row = db.get(AuthSession, jti)
		if not row or row.user_id != user_id:
			raise credentials_exception
		user = db.get(User, user_id)
		if user is None:
			raise credentials_exception
		row.last_activity_at = datetime.utcnow()
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		# On DB errors, fail closed
		logger.exception("Session lookup failed")
		raise credentials_exception
	return user


def require_admin(user: User = Depends(get_current_user)) -> User:
	if user.role is not Role.ADMIN:
		raise HTTPException(status_code=403, detail="Forbidden")
	return user


@router.get("/me", response_model=Me)
async def me(user: User = Depends(get_current_user)):
	return Me(id=user.id, username=user.username, email=user.email, role=user.role)


class RegisterRequest(BaseModel):
	username: str = Field(min_length=3, max_length=128)
	password: str = Field(min_length=1)
	email: Optional[str] = None


@router.post("/register", status_code=201, response_model=Me)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = req.username.strip()
	if len(username) < 3:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	existing = db.query(User).filter(User.username == username).first()
	if existing:
		raise HTTPException(status_code=409, detail="username already exists")
	row = User(username=username, password_hash=hash_password(req.password), email=(req.email or "").strip() or None, role=Role.FREE)
	db.add(row)
	db.commit()
	db.refresh(row)
	logger.info("Registered user %s", row.id)
	return Me(id=row.id, username=row.username, email=row.email, role=row.role)
