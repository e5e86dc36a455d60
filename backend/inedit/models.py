from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from .db import Base


class Role(str, enum.Enum):
	FREE = "free"
	PRO = "pro"
	ADMIN = "admin"


class Difficulty(str, enum.Enum):
	EASY = "easy"
	MEDIUM = "medium"
	HARD = "hard"


class QuestionStatus(str, enum.Enum):
	DRAFT = "draft"
	PUBLISHED = "published"
	# Reserved: nothing transitions into it yet
	ARCHIVED = "archived"


class SourceType(str, enum.Enum):
	FILE = "file"
	URL = "url"
	TEXT = "text"


class ProcessingStatus(str, enum.Enum):
	PENDING = "pending"
	PROCESSING = "processing"
	COMPLETED = "completed"
	FAILED = "failed"


def _enum(cls: type[enum.Enum], name: str) -> Enum:
	# Store the lowercase values, not the member names
	return Enum(cls, name=name, native_enum=False, values_callable=lambda e: [m.value for m in e], validate_strings=True)


def _new_user_id() -> str:
	return uuid.uuid4().hex


class User(Base):
	__tablename__ = "users"
	id = Column(String(64), primary_key=True, default=_new_user_id)
	username = Column(String(128), unique=True, index=True, nullable=False)
	email = Column(String(256), nullable=True)
	password_hash = Column(String(256), nullable=False)
	role = Column(_enum(Role, "user_role"), default=Role.FREE, nullable=False)
	# Lifetime policy bookkeeping; credits_granted overrides the role limit when set
	credits_used = Column(Integer, default=0, nullable=False)
	credits_granted = Column(Integer, nullable=True)
	# Daily policy bookkeeping, local wall-clock time
	daily_generation_count = Column(Integer, default=0, nullable=False)
	last_generation_date = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Banca(Base):
	__tablename__ = "bancas"
	# Slug such as "cebraspe"
	id = Column(String(50), primary_key=True)
	name = Column(String(255), nullable=False)
	description = Column(Text, nullable=True)
	logo_url = Column(Text, nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)


class Source(Base):
	__tablename__ = "sources"
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	banca_id = Column(String(50), ForeignKey("bancas.id", ondelete="CASCADE"), index=True, nullable=False)
	type = Column(_enum(SourceType, "source_type"), nullable=False)
	title = Column(String(500), nullable=False)
	content = Column(Text, nullable=True)
	url = Column(Text, nullable=True)
	file_name = Column(String(500), nullable=True)
	file_size = Column(Integer, nullable=True)
	mime_type = Column(String(100), nullable=True)
	processing_status = Column(_enum(ProcessingStatus, "processing_status"), default=ProcessingStatus.PENDING, nullable=False)
	processing_error = Column(Text, nullable=True)
	processed_at = Column(DateTime, nullable=True)
	extracted_text = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)


class Question(Base):
	__tablename__ = "questions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	banca_id = Column(String(50), ForeignKey("bancas.id", ondelete="CASCADE"), index=True, nullable=False)
	title = Column(Text, nullable=False)
	description = Column(Text, nullable=True)
	difficulty = Column(_enum(Difficulty, "difficulty"), index=True, nullable=False)
	status = Column(_enum(QuestionStatus, "question_status"), default=QuestionStatus.DRAFT, index=True, nullable=False)
	tags = Column(JSON, default=list, nullable=False)
	# Denormalized list of source ids, not a foreign key
	generated_from_source_ids = Column(JSON, nullable=True)
	# Written once at generation time, audit only
	ai_prompt = Column(Text, nullable=True)
	ai_model = Column(String(100), nullable=True)
	ai_tokens_used = Column(Integer, nullable=True)
	explanation = Column(Text, nullable=True)
	times_answered = Column(Integer, default=0, nullable=False)
	# Integer percentage 0-100
	correct_answer_rate = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

	options = relationship(
		"QuestionOption",
		order_by="[QuestionOption.display_order, QuestionOption.id]",
		cascade="all, delete-orphan",
		passive_deletes=True,
		lazy="selectin",
	)


class QuestionOption(Base):
	__tablename__ = "question_options"
	id = Column(Integer, primary_key=True, autoincrement=True)
	question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), index=True, nullable=False)
	label = Column(String(50), nullable=False)
	is_correct = Column(Boolean, nullable=False)
	display_order = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserAnswer(Base):
	__tablename__ = "user_answers"
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), index=True, nullable=False)
	selected_option_id = Column(Integer, ForeignKey("question_options.id", ondelete="CASCADE"), nullable=False)
	# Copied from the option at submission time, never recomputed
	is_correct = Column(Boolean, nullable=False)
	time_spent_seconds = Column(Integer, nullable=True)
	# Local wall-clock time so "answered today" follows the local calendar day
	answered_at = Column(DateTime, default=datetime.now, index=True, nullable=False)
