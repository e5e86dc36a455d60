from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from .models import Difficulty, ProcessingStatus, QuestionStatus, Role, SourceType


class _Orm(BaseModel):
	model_config = ConfigDict(from_attributes=True)


class BancaOut(_Orm):
	id: str
	name: str
	description: Optional[str] = None
	logo_url: Optional[str] = None
	is_active: bool


class SourceOut(_Orm):
	id: int
	banca_id: str
	type: SourceType
	title: str
	content: Optional[str] = None
	url: Optional[str] = None
	processing_status: ProcessingStatus
	created_at: datetime


class OptionOut(_Orm):
	id: int
	question_id: int
	label: str
	is_correct: bool
	display_order: int


class QuestionOut(_Orm):
	id: int
	user_id: str
	banca_id: str
	title: str
	description: Optional[str] = None
	difficulty: Difficulty
	status: QuestionStatus
	tags: List[str] = []
	generated_from_source_ids: Optional[List[int]] = None
	ai_model: Optional[str] = None
	ai_tokens_used: Optional[int] = None
	explanation: Optional[str] = None
	times_answered: int
	correct_answer_rate: int
	created_at: datetime
	updated_at: Optional[datetime] = None
	options: List[OptionOut] = []


class AnswerOut(_Orm):
	id: int
	question_id: int
	selected_option_id: int
	is_correct: bool
	time_spent_seconds: Optional[int] = None
	answered_at: datetime


class AnswerStats(BaseModel):
	total_attempts: int
	correct_attempts: int
	incorrect_attempts: int


class QuestionWithStats(QuestionOut):
	user_answer: Optional[AnswerOut] = None
	answer_stats: AnswerStats


class UserOut(_Orm):
	id: str
	username: str
	email: Optional[str] = None
	role: Role
	credits_used: int
	credits_granted: Optional[int] = None
	created_at: datetime
