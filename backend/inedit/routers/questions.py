from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, StrictInt
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import answers, credits, lifecycle
from ..db import get_db
from ..errors import ForbiddenError, NotFoundError
from ..generation import QuestionGenerator, build_generation_prompt, get_question_generator, parse_generated_questions
from ..models import Difficulty, QuestionStatus, Source, User
from ..schemas import AnswerOut, AnswerStats, OptionOut, QuestionOut, QuestionWithStats
from ..settings import settings
from .auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/banca/{banca_id}/questions", tags=["questions"])


class GenerateRequest(BaseModel):
	source_ids: List[int] = Field(min_length=1)
	count: int = Field(default=5, ge=1, le=20)
	difficulty: Optional[Difficulty] = None
	tags: Optional[List[str]] = None
	system_prompt: Optional[str] = None


class GenerateResponse(BaseModel):
	questions: List[QuestionOut]
	tokens_used: Optional[int] = None


class DraftAction(BaseModel):
	question_ids: List[int] = Field(min_length=1)


class PublishResponse(BaseModel):
	questions: List[QuestionOut]
	count: int
	message: str


class DiscardResponse(BaseModel):
	success: bool = True
	deleted: int
	message: str


class SubmitAnswerRequest(BaseModel):
	selected_option_id: StrictInt
	time_spent_seconds: Optional[int] = Field(default=None, gt=0)


class QuestionStats(BaseModel):
	times_answered: int
	correct_answer_rate: int


class SubmitAnswerResponse(BaseModel):
	answer: AnswerOut
	is_correct: bool
	correct_option: Optional[OptionOut] = None
	question_stats: QuestionStats


class AnswerHistoryResponse(AnswerStats):
	latest_answer: Optional[AnswerOut] = None
	all_answers: List[AnswerOut]


@router.get("", response_model=List[QuestionWithStats])
def list_questions(
	banca_id: str,
	status: QuestionStatus = QuestionStatus.PUBLISHED,
	difficulty: Optional[Difficulty] = None,
	limit: int = Query(20, ge=1, le=100),
	offset: int = Query(0, ge=0),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	rows = lifecycle.list_questions(db, user.id, banca_id, status=status, difficulty=difficulty, limit=limit, offset=offset)
	return [
		QuestionWithStats(
			**QuestionOut.model_validate(row["question"]).model_dump(),
			user_answer=row["user_answer"] and AnswerOut.model_validate(row["user_answer"]),
			answer_stats=AnswerStats(**row["answer_stats"]),
		)
		for row in rows
	]


@router.post("", response_model=GenerateResponse, status_code=201)
async def generate_questions(
	banca_id: str,
	req: GenerateRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	generator: QuestionGenerator = Depends(get_question_generator),
):
	policy = settings.credit_policy
	now = datetime.now()
	credits.ensure_can_generate(user, policy, now)
	if req.difficulty is not None and not credits.is_pro_or_above(user.role):
		raise ForbiddenError("Choosing a difficulty requires a Pro account")

	sources = db.scalars(
		select(Source).where(
			Source.id.in_(req.source_ids),
			Source.user_id == user.id,
			Source.banca_id == banca_id,
		)
	).all()
	if not sources:
		raise NotFoundError("No valid sources found")

	prompt = build_generation_prompt(sources, req.count, req.difficulty, req.tags)
	logger.info("Generating %d questions for user %s in banca %s", req.count, user.id, banca_id)
	result = await generator.generate(prompt, req.system_prompt)
	# The model sometimes returns more than asked for
	payloads = parse_generated_questions(result.text, req.difficulty)[: req.count]

	# The credit bump rides on the same commit as the drafts
	credits.consume_generation(user, policy, now)
	created = lifecycle.create_draft_questions(
		db,
		user.id,
		banca_id,
		[s.id for s in sources],
		payloads,
		ai_prompt=prompt,
		ai_model=result.model,
		ai_tokens_used=result.tokens_used,
	)
	logger.info("Created %d draft questions for user %s (tokens=%s)", len(created), user.id, result.tokens_used)
	return GenerateResponse(questions=[QuestionOut.model_validate(q) for q in created], tokens_used=result.tokens_used)


@router.get("/tags", response_model=List[str])
def question_tags(banca_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return lifecycle.list_user_tags(db, user.id, banca_id)


@router.post("/drafts", response_model=PublishResponse)
def publish_drafts(banca_id: str, req: DraftAction, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	published = lifecycle.publish_drafts(db, user.id, banca_id, req.question_ids)
	return PublishResponse(
		questions=[QuestionOut.model_validate(q) for q in published],
		count=len(published),
		message=f"Successfully published {len(published)} questions",
	)


@router.delete("/drafts", response_model=DiscardResponse)
def discard_drafts(banca_id: str, req: DraftAction, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	deleted = lifecycle.discard_drafts(db, user.id, banca_id, req.question_ids)
	return DiscardResponse(deleted=deleted, message=f"Successfully deleted {deleted} questions")


@router.get("/{question_id}", response_model=QuestionOut)
def get_question(banca_id: str, question_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return lifecycle.get_question(db, user.id, question_id, banca_id)


@router.delete("/{question_id}")
def delete_question(banca_id: str, question_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	if not lifecycle.delete_question(db, user.id, question_id, banca_id):
		raise NotFoundError("Question not found")
	return {"success": True}


@router.post("/{question_id}/answer", response_model=SubmitAnswerResponse)
def submit_answer(
	banca_id: str,
	question_id: int,
	req: SubmitAnswerRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	return answers.submit_answer(db, user.id, question_id, req.selected_option_id, req.time_spent_seconds, banca_id)


@router.get("/{question_id}/answer", response_model=AnswerHistoryResponse)
def answer_history(banca_id: str, question_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return answers.answer_history(db, user.id, question_id)
