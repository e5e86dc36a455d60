"""
Question lifecycle: drafts are created with their options, then either
published or discarded.

Every mutation filters by question id, owner and banca in the same statement
that changes rows, so ids belonging to someone else (or already moved by a
concurrent request) simply fall out of the affected set.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import InvariantViolationError, NotFoundError
from .models import Banca, Difficulty, Question, QuestionOption, QuestionStatus, UserAnswer

logger = logging.getLogger(__name__)

CERTO_ERRADO = ("Certo", "Errado")


@dataclass
class DraftPayload:
	title: str
	correct_answer: str
	difficulty: Difficulty = Difficulty.MEDIUM
	description: Optional[str] = None
	explanation: Optional[str] = None
	tags: List[str] = field(default_factory=list)
	options: Sequence[str] = CERTO_ERRADO


def _unique_tags(tags: Iterable[str]) -> List[str]:
	seen: Dict[str, None] = {}
	for tag in tags:
		tag = str(tag).strip()
		if tag:
			seen.setdefault(tag, None)
	return list(seen)


def validate_payload(payload: DraftPayload) -> None:
	labels = [str(label).strip() for label in payload.options]
	if len(labels) < 2:
		raise InvariantViolationError(f"Question '{payload.title}' needs at least two options")
	if len(set(labels)) != len(labels):
		raise InvariantViolationError(f"Question '{payload.title}' has duplicate option labels")
	if labels.count(payload.correct_answer.strip()) != 1:
		raise InvariantViolationError(f"Question '{payload.title}' must have exactly one correct option")


def create_draft_questions(
	db: Session,
	user_id: str,
	banca_id: str,
	source_ids: Sequence[int],
	payloads: Sequence[DraftPayload],
	*,
	ai_prompt: Optional[str] = None,
	ai_model: Optional[str] = None,
	ai_tokens_used: Optional[int] = None,
) -> List[Question]:
	"""Insert each payload as a draft question plus its options in one transaction.

	Anything already pending on ``db`` (such as a credit counter bump) is
	committed together with the drafts, or rolled back with them.
	"""
	for payload in payloads:
		validate_payload(payload)

	created: List[Question] = []
	try:
		for payload in payloads:
			question = Question(
				user_id=user_id,
				banca_id=banca_id,
				title=payload.title.strip(),
				description=payload.description,
				difficulty=Difficulty(payload.difficulty),
				status=QuestionStatus.DRAFT,
				tags=_unique_tags(payload.tags),
				generated_from_source_ids=list(source_ids),
				ai_prompt=ai_prompt,
				ai_model=ai_model,
				ai_tokens_used=ai_tokens_used,
				explanation=payload.explanation,
				times_answered=0,
				correct_answer_rate=0,
			)
			correct = payload.correct_answer.strip()
			for order, label in enumerate(payload.options, start=1):
				label = str(label).strip()
				question.options.append(QuestionOption(label=label, is_correct=label == correct, display_order=order))
			db.add(question)
			created.append(question)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	for question in created:
		db.refresh(question)
	return created


def get_question(db: Session, user_id: str, question_id: int, banca_id: Optional[str] = None) -> Question:
	stmt = select(Question).where(Question.id == question_id, Question.user_id == user_id)
	if banca_id is not None:
		stmt = stmt.where(Question.banca_id == banca_id)
	question = db.scalar(stmt)
	if question is None:
		raise NotFoundError("Question not found")
	return question


def answer_summary(answers: Sequence[UserAnswer]) -> Dict[str, Any]:
	total = len(answers)
	correct = sum(1 for a in answers if a.is_correct)
	return {
		"total_attempts": total,
		"correct_attempts": correct,
		"incorrect_attempts": total - correct,
		"latest_answer": answers[-1] if answers else None,
	}


def list_questions(
	db: Session,
	user_id: str,
	banca_id: str,
	*,
	status: QuestionStatus | str = QuestionStatus.PUBLISHED,
	difficulty: Optional[Difficulty | str] = None,
	limit: int = 20,
	offset: int = 0,
) -> List[Dict[str, Any]]:
	stmt = select(Question).where(
		Question.banca_id == banca_id,
		Question.user_id == user_id,
		Question.status == QuestionStatus(status),
	)
	if difficulty is not None:
		stmt = stmt.where(Question.difficulty == Difficulty(difficulty))
	stmt = stmt.order_by(Question.created_at.desc(), Question.id.desc()).limit(limit).offset(offset)
	questions = db.scalars(stmt).all()
	if not questions:
		return []

	answers_by_question: Dict[int, List[UserAnswer]] = {q.id: [] for q in questions}
	answers = db.scalars(
		select(UserAnswer)
		.where(UserAnswer.user_id == user_id, UserAnswer.question_id.in_(answers_by_question))
		.order_by(UserAnswer.answered_at, UserAnswer.id)
	).all()
	for answer in answers:
		answers_by_question[answer.question_id].append(answer)

	results = []
	for question in questions:
		summary = answer_summary(answers_by_question[question.id])
		results.append({
			"question": question,
			"user_answer": summary.pop("latest_answer"),
			"answer_stats": summary,
		})
	return results


def _owned(user_id: str, banca_id: str, question_ids: Sequence[int]) -> list:
	return [
		Question.id.in_(list(question_ids)),
		Question.user_id == user_id,
		Question.banca_id == banca_id,
	]


def publish_drafts(db: Session, user_id: str, banca_id: str, question_ids: Sequence[int]) -> List[Question]:
	"""Move the caller's drafts among ``question_ids`` to published.

	Ids that are not drafts, not in the banca, or not owned are skipped.
	Raises NotFoundError when nothing was published.
	"""
	try:
		published_ids = db.scalars(
			update(Question)
			.where(*_owned(user_id, banca_id, question_ids), Question.status == QuestionStatus.DRAFT)
			.values(status=QuestionStatus.PUBLISHED, updated_at=datetime.utcnow())
			.returning(Question.id)
			.execution_options(synchronize_session=False)
		).all()
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	if not published_ids:
		raise NotFoundError("No valid draft questions found")
	logger.info("User %s published %d questions in banca %s", user_id, len(published_ids), banca_id)
	return list(
		db.scalars(
			select(Question)
			.where(Question.id.in_(published_ids))
			.order_by(Question.created_at.desc(), Question.id.desc())
			.execution_options(populate_existing=True)
		).all()
	)


def discard_drafts(db: Session, user_id: str, banca_id: str, question_ids: Sequence[int]) -> int:
	"""Delete the caller's questions among ``question_ids`` with their options and answers.

	Status is not filtered, so a published question named here is removed too.
	Raises NotFoundError when nothing matched.
	"""
	try:
		matched = db.scalars(select(Question.id).where(*_owned(user_id, banca_id, question_ids))).all()
		if not matched:
			raise NotFoundError("No valid questions found")
		db.execute(delete(UserAnswer).where(UserAnswer.question_id.in_(matched)))
		db.execute(delete(QuestionOption).where(QuestionOption.question_id.in_(matched)))
		result = db.execute(
			delete(Question)
			.where(*_owned(user_id, banca_id, matched))
			.execution_options(synchronize_session=False)
		)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	db.expire_all()
	deleted = result.rowcount or 0
	logger.info("User %s discarded %d questions in banca %s", user_id, deleted, banca_id)
	return deleted


def delete_question(db: Session, user_id: str, question_id: int, banca_id: Optional[str] = None) -> bool:
	"""Delete one owned question whatever its status. Returns False when nothing matched."""
	conditions = [Question.id == question_id, Question.user_id == user_id]
	if banca_id is not None:
		conditions.append(Question.banca_id == banca_id)
	try:
		matched = db.scalar(select(Question.id).where(*conditions))
		if matched is None:
			return False
		db.execute(delete(UserAnswer).where(UserAnswer.question_id == matched))
		db.execute(delete(QuestionOption).where(QuestionOption.question_id == matched))
		result = db.execute(delete(Question).where(*conditions).execution_options(synchronize_session=False))
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	db.expire_all()
	return bool(result.rowcount)


def list_user_tags(db: Session, user_id: str, banca_id: Optional[str] = None) -> List[str]:
	"""Sorted unique tags. Per banca only published questions count; across bancas every status does."""
	stmt = select(Question.tags).where(Question.user_id == user_id)
	if banca_id is not None:
		stmt = stmt.where(Question.banca_id == banca_id, Question.status == QuestionStatus.PUBLISHED)
	tags = set()
	for row_tags in db.scalars(stmt).all():
		tags.update(row_tags or [])
	return sorted(tags)


def list_my_questions(db: Session, user_id: str) -> List[Dict[str, Any]]:
	"""All of a user's questions grouped by banca, groups sorted by banca name."""
	rows = db.execute(
		select(Question, Banca)
		.join(Banca, Question.banca_id == Banca.id)
		.where(Question.user_id == user_id)
		.order_by(Question.created_at.desc(), Question.id.desc())
	).all()
	groups: Dict[str, Dict[str, Any]] = {}
	for question, banca in rows:
		group = groups.setdefault(banca.id, {
			"banca_id": banca.id,
			"banca_name": banca.name,
			"banca_description": banca.description,
			"question_count": 0,
			"questions": [],
		})
		group["questions"].append(question)
		group["question_count"] += 1
	return sorted(groups.values(), key=lambda g: g["banca_name"].casefold())
