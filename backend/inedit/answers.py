"""
Answer recording and statistics.

``correct_answer_rate`` is an integer percentage kept as an online mean:

    new = (old_rate * old_times + score) / (old_times + 1),  score = 100 or 0

rounded half-up once per update. The stored column is updated by a single
UPDATE computed from the current column values, so concurrent submissions
don't lose increments.
"""
from __future__ import annotations
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .credits import start_of_day
from .errors import ValidationFailedError
from .lifecycle import answer_summary, get_question
from .models import Difficulty, Question, QuestionOption, UserAnswer

logger = logging.getLogger(__name__)


def next_correct_rate(old_rate: int, old_times: int, is_correct: bool) -> int:
	score = 100 if is_correct else 0
	if old_times == 0:
		return score
	numerator = old_rate * old_times + score
	denominator = old_times + 1
	# round half up in integer arithmetic
	return (2 * numerator + denominator) // (2 * denominator)


def _rate_update_expr(is_correct: bool):
	score = 100 if is_correct else 0
	times = Question.times_answered
	return case(
		(times == 0, score),
		else_=(2 * (Question.correct_answer_rate * times + score) + times + 1) // (2 * (times + 1)),
	)


def _round_half_up(value: float, digits: int = 0) -> float:
	factor = 10 ** digits
	return math.floor(value * factor + 0.5) / factor


def _percentage(part: int, total: int) -> float:
	if total <= 0:
		return 0
	return _round_half_up(part / total * 100, 2)


def submit_answer(
	db: Session,
	user_id: str,
	question_id: int,
	selected_option_id: int,
	time_spent_seconds: Optional[int] = None,
	banca_id: Optional[str] = None,
) -> Dict[str, Any]:
	question = get_question(db, user_id, question_id, banca_id)
	option = db.scalar(
		select(QuestionOption).where(
			QuestionOption.id == selected_option_id,
			QuestionOption.question_id == question.id,
		)
	)
	if option is None:
		raise ValidationFailedError(
			"Invalid option",
			field="selected_option_id",
			reason="option does not belong to this question",
		)

	answer = UserAnswer(
		user_id=user_id,
		question_id=question.id,
		selected_option_id=option.id,
		is_correct=option.is_correct,
		time_spent_seconds=time_spent_seconds,
		answered_at=datetime.now(),
	)
	try:
		db.add(answer)
		# SET expressions read the pre-update column values
		db.execute(
			update(Question)
			.where(Question.id == question.id)
			.values(
				times_answered=Question.times_answered + 1,
				correct_answer_rate=_rate_update_expr(option.is_correct),
			)
			.execution_options(synchronize_session=False)
		)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	db.refresh(question)
	db.refresh(answer)

	correct_option = option if option.is_correct else next((o for o in question.options if o.is_correct), None)
	return {
		"answer": answer,
		"is_correct": option.is_correct,
		"correct_option": correct_option,
		"question_stats": {
			"times_answered": question.times_answered,
			"correct_answer_rate": question.correct_answer_rate,
		},
	}


def answer_history(db: Session, user_id: str, question_id: int) -> Dict[str, Any]:
	answers = db.scalars(
		select(UserAnswer)
		.where(UserAnswer.question_id == question_id, UserAnswer.user_id == user_id)
		.order_by(UserAnswer.answered_at, UserAnswer.id)
	).all()
	summary = answer_summary(answers)
	summary["all_answers"] = list(answers)
	return summary


def banca_stats(db: Session, user_id: str, banca_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
	now = now or datetime.now()
	scope = and_(UserAnswer.user_id == user_id, Question.banca_id == banca_id)
	correct_sum = func.sum(case((UserAnswer.is_correct, 1), else_=0))

	total, correct, avg_seconds = db.execute(
		select(func.count(UserAnswer.id), correct_sum, func.avg(UserAnswer.time_spent_seconds))
		.join(Question, UserAnswer.question_id == Question.id)
		.where(scope)
	).one()
	total = total or 0
	correct = int(correct or 0)

	answers_today = db.scalar(
		select(func.count(UserAnswer.id))
		.join(Question, UserAnswer.question_id == Question.id)
		.where(scope, UserAnswer.answered_at >= start_of_day(now))
	) or 0

	rows = db.execute(
		select(Question.difficulty, func.count(UserAnswer.id), correct_sum)
		.join(Question, UserAnswer.question_id == Question.id)
		.where(scope)
		.group_by(Question.difficulty)
	).all()
	by_difficulty = {Difficulty(d): (n, int(c or 0)) for d, n, c in rows}
	performance: List[Dict[str, Any]] = []
	for difficulty in Difficulty:
		if difficulty not in by_difficulty:
			continue
		n, c = by_difficulty[difficulty]
		performance.append({
			"difficulty": difficulty.value,
			"total": n,
			"correct": c,
			"percentage": _percentage(c, n),
		})

	return {
		"total_answered": total,
		"correct_answers": correct,
		"accuracy_percentage": _percentage(correct, total),
		"average_time_seconds": int(_round_half_up(float(avg_seconds))) if avg_seconds is not None else 0,
		"answers_today": answers_today,
		"performance_by_difficulty": performance,
	}
