from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import answers
from ..db import get_db
from ..models import Difficulty, User
from .auth import get_current_user

router = APIRouter(prefix="/banca/{banca_id}/stats", tags=["stats"])


class DifficultyPerformance(BaseModel):
	difficulty: Difficulty
	total: int
	correct: int
	percentage: float


class BancaStats(BaseModel):
	total_answered: int
	correct_answers: int
	accuracy_percentage: float
	average_time_seconds: int
	answers_today: int
	performance_by_difficulty: List[DifficultyPerformance]


@router.get("", response_model=BancaStats)
def get_banca_stats(banca_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return answers.banca_stats(db, user.id, banca_id)
