from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import credits, lifecycle
from ..db import get_db
from ..models import User
from ..schemas import QuestionOut
from ..settings import settings
from .auth import get_current_user

router = APIRouter(prefix="/user", tags=["user"])


class GenerationStatus(BaseModel):
	policy: str
	role: str
	# null when unlimited
	remaining: Optional[int] = None
	limit: Optional[int] = None
	used: int
	unlimited: bool
	is_pro: bool
	can_select_difficulty: bool
	can_upgrade: bool
	resets_at: Optional[str] = None


class BancaQuestions(BaseModel):
	banca_id: str
	banca_name: str
	banca_description: Optional[str] = None
	question_count: int
	questions: List[QuestionOut]


@router.get("/generation-status", response_model=GenerationStatus)
def generation_status(user: User = Depends(get_current_user)):
	return credits.generation_status(user, settings.credit_policy)


@router.get("/questions", response_model=List[BancaQuestions])
def my_questions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return lifecycle.list_my_questions(db, user.id)


@router.get("/questions/tags", response_model=List[str])
def my_tags(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return lifecycle.list_user_tags(db, user.id)
