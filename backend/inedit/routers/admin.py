from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ForbiddenError, NotFoundError, ValidationFailedError
from ..models import Role, User
from ..schemas import UserOut
from .auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class UpdateUserRequest(BaseModel):
	role: Optional[Role] = None
	credits_granted: Optional[int] = Field(default=None, ge=0)
	reset_credits: bool = False


@router.get("/users", response_model=List[UserOut])
def list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	return db.scalars(select(User).order_by(User.created_at.desc())).all()


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user(user_id: str, req: UpdateUserRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	if req.role is None and req.credits_granted is None and not req.reset_credits:
		raise ValidationFailedError("Nothing to update")
	target = db.get(User, user_id)
	if target is None:
		raise NotFoundError("User not found")
	if target.id == admin.id and req.role is not None and req.role is not Role.ADMIN:
		raise ForbiddenError("Admins cannot remove their own admin role")
	if req.role is not None:
		target.role = req.role
	if req.credits_granted is not None:
		target.credits_granted = req.credits_granted
	if req.reset_credits:
		target.credits_used = 0
		target.daily_generation_count = 0
	db.commit()
	db.refresh(target)
	logger.info("Admin %s updated user %s (role=%s, credits_granted=%s)", admin.id, target.id, target.role.value, target.credits_granted)
	return target
