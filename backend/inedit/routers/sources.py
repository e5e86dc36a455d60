from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFoundError, ValidationFailedError
from ..models import Banca, ProcessingStatus, Source, SourceType, User
from ..schemas import SourceOut
from .auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/banca/{banca_id}/sources", tags=["sources"])


class CreateSourceRequest(BaseModel):
	# File uploads go through a separate extraction pipeline and are not accepted here
	type: Literal["text", "url"]
	title: str = Field(min_length=1, max_length=500)
	content: Optional[str] = None
	url: Optional[str] = None


def _active_banca(db: Session, banca_id: str) -> Banca:
	banca = db.get(Banca, banca_id)
	if banca is None or not banca.is_active:
		raise NotFoundError("Banca not found")
	return banca


@router.get("", response_model=List[SourceOut])
def list_sources(banca_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return db.scalars(
		select(Source)
		.where(Source.user_id == user.id, Source.banca_id == banca_id)
		.order_by(Source.created_at.desc(), Source.id.desc())
	).all()


@router.post("", response_model=SourceOut, status_code=201)
def create_source(banca_id: str, req: CreateSourceRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	_active_banca(db, banca_id)
	source_type = SourceType(req.type)
	if source_type is SourceType.TEXT and not (req.content or "").strip():
		raise ValidationFailedError("Text sources need content", field="content", reason="must not be empty")
	if source_type is SourceType.URL and not (req.url or "").strip():
		raise ValidationFailedError("URL sources need a url", field="url", reason="must not be empty")
	now = datetime.utcnow()
	row = Source(
		user_id=user.id,
		banca_id=banca_id,
		type=source_type,
		title=req.title.strip(),
		content=req.content,
		url=(req.url or "").strip() or None,
		processing_status=ProcessingStatus.COMPLETED,
		processed_at=now,
		extracted_text=req.content if source_type is SourceType.TEXT else None,
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	logger.info("User %s added %s source %s to banca %s", user.id, source_type.value, row.id, banca_id)
	return row
