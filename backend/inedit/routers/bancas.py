from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Banca
from ..schemas import BancaOut

router = APIRouter(prefix="/bancas", tags=["bancas"])


@router.get("", response_model=List[BancaOut])
def list_bancas(db: Session = Depends(get_db)):
	return db.scalars(select(Banca).where(Banca.is_active.is_(True)).order_by(Banca.name)).all()
