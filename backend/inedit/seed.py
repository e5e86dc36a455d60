import logging

from sqlalchemy.orm import Session

from .models import Banca

logger = logging.getLogger(__name__)

DEFAULT_BANCAS = [
	{
		"id": "cebraspe",
		"name": "CEBRASPE",
		"description": "Centro Brasileiro de Pesquisa em Avaliação e Seleção e de Promoção de Eventos",
		"is_active": True,
	},
	{
		"id": "fgv",
		"name": "FGV",
		"description": "Fundação Getulio Vargas",
		"is_active": False,
	},
]


def seed_bancas(db: Session) -> int:
	"""Insert the default bancas that are missing. Existing rows are left alone."""
	added = 0
	for data in DEFAULT_BANCAS:
		if db.get(Banca, data["id"]) is None:
			db.add(Banca(**data))
			added += 1
	if added:
		db.commit()
		logger.info("Seeded %d bancas", added)
	return added
