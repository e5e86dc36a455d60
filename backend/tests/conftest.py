import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from inedit.db import Base, enable_sqlite_foreign_keys, get_db
from inedit.generation import GenerationResult, get_question_generator
from inedit.lifecycle import DraftPayload, create_draft_questions, publish_drafts
from inedit.main import app
from inedit.models import Banca, Difficulty, ProcessingStatus, Role, Source, SourceType, User
from inedit.routers.auth import hash_password, open_session


CANNED_QUESTIONS = [
	{
		"title": f"Statement number {i}",
		"description": "Context",
		"correctAnswer": "Certo" if i % 2 else "Errado",
		"explanation": "Because.",
		"tags": ["direito", f"topic-{i}"],
		"difficulty": "medium",
	}
	for i in range(1, 6)
]


class FakeGenerator:
	def __init__(self, text=None, error=None):
		self.text = text if text is not None else json.dumps(CANNED_QUESTIONS)
		self.error = error
		self.prompts = []

	async def generate(self, prompt, system_prompt=None):
		self.prompts.append(prompt)
		if self.error is not None:
			raise self.error
		return GenerationResult(text=self.text, model="fake-model", tokens_used=321)


@pytest.fixture
def engine():
	eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
	enable_sqlite_foreign_keys(eng)
	Base.metadata.create_all(bind=eng)
	yield eng
	eng.dispose()


@pytest.fixture
def session_factory(engine):
	return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
	session = session_factory()
	yield session
	session.close()


@pytest.fixture
def bancas(db):
	db.add_all([
		Banca(id="cebraspe", name="CEBRASPE", description="Cebraspe", is_active=True),
		Banca(id="outra", name="Outra", description="Second active banca", is_active=True),
		Banca(id="fgv", name="FGV", description="Inactive", is_active=False),
	])
	db.commit()
	return ["cebraspe", "outra", "fgv"]


@pytest.fixture
def make_user(db):
	def _make(username, role=Role.FREE, **fields):
		row = User(username=username, password_hash=hash_password("secret"), role=role, **fields)
		db.add(row)
		db.commit()
		db.refresh(row)
		return row
	return _make


@pytest.fixture
def auth_headers(db):
	def _headers(user):
		return {"Authorization": f"Bearer {open_session(db, user)}"}
	return _headers


@pytest.fixture
def make_source(db, bancas):
	def _make(user, banca_id="cebraspe", title="Lei 8.112"):
		row = Source(
			user_id=user.id,
			banca_id=banca_id,
			type=SourceType.TEXT,
			title=title,
			content="Servidor público é a pessoa legalmente investida em cargo público.",
			processing_status=ProcessingStatus.COMPLETED,
		)
		db.add(row)
		db.commit()
		db.refresh(row)
		return row
	return _make


@pytest.fixture
def make_drafts(db, bancas):
	def _make(user, banca_id="cebraspe", count=1, difficulty=Difficulty.MEDIUM, tags=None, publish=False):
		payloads = [
			DraftPayload(
				title=f"Question {i}",
				correct_answer="Certo",
				difficulty=difficulty,
				tags=list(tags or []),
			)
			for i in range(count)
		]
		created = create_draft_questions(db, user.id, banca_id, [], payloads)
		if publish:
			publish_drafts(db, user.id, banca_id, [q.id for q in created])
			for q in created:
				db.refresh(q)
		return created
	return _make


@pytest.fixture
def fake_generator():
	return FakeGenerator()


@pytest.fixture
def client(session_factory, bancas, fake_generator):
	def override_get_db():
		session = session_factory()
		try:
			yield session
		finally:
			session.close()

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_question_generator] = lambda: fake_generator
	# No context manager: the lifespan would touch the configured database
	yield TestClient(app)
	app.dependency_overrides.clear()
