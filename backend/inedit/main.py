import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .db import Base, SessionLocal, engine, ensure_schema
from .errors import register_exception_handlers
from .seed import seed_bancas
from .settings import settings
from .routers import admin, auth, bancas, health, questions, sources, stats, user

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	added = ensure_schema()
	if added:
		logger.info("Added columns to users: %s", ", ".join(added))
	if settings.seed_bancas:
		db = SessionLocal()
		try:
			seed_bancas(db)
		finally:
			db.close()
	logger.info("Inedit API started (credit policy: %s)", settings.credit_policy)
	yield
	logger.info("Inedit API stopped")


app = FastAPI(title="Inedit API", lifespan=lifespan)
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(bancas.router)
app.include_router(sources.router)
app.include_router(questions.router)
app.include_router(stats.router)
app.include_router(user.router)
app.include_router(admin.router)
