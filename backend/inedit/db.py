from __future__ import annotations
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./inedit.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def enable_sqlite_foreign_keys(target: Engine) -> None:
	# SQLite ignores ON DELETE CASCADE unless the pragma is set per connection
	if target.dialect.name != "sqlite":
		return

	@event.listens_for(target, "connect")
	def _set_pragma(dbapi_connection, connection_record):
		cursor = dbapi_connection.cursor()
		cursor.execute("PRAGMA foreign_keys=ON")
		cursor.close()


enable_sqlite_foreign_keys(engine)


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added to "users" after the first release; older databases get them here.
_USER_CREDIT_COLUMNS = {
	"credits_used": "INTEGER DEFAULT 0 NOT NULL",
	"credits_granted": "INTEGER",
	"daily_generation_count": "INTEGER DEFAULT 0 NOT NULL",
	"last_generation_date": "TIMESTAMP",
}


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema(bind: Engine | None = None) -> list[str]:
	bind = bind or engine
	inspector = inspect(bind)
	if "users" not in set(inspector.get_table_names()):
		return []
	cols = {c["name"] for c in inspector.get_columns("users")}
	added: list[str] = []
	with bind.begin() as conn:
		for name, ddl in _USER_CREDIT_COLUMNS.items():
			if name not in cols:
				conn.exec_driver_sql(f"ALTER TABLE users ADD COLUMN {name} {ddl}")
				added.append(name)
	return added
