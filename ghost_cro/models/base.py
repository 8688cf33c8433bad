"""
Base database model and session management
"""
import os

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from ghost_cro.config import get_settings
from ghost_cro.utils.logger import log

settings = get_settings()

# Resolve relative SQLite paths to absolute so cwd changes can't break it
_db_url = settings.database_url
if _db_url.startswith("sqlite:///") and not _db_url.startswith("sqlite:////"):
    rel_path = _db_url[len("sqlite:///"):]
    _db_url = "sqlite:///" + os.path.abspath(rel_path)

if _db_url.startswith("sqlite"):
    engine = create_engine(
        _db_url,
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=NullPool,
    )
else:
    # Hosted Postgres behind the Shopify app
    engine = create_engine(
        _db_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=5,
        pool_recycle=300,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _migrate_missing_columns():
    """Add model columns that are missing from existing tables.

    create_all() only creates missing tables, so a Column added to a model
    would otherwise never reach an already-initialised database.
    """
    inspector = inspect(engine)
    with engine.connect() as conn:
        for table_name, table in Base.metadata.tables.items():
            if not inspector.has_table(table_name):
                continue
            existing = {c["name"] for c in inspector.get_columns(table_name)}
            for col in table.columns:
                if col.name in existing:
                    continue
                col_type = col.type.compile(dialect=engine.dialect)
                sql = f"ALTER TABLE {table_name} ADD COLUMN {col.name} {col_type}"
                log.info(f"Auto-migrating: {sql}")
                conn.execute(text(sql))
        conn.commit()


def init_db():
    """Create tables for every registered model and patch in new columns"""
    # Registers the model classes on Base.metadata
    import ghost_cro.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    _migrate_missing_columns()
