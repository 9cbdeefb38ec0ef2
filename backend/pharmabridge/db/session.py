"""Database engine and session factory. SQLite by default, any SQLAlchemy URL via DATABASE_URL."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pharmabridge.core.config import settings


def build_engine(url: str):
    if url.startswith("sqlite"):
        # SQLite: NullPool for thread-safety across FastAPI's worker threads
        from sqlalchemy.pool import NullPool
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=NullPool)
    # PostgreSQL/MySQL: QueuePool with sensible defaults
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
