"""
Database engine + session factory.

Defaults to SQLite for local dev, Postgres in production. Engine components
receive get_session as their session factory; tests hand them one bound to
an in-memory database instead.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from app.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


# Railway injects postgres:// but SQLAlchemy 2.x requires postgresql://
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    engine = create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


def import_models():
    """Import every model module so Base.metadata knows all tables."""
    import importlib
    for name in ('user', 'agent', 'assessment', 'question', 'response',
                 'document', 'analysis_job', 'deliverable'):
        importlib.import_module(f'app.models.{name}')
