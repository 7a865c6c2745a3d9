from contextlib import contextmanager
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# purpose: shared engine, session factory and declarative base for the execution tracker
# inputs: DATABASE_URL env var
# status: active

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./test.db")

if DATABASE_URL.startswith("sqlite"):
    engine_args = {"connect_args": {"check_same_thread": False, "timeout": 30}}
else:
    engine_args = {"pool_pre_ping": True}

engine = create_engine(DATABASE_URL, **engine_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal):
    """Yield a session that commits on success and rolls back on error."""

    db: Session = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
