from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from championship.config import settings


class Base(DeclarativeBase):
    pass


engine = create_engine(settings.DATABASE_URL, connect_args=settings.connect_args())
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
