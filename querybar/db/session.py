import logging

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from querybar.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str = settings.DATABASE_URL):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


engine = make_engine()
logger.info("Database engine configured")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    # Bind to the request's logged connection when the debug bar is active
    connection = getattr(request.state, "db_connection", None)
    db: Session = Session(bind=connection, autoflush=False) if connection is not None else SessionLocal()
    try:
        yield db
    finally:
        db.close()
