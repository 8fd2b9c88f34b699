from sqlalchemy.orm import Session

from marketsync.db import SessionLocal


def session_factory() -> Session:
    return SessionLocal()
