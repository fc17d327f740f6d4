import logging
import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings
from .errors import Conflict, Internal


logger = logging.getLogger(__name__)

DB_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "class_bridge.db")
DATABASE_URL = settings.database_url or f"sqlite:///{DB_PATH}"

engine = create_engine(DATABASE_URL, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if dbapi_connection.__class__.__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()


def get_db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_conflict(db: Session, conflict_message: str) -> None:
    """Commit the unit of work, mapping storage-level uniqueness violations to Conflict.

    Every multi-entity write funnels through here so a failure on any row rolls back
    the whole operation instead of leaving one side of a relation applied.
    """
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(f"Integrity violation rolled back: {exc.orig}")
        raise Conflict(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Transaction failed and was rolled back: {exc}")
        raise Internal("Could not complete the operation") from exc


def flush_or_conflict(db: Session, conflict_message: str) -> None:
    """Flush pending rows mid-operation with the same error mapping as ``commit_or_conflict``."""
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(f"Integrity violation rolled back at flush: {exc.orig}")
        raise Conflict(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Flush failed and was rolled back: {exc}")
        raise Internal("Could not complete the operation") from exc
