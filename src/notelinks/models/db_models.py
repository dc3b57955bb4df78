"""SQLAlchemy database models for the link index store."""
from typing import Optional

from sqlalchemy import (Column, Float, Integer, String, Text, create_engine,
                        event, insert, select)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from notelinks.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()

# Single row id of the meta table
META_ROW_ID = 1


class DBTitle(Base):
    """Last known title of a note id."""
    __tablename__ = "titles"
    id = Column(String(255), primary_key=True)
    title = Column(Text, nullable=False, index=True)

    def __repr__(self) -> str:
        """Return string representation of title."""
        return f"<Title(id='{self.id}', title='{self.title}')>"


class DBLink(Base):
    """One outgoing link reference of a note.

    Exactly one of ``to_id`` (resolved) and ``link_title`` (unresolved)
    is set.
    """
    __tablename__ = "links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    from_id = Column(String(255), nullable=False, index=True)
    to_id = Column(String(255), nullable=True, index=True)
    link_title = Column(Text, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of link."""
        return (
            f"<Link(from='{self.from_id}', to='{self.to_id}', "
            f"title='{self.link_title}')>"
        )


class DBMeta(Base):
    """Run checkpoint and report note id (single row)."""
    __tablename__ = "meta"
    id = Column(Integer, primary_key=True)
    latest_note_time = Column(Float, nullable=True)
    last_store_check_time = Column(Float, nullable=True)
    report_note_id = Column(String(255), nullable=True)

    def __repr__(self) -> str:
        """Return string representation of meta."""
        return (
            f"<Meta(latest_note_time={self.latest_note_time}, "
            f"last_store_check_time={self.last_store_check_time}, "
            f"report_note_id='{self.report_note_id}')>"
        )


def init_db(db_url: Optional[str] = None) -> Engine:
    """Initialize the index database.

    Applies SQLite settings for crash resilience:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    Creates the schema and the single meta row if they are missing.
    """
    engine = create_engine(db_url or config.get_db_url())

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    _ensure_meta_row(engine)
    return engine


def _ensure_meta_row(engine: Engine) -> None:
    """Insert the meta row on a fresh database. Idempotent."""
    with engine.begin() as conn:
        existing = conn.execute(
            select(DBMeta.id).where(DBMeta.id == META_ROW_ID)
        ).first()
        if existing is None:
            conn.execute(insert(DBMeta).values(id=META_ROW_ID))


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine)
