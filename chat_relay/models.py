from dotenv import load_dotenv
import os
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import create_engine, Column, String, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase, sessionmaker

# Load .env BEFORE accessing os.getenv()
load_dotenv()


class Base(DeclarativeBase):
    pass


class KVEntry(Base):
    """One key-value record (reflections are stored here)"""
    __tablename__ = "kv_entries"

    key = Column(String(512), primary_key=True)
    value = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


def get_engine(database_url: Optional[str] = None):
    """Get database engine, falling back to KV_DATABASE_URL"""
    database_url = database_url or os.getenv("KV_DATABASE_URL")
    if not database_url:
        raise ValueError("KV_DATABASE_URL not set in environment")
    return create_engine(database_url, echo=False)


def get_session_factory(engine):
    """Get SQLAlchemy session factory"""
    return sessionmaker(bind=engine)


def init_db(engine=None):
    """Initialize database tables"""
    engine = engine or get_engine()
    Base.metadata.create_all(engine)
    return engine


if __name__ == "__main__":
    init_db()
    print("Key-value tables created successfully")
