import logging
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlmodel import Session, SQLModel, create_engine, select

from .config import DATABASE_URL

# Import all models to ensure they are registered with SQLModel metadata
from .models import Category, Task  # noqa: F401

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("General", "General tasks without specific category", "#6B7280"),
    ("Work", "Work-related tasks and projects", "#3B82F6"),
    ("Personal", "Personal tasks and reminders", "#10B981"),
    ("Urgent", "High priority urgent tasks", "#EF4444"),
]


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        sqlite_engine = create_engine(url, echo=False, **kwargs)
        event.listen(sqlite_engine, "connect", _enable_sqlite_foreign_keys)
        return sqlite_engine

    # Postgres and friends: disable pooling for serverless and enable pre-ping
    kwargs.setdefault("poolclass", NullPool)
    return create_engine(url, echo=False, pool_pre_ping=True, **kwargs)


engine = build_engine()

SessionLocal = sessionmaker(class_=Session, autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_session():
    """Get a database session (context manager style).

    This is a convenience function for use outside of FastAPI dependencies.
    Usage:
        with get_session() as session:
            # do something with session
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_tables(bind=None):
    """Create all database tables."""
    SQLModel.metadata.create_all(bind=bind or engine)


def seed_categories(session: Session) -> int:
    """Insert the default categories when the table is empty. Returns rows added."""
    if session.exec(select(Category.id).limit(1)).first() is not None:
        return 0
    session.add_all(
        Category(name=name, description=description, color=color)
        for name, description, color in DEFAULT_CATEGORIES
    )
    session.commit()
    logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))
    return len(DEFAULT_CATEGORIES)
