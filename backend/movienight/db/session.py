"""
SQLAlchemy engine + session factory.
Import *get_db* as a FastAPI dependency in route handlers.
"""
from collections.abc import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from movienight.core.config import settings

engine = create_engine(
    settings.DATABASE_URL,
    # Health-check connections before handing them to the app
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
    # Fail fast when the database is unreachable; surfaced as 503
    connect_args={"connect_timeout": 15} if settings.DATABASE_URL.startswith("postgresql") else {},
    echo=False,
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Avoid lazy-load errors after commit
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a scoped DB session.

    Usage:
        @router.get("/items")
        def list_items(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ping_database() -> None:
    """Run a trivial query; raises sqlalchemy.exc.OperationalError when unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
