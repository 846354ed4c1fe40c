from datetime import datetime, timezone

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from shared.core.config import RENTAL_DATABASE_URL

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on everything else
JsonColumn = JSON().with_variant(JSONB(), "postgresql")

POOL_SIZE = 2
MAX_OVERFLOW = 2


def build_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one connection, or every session sees its own empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=POOL_SIZE,          # max idle connections
        max_overflow=MAX_OVERFLOW,      # max temporary extra connections
        pool_timeout=30       # wait time before failing
    )


rental_engine = build_engine(RENTAL_DATABASE_URL)
RentalSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=rental_engine)


def utcnow() -> datetime:
    """Naive UTC timestamp; every instant is stored this way."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Dependency


def get_rental_db():
    db = RentalSessionLocal()
    try:
        yield db
    finally:
        db.close()
