"""Database configuration and connection setup"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from callbooking.config.settings import get_settings

settings = get_settings()

# Create database engine with connection pooling
engine = create_engine(
    settings.DATABASE_URL,
    poolclass=QueuePool,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_pre_ping=True,
    echo=settings.DEBUG,
)

# expire_on_commit=False keeps committed aggregates readable after the session closes
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)


def create_tables():
    """Create the call request tables (development helper, migrations are the source of truth)"""
    from callbooking.models import Base

    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    from callbooking.utils.my_logging import setup_logging

    setup_logging()
    create_tables()
