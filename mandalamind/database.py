from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
import logging

db_logger = logging.getLogger("database")

Base = declarative_base()


def make_engine(database_url: str):
    if database_url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across threads
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )

    return create_engine(
        database_url,
        # Connection Pool Settings
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,               # Recycle connections every hour
        pool_pre_ping=True,              # Validate connections before use

        connect_args={
            "connect_timeout": 10,
            "application_name": "mandalamind",  # For monitoring
        },

        echo=False,
        future=True,
    )


def make_session_factory(engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False  # Keep objects accessible after commit
    )


def init_db(engine):
    # Importing registers the tables on Base.metadata
    from mandalamind.models import records  # noqa: F401

    Base.metadata.create_all(bind=engine)
    db_logger.info("Database tables ensured")
