from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Load .env file (DATABASE_URL lives there)
load_dotenv()

Base = declarative_base()

_session_factory: sessionmaker | None = None


def create_session_factory(database_url: str, echo: bool = False) -> sessionmaker:
    """
    Build an engine and session factory for the given URL.

    Services receive the factory explicitly; nothing below the app/CLI
    entrypoints reaches for a global engine.
    """
    engine = create_engine(
        database_url,
        future=True,
        echo=echo,  # set True if you want to see SQL in terminal
        pool_pre_ping=not database_url.startswith("sqlite"),
    )
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
        future=True,
    )


def get_session_factory() -> sessionmaker:
    """Process-wide session factory for the API and CLI entrypoints."""
    global _session_factory
    if _session_factory is None:
        from curator.config import get_settings

        _session_factory = create_session_factory(get_settings().DATABASE_URL)
    return _session_factory


def init_db(engine: Engine) -> None:
    """
    Import models and create tables if they don't exist.
    Alembic is the real migration tool, but this keeps local dev sane.
    """
    from curator import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

