import logging
import os
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)

PRODUCTION_ENVS = ("prod", "production")


def resolve_database_url(environ=os.environ) -> str:
    """DATABASE_URL, or a local SQLite file outside production.

    ``postgres://`` URLs are rewritten to the ``postgresql://`` scheme
    SQLAlchemy registers.
    """
    url = environ.get("DATABASE_URL")
    if not url:
        deployment = environ.get("ENV", environ.get("RENDER", "").lower() or "dev")
        if deployment in PRODUCTION_ENVS or environ.get("RENDER"):
            raise RuntimeError(
                "DATABASE_URL is not set; the timer store will not fall back to "
                "SQLite in production."
            )
        url = f"sqlite:///{environ.get('DATABASE_PATH', './timer.db')}"

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


DATABASE_URL = resolve_database_url()
logger.info(f"DB_URL_DRIVER={DATABASE_URL.partition(':')[0] or 'unknown'}")

# SQLite connections are shared with the worker threads FastAPI runs sync routes on
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def dialect_name(bind=None) -> str:
    """Name of the SQL dialect behind a session bind or the default engine."""
    bind = bind if bind is not None else engine
    return bind.dialect.name


def create_db_and_tables():
    """Create date_entries if missing; existing rows are left alone."""
    import models  # noqa: F401  registers the table on SQLModel.metadata

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
