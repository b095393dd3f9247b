from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool
import logging
import os

from config import settings

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

# Connection pool sizing for PostgreSQL; SQLite ignores these
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", 10))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", 20))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", 30))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", 3600))


def resolve_database_url(raw: str) -> str:
    """
    Clean up DATABASE_URL as it arrives from the environment.
    Hosting panels sometimes keep the "DATABASE_URL=" prefix from a copied export line,
    and an empty value means a local SQLite file.
    """
    url = (raw or "").strip()
    prefix = "DATABASE_URL="
    if url.startswith(prefix):
        url = url[len(prefix):].strip()
    if not url:
        default_sqlite_path = BASE_DIR / "learnhub.db"
        logger.warning("DATABASE_URL not set. Falling back to SQLite at %s", default_sqlite_path)
        url = f"sqlite:///{default_sqlite_path.as_posix()}"
    return url


def engine_options(url: str) -> dict:
    options = {"echo": False, "future": True, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
        )
    return options


DATABASE_URL = resolve_database_url(settings.DATABASE_URL)

engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

Base = declarative_base()

if DATABASE_URL.startswith("sqlite"):
    logger.info("Database configured with SQLite at %s", DATABASE_URL)
else:
    logger.info(
        "Database %s configured: pool size=%s, max_overflow=%s",
        make_url(DATABASE_URL).render_as_string(hide_password=True), POOL_SIZE, MAX_OVERFLOW
    )
