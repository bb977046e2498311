import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .settings import settings

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tokens (
        id TEXT PRIMARY KEY,
        token TEXT NOT NULL UNIQUE,
        used BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS submissions (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        department TEXT NOT NULL,
        course TEXT NOT NULL,
        phone TEXT NOT NULL,
        email TEXT NOT NULL,
        files TEXT NOT NULL,
        file_count INTEGER NOT NULL,
        amount_paid INTEGER NOT NULL,
        payment_ref TEXT,
        score INTEGER,
        token TEXT NOT NULL,
        submitted_at TEXT NOT NULL
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS submissions_payment_ref_key
        ON submissions (payment_ref) WHERE payment_ref IS NOT NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        name TEXT,
        email TEXT,
        amount INTEGER NOT NULL,
        reference TEXT NOT NULL UNIQUE,
        status TEXT NOT NULL CHECK(status IN ('success','failed')),
        paid_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
)

def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)

engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

def init_db(bind: Engine = engine) -> None:
    with bind.begin() as conn:
        for statement in SCHEMA:
            conn.execute(text(statement))
    logger.info("database schema ready (%s)", bind.url.render_as_string(hide_password=True))
