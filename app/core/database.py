from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from app.core.config import get_settings


DATABASE_URL = get_settings().DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # Request handlers and the orchestrator share sessions across threads
    connect_args["check_same_thread"] = False

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def load_models() -> None:
    # Import models so that every table and relationship is registered on Base
    from app.models import chat, credit_package, credits, generation, style_reference, user, webhook_event  # noqa: F401


def init_db() -> None:
    load_models()
    run_simple_migrations()
    Base.metadata.create_all(bind=engine)


def run_simple_migrations() -> None:
    """
    Idempotent additive migrations for an existing PostgreSQL database without Alembic.
    Fresh databases are fully covered by create_all, other dialects are skipped.
    """
    if engine.dialect.name != "postgresql":
        return

    ddl_statements = [
        """
        ALTER TABLE IF EXISTS users
        ADD COLUMN IF NOT EXISTS role VARCHAR(32) NOT NULL DEFAULT 'user'
        """,
        """
        ALTER TABLE IF EXISTS users
        ADD COLUMN IF NOT EXISTS name VARCHAR(255)
        """,
        """
        ALTER TABLE IF EXISTS user_credits
        ADD COLUMN IF NOT EXISTS last_reset_at TIMESTAMP WITHOUT TIME ZONE
        """,
        """
        ALTER TABLE IF EXISTS generations
        ADD COLUMN IF NOT EXISTS output_style VARCHAR(64)
        """,
        """
        ALTER TABLE IF EXISTS chat_messages
        ADD COLUMN IF NOT EXISTS error TEXT
        """,
        """
        ALTER TABLE IF EXISTS credit_packages
        ADD COLUMN IF NOT EXISTS currency VARCHAR(8) NOT NULL DEFAULT 'usd'
        """,
        "CREATE INDEX IF NOT EXISTS ix_generations_user_created ON generations (user_id, created_at)",
    ]

    with engine.begin() as conn:
        for ddl in ddl_statements:
            conn.execute(text(ddl))
