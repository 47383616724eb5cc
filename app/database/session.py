"""
============================================================================
Quote Totals Engine v1.0.0
Database Session - SQLAlchemy Engine & Session Management
============================================================================

Reliability Level: L6 Critical
Input Constraints: PostgreSQL connection (any SQLAlchemy URL accepted)
Side Effects: Database connections

The engine is created lazily so that importing this module never opens a
connection or requires a database driver.

============================================================================
"""

import os
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

def get_database_url() -> str:
    """
    Resolve the database URL from the environment.

    DATABASE_URL wins when set; otherwise the URL is built from DB_* parts.

    Environment Variables:
        DATABASE_URL: Full SQLAlchemy URL
        DB_HOST: Database host (default: localhost)
        DB_PORT: Database port (default: 5432)
        DB_NAME: Database name (default: quotes)
        DB_USER: Database user (default: quotes_app)
        DB_PASSWORD: Database password (default: empty)
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "quotes")
    user = os.getenv("DB_USER", "quotes_app")
    password = os.getenv("DB_PASSWORD", "")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}"


# ============================================================================
# SQLALCHEMY ENGINE & SESSION FACTORY
# ============================================================================

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create an engine for the given URL (environment URL when None).

    Pool settings only apply to server databases; SQLite keeps its defaults.
    """
    url = database_url or get_database_url()
    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
        execution_options={
            "isolation_level": "READ COMMITTED"
        }
    )


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _session_factory


def init_engine(database_url: Optional[str] = None) -> Engine:
    """
    Replace the process-wide engine with one for database_url.

    Jobs that accept a --database-url flag call this once at startup;
    get_engine() and get_session_factory() then resolve to the new engine.
    """
    global _engine
    dispose_engine()
    _engine = create_db_engine(database_url)
    return _engine


def dispose_engine() -> None:
    """Dispose the process-wide engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def check_database_connection() -> bool:
    """
    Verify database connectivity.

    Raises:
        ConnectionError: If the database cannot be reached
    """
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise ConnectionError(f"Database connection failed: {e}") from e
