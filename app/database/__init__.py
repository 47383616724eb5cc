# ============================================================================
# Quote Totals Engine v1.0.0
# Database Module - SQLAlchemy Session Management
# ============================================================================

from app.database.session import (
    check_database_connection,
    create_db_engine,
    dispose_engine,
    get_database_url,
    get_engine,
    get_session_factory,
    init_engine,
)

__all__ = [
    "check_database_connection",
    "create_db_engine",
    "dispose_engine",
    "get_database_url",
    "get_engine",
    "get_session_factory",
    "init_engine",
]
