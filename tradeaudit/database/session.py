"""
============================================================================
Trade Audit Engine v1.0.0
Database Session - SQLAlchemy Engine Management
============================================================================

Reliability Level: L6 Critical
Input Constraints: PostgreSQL connection via read-mostly audit role
Side Effects: Database connections

MANDATE:
- Audits read trading tables and only ever INSERT into audit_trail
- The engine is created lazily on first use so importing the audit
  logic never opens a connection
- Connections are pooled and pre-pinged

============================================================================
"""

import os
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool
from dotenv import load_dotenv

load_dotenv()


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

def get_database_url() -> str:
    """
    Construct the database URL from environment variables.

    Environment Variables:
        DATABASE_URL: Full URL, overrides everything below
        DB_HOST: Database host (default: localhost)
        DB_PORT: Database port (default: 5432)
        DB_NAME: Database name (default: trade_audit)
        DB_USER: Database user (default: app_audit)
        DB_PASSWORD: Database password
    """
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "trade_audit")
    user = os.getenv("DB_USER", "app_audit")
    password = os.getenv("DB_PASSWORD", "")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}"


# ============================================================================
# SQLALCHEMY ENGINE
# ============================================================================

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """
    Return the shared engine, creating it on first call.

    Side Effects: Creates the connection pool
    """
    global _engine

    if _engine is None:
        url = get_database_url()
        options = {
            "pool_pre_ping": True,
            "echo": os.getenv("DB_ECHO", "false").lower() == "true",
        }
        if url.startswith("postgresql"):
            options.update(
                poolclass=QueuePool,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=1800,
            )
        _engine = create_engine(url, **options)
    return _engine


def reset_engine() -> None:
    """Dispose of the shared engine (tests and reconfiguration)."""
    global _engine

    if _engine is not None:
        _engine.dispose()
    _engine = None


# ============================================================================
# HEALTH CHECK
# ============================================================================

def check_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Verify database connectivity.

    Returns:
        True if the database answered SELECT 1

    Raises:
        Exception: If database connection fails
    """
    target = engine or get_engine()
    try:
        with target.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise Exception(f"Database connection failed: {e}") from e
