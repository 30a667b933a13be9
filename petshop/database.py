### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Local Cache Database Setup -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Local Cache Database Setup

SQLite database holding the on-device cache:
- Company list and current company selection
- Encryption key mirror
- Per-company product/sales snapshots and pending sync state

Uses synchronous SQLAlchemy (no greenlet dependency).
"""

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Default database file location
DATA_DIR = Path(__file__).parent.parent / "data"
DEFAULT_DATABASE_URL = f"sqlite:///{DATA_DIR / 'petshop_cache.db'}"

# Base class for models
Base = declarative_base()


def create_cache_engine(database_url: str = DEFAULT_DATABASE_URL) -> Engine:
    """
    Create the cache database engine.

    For file-based SQLite URLs the parent directory is created if missing.
    """
    prefix = "sqlite:///"
    if database_url.startswith(prefix) and database_url != "sqlite:///:memory:":
        Path(database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
        echo=False,  # Set True for SQL debugging
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine"""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """
    Initialize the database - create all tables.

    Safe to call repeatedly.
    """
    # Import models to register them with Base
    from petshop.models import cache_entry  # noqa: F401

    Base.metadata.create_all(bind=engine)
