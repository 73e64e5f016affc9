from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings, get_settings

settings = get_settings()

# counts taken after a row lock must see rows committed by the previous lock holder
SERVER_ISOLATION_LEVEL = "READ COMMITTED"


def build_engine(config: Settings) -> Engine:
    """Create the engine with pool and driver timeouts taken from settings."""

    options: dict[str, Any] = {"echo": config.debug, "future": True, "pool_pre_ping": True}
    if not config.database_url.startswith("sqlite"):
        # pool_timeout bounds how long a request waits for a free connection
        options.update(
            pool_size=10,
            max_overflow=20,
            pool_timeout=config.database_pool_timeout_seconds,
            execution_options={"isolation_level": SERVER_ISOLATION_LEVEL},
        )
    connect_args = config.database_connect_args
    if connect_args:
        options["connect_args"] = connect_args
    return create_engine(config.database_url, **options)


engine = build_engine(settings)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
