"""SQLModel engine factory for the persistent session store."""
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def build_engine(database_url: str) -> Engine:
    """Create an engine and make sure the session table exists."""
    kwargs = {}
    if database_url.startswith("sqlite"):
        # Store calls run in the thread pool
        kwargs["connect_args"] = {"check_same_thread": False}
    if database_url in IN_MEMORY_URLS:
        # One shared connection, otherwise every thread sees its own empty DB
        kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)

    # Import models so metadata is populated before create_all
    from whoopdash.models.session import SessionRecord  # noqa
    SQLModel.metadata.create_all(engine)
    return engine
