from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(settings):
    url = settings.DATABASE_URL
    timeout = settings.DB_TIMEOUT_SECONDS
    if url.startswith("sqlite"):
        kw = {"connect_args": {"timeout": timeout, "check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kw["poolclass"] = StaticPool
    else:
        kw = {
            "pool_size": settings.DB_POOL_SIZE,
            "pool_timeout": timeout,
            "pool_pre_ping": True,
            "connect_args": {
                "connect_timeout": int(timeout),
                "options": f"-c statement_timeout={int(timeout * 1000)}",
            },
        }
    engine = create_engine(url, **kw)
    if engine.dialect.name == "sqlite":
        # ON DELETE CASCADE needs foreign keys switched on per connection
        @event.listens_for(engine, "connect")
        def _fk_on(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()
    return engine


def make_session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)
