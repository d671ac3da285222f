from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from kitchenpos.core.config import settings

# Base para modelos (lo importa kitchenpos.models)
Base = declarative_base()


def make_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    kwargs = {"connect_args": {"check_same_thread": False, "timeout": 60}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # Memoria: una sola conexión compartida entre hilos
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    # PRAGMAs por conexión
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):
        cur = dbapi_conn.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA busy_timeout=60000;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.execute("PRAGMA synchronous=NORMAL;")
        finally:
            cur.close()

    return engine


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    # Importa modelos antes de create_all
    from kitchenpos.models import kv as _kv_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
