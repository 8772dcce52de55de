from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from agrobid.core.config import settings

connect_args = {}
if settings.is_sqlite():
    # Worker threads (sync routes, scheduler) share the engine; writers wait on the file lock
    connect_args = {"check_same_thread": False, "timeout": 30}

engine = create_engine(settings.get_database_url(), connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
