from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from reviewbox.config import settings

engine = create_engine(
    settings.database_url,
    echo=settings.sql_echo,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)

@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if settings.database_url.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def init_db(bind=None):
    """Create all tables"""
    # Models must be imported so their tables are registered on Base.metadata
    import reviewbox.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)

def reset_db(bind=None):
    """Drop and recreate all tables"""
    import reviewbox.models  # noqa: F401
    target = bind or engine
    Base.metadata.drop_all(bind=target)
    Base.metadata.create_all(bind=target)
