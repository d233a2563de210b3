from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from viewsync.config import get_settings

settings = get_settings()

database_url = settings.DATABASE_URL

# Configure engine based on database type
connect_args = {}
engine_kwargs = {}

if database_url.startswith("sqlite"):
    # SQLite-specific settings
    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory databases must share one connection
        engine_kwargs["poolclass"] = StaticPool
else:
    # PostgreSQL settings
    connect_args = {"connect_timeout": 10}
    engine_kwargs.update(pool_size=5, max_overflow=10)

engine = create_engine(
    database_url,
    connect_args=connect_args,
    pool_pre_ping=True,  # Verify connections before using
    echo=settings.DB_ECHO,
    **engine_kwargs
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
