import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import settings
from app.logger import logger

DATABASE_URL = settings.DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # sessions are opened on the request threadpool and the scheduler thread
    connect_args["check_same_thread"] = False

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Every model module must be imported before create_all so metadata is populated.
MODEL_MODULES = [
    "app.models.canteen",
    "app.models.menu_item",
    "app.models.order",
]


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    With reset=True (or RESET_DB set in the environment) all tables are
    dropped and recreated; otherwise existing tables are left in place.
    """
    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or settings.RESET_DB:
        logger.info("Resetting database at {}", DATABASE_URL)
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized ({} tables)", len(Base.metadata.tables))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
