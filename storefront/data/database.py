# storefront/data/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from storefront.utils.settings import DATABASE_URL

engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=True, expire_on_commit=True)

Base = declarative_base()


def get_db():
    #one session per request
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
