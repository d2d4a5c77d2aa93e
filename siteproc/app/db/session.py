from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from siteproc.app.config import settings

DATABASE_URL = settings.database_url

engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=settings.sql_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
