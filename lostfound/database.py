from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy import Column, DateTime, func
from .config import settings

DATABASE_URL = settings.sqlalchemy_database_url

# 非同期エンジンの作成
engine = create_async_engine(DATABASE_URL, echo=settings.database_echo, future=True)

# 非同期セッションファクトリ
AsyncSessionLocal = sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()

class BaseDatabase(Base):
    __abstract__ = True
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
