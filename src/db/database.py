import os
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại

"""
Kết nối tới CSDL thông qua SQLAlchemy  
- `DATABASE_URL`: chuỗi kết nối, ví dụ `sqlite:///./feedback.db` hoặc `postgresql+psycopg2://user:pass@db:5432/feedback`  
- Với SQLite trong bộ nhớ (`sqlite://`) dùng StaticPool để mọi session dùng chung 1 kết nối
"""

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./feedback.db")


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    """
    Dependency cho FastAPI: mở 1 session cho mỗi request và đóng lại khi xong
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
