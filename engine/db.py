from __future__ import annotations
import os
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from dotenv import load_dotenv

load_dotenv()

class Settings:
    DATABASE_URL: str
    DIALECT: str
    LOG_LEVEL: str
    MODEL_META_PATH: str
    DEFAULT_PAGE_SIZE: int

    def __init__(self) -> None:
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./app.db")
        self.DIALECT = os.getenv("DIALECT", "sqlite").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.MODEL_META_PATH = os.getenv("MODEL_META_PATH", "schema/endpoints.meta.json")
        self.DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))

@lru_cache
def get_settings() -> Settings:
    return Settings()

def make_engine(url: str | None = None) -> Engine:
    url = url or get_settings().DATABASE_URL
    kwargs = {"pool_pre_ping": True, "future": True}
    if url == "sqlite://" or (url.startswith("sqlite") and ":memory:" in url):
        # one shared connection, otherwise each checkout sees an empty database
        from sqlalchemy.pool import StaticPool
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)
