"""Database infrastructure: declarative base, engine and session helpers."""

from .base import Base
from .session import engine_options, get_engine, get_session, get_session_factory, init_db, reset_engine

__all__ = ["Base", "engine_options", "get_engine", "get_session", "get_session_factory", "init_db", "reset_engine"]
