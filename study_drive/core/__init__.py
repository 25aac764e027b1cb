"""Core module exports"""
from .config import settings, Settings
from .database import Base, engine, async_session_maker, build_engine, get_db

__all__ = ["settings", "Settings", "Base", "engine", "async_session_maker", "build_engine", "get_db"]
