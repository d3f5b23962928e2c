from __future__ import annotations

from .base import ChatRepository
from .sql_repo import AsyncSqlRepo

__all__ = ["AsyncSqlRepo", "ChatRepository"]
