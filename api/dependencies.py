"""
FastAPI dependencies shared by the route modules
"""

from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import get_session
from ingestion.manager import ImportManager
from search.engine import SearchEngine


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session for the duration of a request"""
    async for session in get_session():
        yield session


def get_import_manager(request: Request) -> ImportManager:
    return request.app.state.import_manager


def get_search_engine(request: Request) -> SearchEngine:
    return request.app.state.search_engine
