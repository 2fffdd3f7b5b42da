"""Reusable FastAPI dependencies."""

from collections.abc import AsyncGenerator
from typing import Callable, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from payments_server.core.container import ApplicationContainer, get_container
from payments_server.infrastructure.database.session import get_session
from payments_server.modules.common.pagination import Page, PageRequest
from payments_server.schemas import PageResponse, PaginationInfo

SchemaT = TypeVar("SchemaT", bound=BaseModel)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_app_container() -> ApplicationContainer:
    return get_container()


def get_page_request(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
) -> PageRequest:
    return PageRequest(page=page, limit=limit)


def page_response(page: Page, schema: type[SchemaT], convert: Callable | None = None) -> PageResponse[SchemaT]:
    convert = convert or schema.model_validate
    return PageResponse[schema](
        items=[convert(item) for item in page.items],
        pagination=PaginationInfo(**page.pagination()),
    )


__all__ = ["get_app_container", "get_db_session", "get_page_request", "page_response"]
