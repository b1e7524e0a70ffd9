"""
Base service class for ShareAudit.

Provides common functionality for all services:
- One committed session per durable operation
- Settings access
- Logging setup
"""

from abc import ABC
from contextlib import AbstractAsyncContextManager
import logging
from typing import Any, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shareaudit.config import Settings, get_settings
from shareaudit.db import session_scope
from shareaudit.exceptions import NotFoundError

T = TypeVar("T")


class BaseService(ABC):
    """
    Abstract base class for all services.

    Transaction Management:
        Every public method opens its own session and commits before
        returning. A pipeline can run for minutes, so no session is held
        across provider calls; each checkpoint or progress update is one
        short transaction that becomes durable immediately.

    Example:
        class MyService(BaseService):
            async def rename(self, item_id, name):
                async with self.session() as session:
                    item = await self._get_or_404(session, MyModel, item_id)
                    item.name = name
                    return item
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the base service.

        Args:
            session_factory: Factory for async database sessions
            settings: Application settings (defaults to the cached settings)
        """
        self._session_factory = session_factory
        self._settings = settings
        self._logger = logging.getLogger(self.__class__.__module__)

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    def session(self) -> AbstractAsyncContextManager[AsyncSession]:
        """Open a session that commits on exit."""
        return session_scope(self._session_factory)

    async def _get_or_404(
        self,
        session: AsyncSession,
        model: type[T],
        entity_id: Any,
        name: Optional[str] = None,
    ) -> T:
        entity = await session.get(model, entity_id)
        if entity is None:
            resource = name or model.__name__
            raise NotFoundError(
                f"{resource} not found",
                resource_type=resource,
                resource_id=str(entity_id),
            )
        return entity

    def _log_debug(self, message: str, **extra: Any) -> None:
        self._logger.debug(message, extra=extra)

    def _log_info(self, message: str, **extra: Any) -> None:
        self._logger.info(message, extra=extra)

    def _log_warning(self, message: str, **extra: Any) -> None:
        self._logger.warning(message, extra=extra)
